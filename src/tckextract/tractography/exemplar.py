"""
Connection Exemplars

Collapses all streamlines assigned to an edge into one representative path:
the weighted mean of the streamlines after arc-length resampling and
orientation toward the edge's node centroids, with its ends pinned to the
centroids.

Contributions from worker threads are serialized per edge; the weighted sum
is order-independent, so the finalized exemplar does not depend on the order
in which streamlines arrive.
"""

import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging
import threading

from .streamline_utils import StreamlineUtils

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]


@dataclass(frozen=True)
class Exemplar:
    """
    Finalized exemplar of one edge

    Attributes:
        edge: (u, v) with u <= v
        points: Exemplar path (M, 3), or None for an edge without contributions
        weight: Total weight of the contributing streamlines
        n_streamlines: Number of contributing streamlines
    """
    edge: Edge
    points: Optional[np.ndarray]
    weight: float = 0.0
    n_streamlines: int = 0

    @property
    def is_empty(self) -> bool:
        return self.points is None

    @classmethod
    def empty(cls, edge: Edge) -> "Exemplar":
        return cls(edge=edge, points=None)


class _EdgeState:
    """Running weighted sum for one edge"""

    __slots__ = ('lock', 'sum', 'weight', 'count')

    def __init__(self, n_points: int):
        self.lock = threading.Lock()
        self.sum = np.zeros((n_points, 3), dtype=np.float64)
        self.weight = 0.0
        self.count = 0


class ExemplarAccumulator:
    """
    Per-edge weighted mean streamline, anchored at node centroids
    """

    def __init__(
        self,
        centroids: np.ndarray,
        n_points: int = 50,
        anchor_fraction: float = 0.25
    ):
        """
        Initialize accumulator

        Args:
            centroids: Node centroids in scanner space (max_node_index + 1, 3),
                       NaN rows for nodes without voxels
            n_points: Number of points of each exemplar
            anchor_fraction: Fraction of points at each end blended toward
                             the node centroid
        """
        if n_points < 2:
            raise ValueError(f"n_points must be at least 2, got {n_points}")

        self.centroids = np.asarray(centroids, dtype=np.float64)
        self.n_points = n_points
        self.anchor_fraction = anchor_fraction

        self._states: Dict[Edge, _EdgeState] = {}
        self._table_lock = threading.Lock()
        self._exemplars: Optional[Dict[Edge, Exemplar]] = None

    @property
    def is_finalized(self) -> bool:
        return self._exemplars is not None

    def centroid(self, node: int) -> np.ndarray:
        """Centroid of a node; NaN for unknown nodes"""
        if 0 <= node < len(self.centroids):
            return self.centroids[node]
        return np.full(3, np.nan)

    def _state(self, edge: Edge) -> _EdgeState:
        state = self._states.get(edge)
        if state is None:
            with self._table_lock:
                state = self._states.setdefault(edge, _EdgeState(self.n_points))
        return state

    def _orient(self, edge: Edge, points: np.ndarray) -> np.ndarray:
        """Reverse points if needed so the start lies at node u and the end at node v"""
        start, end = points[0], points[-1]
        cu, cv = self.centroid(edge[0]), self.centroid(edge[1])
        u_known = bool(np.all(np.isfinite(cu)))
        v_known = bool(np.all(np.isfinite(cv)))

        if edge[0] != edge[1] and u_known and v_known:
            forward = np.linalg.norm(start - cu) + np.linalg.norm(end - cv)
            reverse = np.linalg.norm(start - cv) + np.linalg.norm(end - cu)
            flip = reverse < forward
        elif u_known:
            flip = np.linalg.norm(end - cu) < np.linalg.norm(start - cu)
        elif v_known:
            flip = np.linalg.norm(start - cv) < np.linalg.norm(end - cv)
        else:
            flip = False

        return points[::-1] if flip else points

    def contribute(self, edge: Edge, points: np.ndarray, weight: float = 1.0):
        """
        Fold one streamline into the exemplar of an edge

        Args:
            edge: (u, v); normalised to u <= v
            points: Streamline points (N, 3)
            weight: Streamline weight
        """
        if self.is_finalized:
            raise RuntimeError("Cannot contribute to exemplars after finalize()")

        edge = (min(edge), max(edge))
        points = np.asarray(points, dtype=np.float64)
        if len(points) == 0:
            logger.debug(f"Skipping empty streamline for edge {edge}")
            return

        resampled = StreamlineUtils.resample_streamline(points, self.n_points)
        oriented = self._orient(edge, resampled)

        state = self._state(edge)
        with state.lock:
            state.sum += weight * oriented
            state.weight += weight
            state.count += 1

    def _anchor(self, mean: np.ndarray, edge: Edge) -> np.ndarray:
        n_anchor = max(1, min(int(round(self.anchor_fraction * len(mean))), len(mean) // 2))
        alpha = 1.0 - np.arange(n_anchor) / n_anchor
        anchored = mean.copy()

        for end, node in ((0, edge[0]), (1, edge[1])):
            centroid = self.centroid(node)
            if not np.all(np.isfinite(centroid)):
                logger.warning(
                    f"Node {node} has no voxels in the parcellation image; "
                    f"exemplar for edge {edge[0]}-{edge[1]} is not anchored at that end"
                )
                continue
            idx = np.arange(n_anchor) if end == 0 else len(mean) - 1 - np.arange(n_anchor)
            anchored[idx] = alpha[:, None] * centroid + (1.0 - alpha[:, None]) * anchored[idx]

        return anchored

    def finalize(self):
        """Freeze every accumulator into an immutable exemplar"""
        if self.is_finalized:
            return

        exemplars = {}
        with self._table_lock:
            for edge, state in self._states.items():
                if state.weight <= 0:
                    exemplars[edge] = Exemplar.empty(edge)
                    continue
                mean = state.sum / state.weight
                points = self._anchor(mean, edge).astype(np.float32)
                points.setflags(write=False)
                exemplars[edge] = Exemplar(edge, points, state.weight, state.count)
            self._exemplars = exemplars
            self._states = {}

        n_nonempty = sum(1 for e in exemplars.values() if not e.is_empty)
        logger.info(f"Finalized {n_nonempty} exemplars ({len(exemplars)} edges with contributions)")

    def path_for(self, edge: Edge) -> Exemplar:
        """Exemplar of an edge; an empty exemplar if nothing was contributed"""
        if not self.is_finalized:
            raise RuntimeError("Exemplars are only available after finalize()")
        edge = (min(edge), max(edge))
        return self._exemplars.get(edge, Exemplar.empty(edge))

    def edges(self) -> List[Edge]:
        """Edges that received contributions, in ascending order"""
        if self.is_finalized:
            return sorted(self._exemplars)
        with self._table_lock:
            return sorted(self._states)

    def edges_touching(self, node: int) -> List[Edge]:
        """Edges with node as one endpoint, in ascending order"""
        return [edge for edge in self.edges() if node in edge]
