"""
Connectome Track Extraction Pipeline

One loader (the calling thread) reads streamlines in file order, attaches
weight and node assignment by position and queues them in batches; a fixed
pool of worker threads classifies each streamline against the node selection
and either routes it to output files or folds it into the per-edge exemplars.

Streamline grouping for variable-length node lists: the edges of a
streamline are all unordered pairs of the distinct nodes it visits, or (n, n)
when it visits a single node; a streamline without nodes is unassigned
(node 0).
"""

import queue
import threading
import time
from dataclasses import dataclass
from itertools import combinations
from typing import Callable, List, Optional, Tuple
import logging

import numpy as np
from tqdm import tqdm

from ..config import ExtractionConfig
from ..connectome.assignments import AssignmentKind, AssignmentStore
from ..connectome.edges import GroupKind, GroupRouter, enumerate_groups, self_pairs_kept
from ..connectome.selection import NodeSelection, retained, select_nodes
from ..errors import PipelineError, TckExtractError, TractogramError
from .exemplar import ExemplarAccumulator
from .streamline_utils import Streamline, TractogramSource, load_track_weights
from .writer import OutputWriter

logger = logging.getLogger(__name__)

Edge = Tuple[int, int]

_SENTINEL = object()


@dataclass(frozen=True)
class Classification:
    """Edges and distinct nodes of a retained streamline"""
    edges: Tuple[Edge, ...]
    nodes: Tuple[int, ...]


@dataclass
class PipelineStats:
    """Counters for one pipeline run"""
    n_read: int = 0
    n_retained: int = 0
    n_written: int = 0
    n_contributions: int = 0
    elapsed_seconds: float = 0.0

    def add(self, other: "PipelineStats"):
        self.n_read += other.n_read
        self.n_retained += other.n_retained
        self.n_written += other.n_written
        self.n_contributions += other.n_contributions


class ExtractionPipeline:
    """
    Classify every streamline of a tractogram exactly once

    The store, selection and config are read-only for the whole run; the
    writer and accumulator handle their own locking.
    """

    def __init__(
        self,
        store: AssignmentStore,
        selection: NodeSelection,
        config: ExtractionConfig,
        weights: Optional[np.ndarray] = None,
        show_progress: bool = True
    ):
        """
        Initialize pipeline

        Args:
            store: Node assignments of every streamline
            selection: Nodes of interest
            config: Run options (exclusivity, worker count, queue sizes)
            weights: Per-streamline weights (None = all 1.0)
            show_progress: Display a progress bar
        """
        if weights is not None and len(weights) != store.count:
            raise ValueError(
                f"Got {len(weights)} streamline weights for {store.count} assignments"
            )

        self.store = store
        self.selection = selection
        self.config = config
        self.weights = weights
        self.show_progress = show_progress
        self.stats = PipelineStats()

        if store.kind is AssignmentKind.PAIR:
            self._lookup = self._lookup_pair
            self.classify = self._classify_pair
        else:
            self._lookup = self._lookup_list
            self.classify = self._classify_list

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _lookup_pair(self, index: int) -> Tuple[int, ...]:
        a, b = self.store.pairs[index]
        return (int(a), int(b))

    def _lookup_list(self, index: int) -> Tuple[int, ...]:
        return self.store.lists[index]

    def _classify_pair(self, nodes: Tuple[int, ...]) -> Optional[Classification]:
        a, b = nodes
        if not retained((a, b), self.selection, self.config.exclusive):
            return None
        edge = (a, b) if a <= b else (b, a)
        return Classification((edge,), (a,) if a == b else edge)

    def _classify_list(self, nodes: Tuple[int, ...]) -> Optional[Classification]:
        distinct = tuple(sorted(set(nodes))) or (0,)
        if not retained(distinct, self.selection, self.config.exclusive):
            return None
        if len(distinct) == 1:
            edges = ((distinct[0], distinct[0]),)
        else:
            edges = tuple(combinations(distinct, 2))
        return Classification(edges, distinct)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_extraction(self, source, writer: OutputWriter) -> PipelineStats:
        """
        Route every retained streamline to the output groups it belongs to

        Args:
            source: Streamline source (TractogramSource or ArraySource)
            writer: Output writer with the groups from enumerate_groups()
                    already registered, in order

        Returns:
            PipelineStats
        """
        router = GroupRouter(writer.groups)

        def handle(streamline: Streamline, nodes: Tuple[int, ...], stats: PipelineStats):
            classification = self.classify(nodes)
            if classification is None:
                return
            stats.n_retained += 1
            for target in router.route(classification.edges, classification.nodes):
                writer.write(target, streamline.points, streamline.weight)
                stats.n_written += 1

        return self._run(source, handle, "Extracting tracks from connectome")

    def run_exemplars(
        self,
        source,
        accumulator: ExemplarAccumulator
    ) -> PipelineStats:
        """
        Fold every retained streamline into the exemplar of each of its edges

        Self-connections only contribute when they have an edge output of
        their own (see self_pairs_kept).

        Args:
            source: Streamline source
            accumulator: Shared exemplar accumulator

        Returns:
            PipelineStats
        """
        exclusive = self.config.exclusive
        keep_self = self_pairs_kept(self.selection, self.config)

        def handle(streamline: Streamline, nodes: Tuple[int, ...], stats: PipelineStats):
            classification = self.classify(nodes)
            if classification is None:
                return
            stats.n_retained += 1
            for edge in classification.edges:
                if edge[0] == edge[1] and not keep_self:
                    continue
                if not retained(edge, self.selection, exclusive):
                    continue
                accumulator.contribute(edge, streamline.points, streamline.weight)
                stats.n_contributions += 1

        return self._run(source, handle, "Generating exemplars for connectome")

    def _run(
        self,
        source,
        handle: Callable[[Streamline, Tuple[int, ...], PipelineStats], None],
        description: str
    ) -> PipelineStats:
        """Bounded-queue producer / consumer loop; raises the first failure"""
        work: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        stop = threading.Event()
        errors: List[BaseException] = []
        lock = threading.Lock()
        n_workers = self.config.n_workers
        start_time = time.time()

        pbar = tqdm(
            total=self.store.count,
            desc=description,
            unit="streamline",
            disable=not self.show_progress
        )

        def fail(error: BaseException):
            with lock:
                errors.append(error)
            stop.set()

        def worker():
            while True:
                batch = work.get()
                if batch is _SENTINEL:
                    break
                if stop.is_set():
                    continue
                local = PipelineStats()
                try:
                    for streamline, nodes in batch:
                        handle(streamline, nodes, local)
                except Exception as e:
                    logger.debug(f"Worker failed: {e}", exc_info=True)
                    fail(e)
                local.n_read = len(batch)
                with lock:
                    self.stats.add(local)
                    pbar.update(len(batch))

        threads = [
            threading.Thread(target=worker, name=f"tckextract-worker-{i}", daemon=True)
            for i in range(n_workers)
        ]
        for thread in threads:
            thread.start()

        try:
            self._load(source, work, stop)
        except BaseException as e:
            fail(e)
        finally:
            for _ in threads:
                work.put(_SENTINEL)
            for thread in threads:
                thread.join()
            pbar.close()

        self.stats.elapsed_seconds = time.time() - start_time

        if errors:
            error = errors[0]
            if isinstance(error, (TckExtractError, KeyboardInterrupt)):
                raise error
            raise PipelineError(f"Processing aborted: {error}") from error

        logger.info(
            f"Processed {self.stats.n_read} streamlines in {self.stats.elapsed_seconds:.1f}s: "
            f"{self.stats.n_retained} retained"
        )
        return self.stats

    def _load(self, source, work: queue.Queue, stop: threading.Event):
        """Read streamlines in file order and queue them in batches"""
        count = self.store.count
        batch_size = self.config.batch_size
        batch = []
        n_loaded = 0

        for index, points in enumerate(source):
            if stop.is_set():
                return
            if index >= count:
                raise PipelineError(
                    f"Track file contains more than the {count} streamlines "
                    f"covered by the assignments file"
                )
            points = np.asarray(points)
            if points.ndim != 2 or points.shape[1] != 3:
                raise TractogramError(
                    f"Malformed streamline {index}: expected (N, 3) points, got shape {points.shape}"
                )
            weight = 1.0 if self.weights is None else float(self.weights[index])
            batch.append((Streamline(index, points, weight), self._lookup(index)))
            n_loaded += 1

            if len(batch) >= batch_size:
                work.put(batch)
                batch = []

        if batch and not stop.is_set():
            work.put(batch)

        if n_loaded < count:
            logger.warning(
                f"Track file ended after {n_loaded} of {count} declared streamlines"
            )


def write_exemplars(accumulator: ExemplarAccumulator, writer: OutputWriter) -> int:
    """
    Write the finalized exemplars into the output groups registered on the writer

    Edge groups receive the exemplar of their edge (nothing for an edge
    without contributions, giving a valid empty file); node groups receive
    every exemplar touching the node; the single group receives all of them.

    Returns:
        Number of exemplars written
    """
    if not accumulator.is_finalized:
        accumulator.finalize()

    n_written = 0
    for index, group in enumerate(writer.groups):
        if group.kind is GroupKind.EDGE:
            edges = [group.edge]
        elif group.kind is GroupKind.NODE:
            edges = accumulator.edges_touching(group.nodes[0])
        else:
            edges = accumulator.edges()

        for edge in edges:
            if writer.write_exemplar(index, accumulator.path_for(edge)):
                n_written += 1

    logger.info(f"Wrote {n_written} exemplars to {writer.file_count()} output groups")
    return n_written


def extract_connectome_tracks(
    tracks_in: str,
    assignments_in: str,
    config: ExtractionConfig,
    show_progress: bool = True
) -> PipelineStats:
    """
    Full run: load inputs, select nodes, process the tractogram, write outputs

    Args:
        tracks_in: Input TCK file
        assignments_in: Node assignments text file
        config: Run options (prefix, node list, modes, ...)
        show_progress: Display progress bars

    Returns:
        PipelineStats
    """
    from ..connectome.centroids import load_parcellation_centroids

    source = TractogramSource(tracks_in)
    store = AssignmentStore.load(assignments_in, source.count)

    weights = None
    if config.weights_in:
        weights = load_track_weights(config.weights_in, source.count)

    selection = select_nodes(
        config.nodes,
        config.keep_unassigned,
        store.max_node_index,
        exclusive=config.exclusive
    )
    groups = enumerate_groups(selection, config)
    pipeline = ExtractionPipeline(store, selection, config, weights, show_progress=show_progress)

    accumulator = None
    if config.exemplar_mode:
        centroids = load_parcellation_centroids(config.exemplars, store.max_node_index)
        accumulator = ExemplarAccumulator(
            centroids,
            n_points=config.exemplar_points,
            anchor_fraction=config.anchor_fraction
        )

    with OutputWriter(show_progress=show_progress) as writer:
        # Creates the output directories; fails before any streamline is read
        writer.add_all(groups)
        if accumulator is not None:
            stats = pipeline.run_exemplars(source, accumulator)
            accumulator.finalize()
            stats.n_written = write_exemplars(accumulator, writer)
        else:
            stats = pipeline.run_extraction(source, writer)

    return stats
