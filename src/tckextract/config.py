"""
Run Configuration

Immutable options threaded through every component of an extraction run.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import json
import logging

logger = logging.getLogger(__name__)


class FileMode(Enum):
    """How retained streamlines are grouped into output files"""
    PER_EDGE = "per_edge"
    PER_NODE = "per_node"
    SINGLE = "single"


@dataclass(frozen=True)
class ExtractionConfig:
    """
    Options for one extraction run

    Attributes:
        prefix: Output file / prefix
        nodes: Explicit nodes of interest (None = full node range)
        exclusive: Only keep streamlines whose nodes all lie in the node set
        file_mode: Output grouping (per_edge, per_node, single)
        keep_unassigned: Treat node 0 (unassigned) as a regular node
        keep_self_connections: Emit (n, n) edge groups in per-edge mode
        exemplars: Parcellation image; when set, exemplars are generated
        weights_in: Per-streamline weights file
        weights_prefix: Prefix for per-file weights exports
        n_workers: Number of classification worker threads
        queue_size: Maximum number of batches waiting between loader and workers
        batch_size: Streamlines per queued batch
        exemplar_points: Number of points per exemplar streamline
        anchor_fraction: Fraction of exemplar points blended toward node centroids
    """
    prefix: str = ""
    nodes: Optional[Tuple[int, ...]] = None
    exclusive: bool = False
    file_mode: FileMode = FileMode.PER_EDGE
    keep_unassigned: bool = False
    keep_self_connections: bool = False
    exemplars: Optional[str] = None
    weights_in: Optional[str] = None
    weights_prefix: Optional[str] = None
    n_workers: int = 4
    queue_size: int = 64
    batch_size: int = 128
    exemplar_points: int = 50
    anchor_fraction: float = 0.25

    def __post_init__(self):
        if isinstance(self.file_mode, str):
            try:
                object.__setattr__(self, 'file_mode', FileMode(self.file_mode))
            except ValueError:
                raise ValueError(
                    f"Unknown file mode '{self.file_mode}'; "
                    f"options are: {', '.join(m.value for m in FileMode)}"
                ) from None
        if self.nodes is not None:
            object.__setattr__(self, 'nodes', tuple(int(n) for n in self.nodes))
        if self.n_workers < 1:
            raise ValueError(f"n_workers must be positive, got {self.n_workers}")
        if self.queue_size < 1 or self.batch_size < 1:
            raise ValueError("queue_size and batch_size must be positive")
        if self.exemplar_points < 2:
            raise ValueError(f"exemplar_points must be at least 2, got {self.exemplar_points}")
        if not 0.0 <= self.anchor_fraction <= 0.5:
            raise ValueError(f"anchor_fraction must lie in [0, 0.5], got {self.anchor_fraction}")

    @property
    def first_node(self) -> int:
        """Lowest node index that takes part in the selection"""
        return 0 if self.keep_unassigned else 1

    @property
    def exemplar_mode(self) -> bool:
        return self.exemplars is not None

    def updated(self, **overrides) -> "ExtractionConfig":
        """Copy with the given options replaced; None values are ignored"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionConfig":
        """Build from a plain dictionary (e.g. a JSON config file)"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_json(cls, filepath: str) -> "ExtractionConfig":
        """Load configuration from a JSON file"""
        logger.info(f"Loading configuration from {filepath}")
        with open(filepath, 'r') as f:
            return cls.from_dict(json.load(f))
