"""
Output Group Enumeration

Turns the nodes of interest and the requested file grouping into the ordered
list of output groups (edge, node or whole selection) with their file paths.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
import logging

from ..config import ExtractionConfig, FileMode
from .selection import NodeSelection

logger = logging.getLogger(__name__)


class GroupKind(Enum):
    EDGE = "edge"
    NODE = "node"
    ALL = "all"


@dataclass(frozen=True)
class OutputGroup:
    """
    One output destination

    Attributes:
        kind: EDGE, NODE or ALL
        nodes: (u, v) as named in the file for EDGE, (n,) for NODE,
               the whole selection for ALL
        path: Track file path
        weights_path: Weights export path, or None
    """
    kind: GroupKind
    nodes: Tuple[int, ...]
    path: str
    weights_path: Optional[str] = None

    @property
    def edge(self) -> Tuple[int, int]:
        """Canonical (min, max) edge of an EDGE group"""
        if self.kind is not GroupKind.EDGE:
            raise ValueError(f"{self.kind.value} group has no single edge")
        u, v = self.nodes
        return (min(u, v), max(u, v))


def single_file_paths(prefix: str, weights_prefix: Optional[str]) -> Tuple[str, Optional[str]]:
    """Track and weights paths for single-file output"""
    path = prefix if prefix.endswith('.tck') else prefix + '.tck'
    weights_path = None
    if weights_prefix:
        weights_path = weights_prefix if weights_prefix.endswith('.csv') else weights_prefix + '.csv'
    return path, weights_path


def _edge_group(one: int, two: int, config: ExtractionConfig) -> OutputGroup:
    name = f"{one}-{two}"
    return OutputGroup(
        GroupKind.EDGE,
        (one, two),
        f"{config.prefix}{name}.tck",
        f"{config.weights_prefix}{name}.csv" if config.weights_prefix else None
    )


def _files_per_partner(selection: NodeSelection, config: ExtractionConfig) -> bool:
    return selection.manual and not config.exclusive


def self_pairs_kept(selection: NodeSelection, config: ExtractionConfig) -> bool:
    """Whether streamlines connecting a node to itself have an edge output"""
    return config.keep_self_connections or _files_per_partner(selection, config)


def enumerate_groups(
    selection: NodeSelection,
    config: ExtractionConfig
) -> List[OutputGroup]:
    """
    Enumerate the output groups for a run

    Per-edge output uses each unordered pair of selected nodes once (self-pairs
    only with keep_self_connections), unless the selection is non-exclusive and
    came from an explicit list: then every node of interest gets a file for
    each partner in the full node range, itself included, so an edge between
    two nodes of interest appears twice.

    Args:
        selection: Nodes of interest
        config: Run options (file mode, exclusivity, prefixes)

    Returns:
        Ordered list of OutputGroup
    """
    nodes = selection.nodes
    groups: List[OutputGroup] = []

    if config.file_mode is FileMode.PER_EDGE:
        if not _files_per_partner(selection, config):
            self_offset = 0 if config.keep_self_connections else 1
            for i, one in enumerate(nodes):
                for two in nodes[i + self_offset:]:
                    groups.append(_edge_group(one, two, config))
        else:
            for one in nodes:
                for two in selection.full_range():
                    groups.append(_edge_group(one, two, config))
        logger.info(f"A total of {len(groups)} output track files will be generated (one for each edge)")

    elif config.file_mode is FileMode.PER_NODE:
        for node in nodes:
            groups.append(OutputGroup(
                GroupKind.NODE,
                (node,),
                f"{config.prefix}{node}.tck",
                f"{config.weights_prefix}{node}.csv" if config.weights_prefix else None
            ))
        logger.info(f"A total of {len(groups)} output track files will be generated (one for each node)")

    else:
        path, weights_path = single_file_paths(config.prefix, config.weights_prefix)
        groups.append(OutputGroup(GroupKind.ALL, tuple(nodes), path, weights_path))

    return groups


class GroupRouter:
    """
    Maps a classified streamline (its edges and nodes) to output group indices

    Built once before processing starts; read-only afterwards.
    """

    def __init__(self, groups: List[OutputGroup]):
        self.groups = groups
        self._by_edge = {}
        self._by_node = {}
        self._all = []

        for index, group in enumerate(groups):
            if group.kind is GroupKind.EDGE:
                self._by_edge.setdefault(group.edge, []).append(index)
            elif group.kind is GroupKind.NODE:
                self._by_node.setdefault(group.nodes[0], []).append(index)
            else:
                self._all.append(index)

    def route(self, edges, nodes) -> List[int]:
        """
        Output groups a retained streamline belongs to

        Args:
            edges: Canonical (min, max) edges of the streamline
            nodes: Distinct nodes of the streamline

        Returns:
            Sorted, deduplicated group indices
        """
        targets = set(self._all)
        for edge in edges:
            targets.update(self._by_edge.get(edge, ()))
        for node in nodes:
            targets.update(self._by_node.get(node, ()))
        return sorted(targets)
