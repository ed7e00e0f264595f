"""
Node Selection

Computes the nodes of interest from the user's explicit list (or the full
node range) and answers membership queries during classification.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeSelection:
    """
    Ascending, deduplicated nodes of interest

    Attributes:
        nodes: Selected node indices in ascending order
        first_node: 0 if unassigned streamlines are kept, else 1
        max_node_index: Largest node index in the assignments
        manual: Whether the nodes came from an explicit user list
    """
    nodes: Tuple[int, ...]
    first_node: int
    max_node_index: int
    manual: bool = False
    _members: FrozenSet[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, '_members', frozenset(self.nodes))

    def __contains__(self, node: int) -> bool:
        """Membership test; unknown or out-of-range indices are not members"""
        return node in self._members

    def __iter__(self):
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def full_range(self) -> range:
        """All node indices that can appear as the partner of a selected node"""
        return range(self.first_node, self.max_node_index + 1)


def select_nodes(
    explicit_list: Optional[Sequence[int]],
    keep_unassigned: bool,
    max_node_index: int,
    exclusive: bool = False
) -> NodeSelection:
    """
    Compute the nodes of interest

    Args:
        explicit_list: User-provided node indices (None = all nodes)
        keep_unassigned: Include node 0 (unassigned streamlines)
        max_node_index: Largest node index present in the assignments
        exclusive: Whether exclusive selection was requested

    Returns:
        NodeSelection
    """
    first_node = 0 if keep_unassigned else 1

    if explicit_list is not None:
        nodes = set()
        for node in explicit_list:
            node = int(node)
            if node > max_node_index:
                logger.warning(
                    f"Node of interest {node} is above the maximum detected "
                    f"node index of {max_node_index}"
                )
            elif node < 0:
                logger.warning(f"Node of interest {node} is negative; ignoring")
            elif node < first_node:
                logger.debug("Node 0 dropped from list of nodes of interest; unassigned streamlines not kept")
            else:
                nodes.add(node)
        if first_node == 0:
            nodes.add(0)
        selection = NodeSelection(tuple(sorted(nodes)), first_node, max_node_index, manual=True)
    else:
        selection = NodeSelection(
            tuple(range(first_node, max_node_index + 1)),
            first_node,
            max_node_index,
            manual=False
        )

    if exclusive and not selection.manual:
        logger.warning("List of nodes of interest not provided; exclusive option will have no effect")

    logger.info(f"Selected {len(selection)} nodes of interest")
    return selection


def parse_node_list(text: str) -> List[int]:
    """
    Parse an integer sequence such as "1,3-5,9" or "1 2 3"

    Args:
        text: Comma / whitespace separated integers and inclusive ranges

    Returns:
        List of integers in the order given

    Raises:
        ValueError: On tokens that are not integers or ranges
    """
    values: List[int] = []
    for token in text.replace(',', ' ').split():
        if '-' in token[1:]:
            split_at = token.index('-', 1)
            start, stop = int(token[:split_at]), int(token[split_at + 1:])
            step = 1 if stop >= start else -1
            values.extend(range(start, stop + step, step))
        else:
            values.append(int(token))
    return values


def retained(nodes: Iterable[int], selection: NodeSelection, exclusive: bool) -> bool:
    """Selection policy: all nodes in the set (exclusive) or at least one"""
    if exclusive:
        return all(n in selection for n in nodes)
    return any(n in selection for n in nodes)
