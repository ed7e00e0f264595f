"""
Streamline Node Assignments

Parses the per-streamline node assignment text file (one line per streamline,
whitespace-separated node indices) into an in-memory table.

If every line holds exactly two nodes the whole dataset is stored as node
pairs; a single line of any other length switches the whole dataset to
variable-length node lists.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union
import logging

import numpy as np

from ..errors import CountMismatch, MalformedAssignment

logger = logging.getLogger(__name__)


class AssignmentKind(Enum):
    """Dataset-wide assignment representation"""
    PAIR = "pair"
    LIST = "list"


@dataclass(frozen=True)
class PairAssignment:
    """Streamline assigned to exactly two nodes (unordered)"""
    a: int
    b: int

    @property
    def edge(self) -> Tuple[int, int]:
        return (min(self.a, self.b), max(self.a, self.b))

    @property
    def nodes(self) -> Tuple[int, ...]:
        return (self.a, self.b)


@dataclass(frozen=True)
class ListAssignment:
    """Streamline assigned to any number of nodes, in file order"""
    nodes: Tuple[int, ...]


NodeAssignment = Union[PairAssignment, ListAssignment]


def _parse_line(line: str, line_number: int) -> List[int]:
    nodes = []
    for token in line.split():
        try:
            value = int(token)
        except ValueError:
            raise MalformedAssignment(
                f"Line {line_number} of assignments file: '{token}' is not a node index"
            ) from None
        if value < 0:
            raise MalformedAssignment(
                f"Line {line_number} of assignments file: negative node index {value}"
            )
        nodes.append(value)
    return nodes


class AssignmentStore:
    """
    Read-only table of node assignments, indexed by streamline position

    Attributes:
        kind: AssignmentKind.PAIR or AssignmentKind.LIST
        max_node_index: Largest node index observed in the file
        pairs: (N, 2) integer array when kind is PAIR, else None
        lists: List of node tuples when kind is LIST, else None
    """

    def __init__(
        self,
        kind: AssignmentKind,
        max_node_index: int,
        pairs: Optional[np.ndarray] = None,
        lists: Optional[List[Tuple[int, ...]]] = None
    ):
        self.kind = kind
        self.max_node_index = max_node_index
        self.pairs = pairs
        self.lists = lists

    @property
    def count(self) -> int:
        """Number of streamlines covered by the table"""
        if self.kind is AssignmentKind.PAIR:
            return len(self.pairs)
        return len(self.lists)

    def __len__(self) -> int:
        return self.count

    def get(self, index: int) -> NodeAssignment:
        """
        Assignment of a single streamline

        Raises:
            IndexError: If index lies outside the table
        """
        if index < 0 or index >= self.count:
            raise IndexError(
                f"Streamline index {index} outside assignment table of size {self.count}"
            )
        if self.kind is AssignmentKind.PAIR:
            a, b = self.pairs[index]
            return PairAssignment(int(a), int(b))
        return ListAssignment(self.lists[index])

    @classmethod
    def from_lines(
        cls,
        lines: Iterable[str],
        expected_count: int
    ) -> "AssignmentStore":
        """
        Build the table from assignment text lines

        Args:
            lines: One line per streamline, in streamline order
            expected_count: Declared streamline count of the tractogram

        Returns:
            AssignmentStore

        Raises:
            MalformedAssignment: A token is not a non-negative integer
            CountMismatch: Number of lines differs from expected_count
        """
        parsed: List[Tuple[int, ...]] = []
        nonpair_found = False
        max_node_index = 0

        for line_number, line in enumerate(lines, start=1):
            nodes = _parse_line(line, line_number)
            if nodes:
                max_node_index = max(max_node_index, max(nodes))
            if len(nodes) != 2:
                nonpair_found = True
            parsed.append(tuple(nodes))

        if len(parsed) != expected_count:
            raise CountMismatch(len(parsed), expected_count)

        if not nonpair_found:
            logger.info("Assignments file contains node pair for every streamline; operating accordingly")
            pairs = np.array(parsed, dtype=np.int64).reshape(-1, 2)
            store = cls(AssignmentKind.PAIR, max_node_index, pairs=pairs)
        else:
            logger.info("Assignments file contains variable-length node lists; operating accordingly")
            store = cls(AssignmentKind.LIST, max_node_index, lists=parsed)

        logger.info(f"Maximum node index is {max_node_index}")
        return store

    @classmethod
    def load(
        cls,
        filepath: Union[str, Path],
        expected_count: int
    ) -> "AssignmentStore":
        """
        Load assignments from a text file

        Args:
            filepath: Path to the assignments file
            expected_count: Declared streamline count of the tractogram

        Returns:
            AssignmentStore
        """
        logger.info(f"Reading streamline assignments file: {filepath}")
        with open(filepath, 'r') as f:
            return cls.from_lines(f.read().splitlines(), expected_count)

    @classmethod
    def load_text(cls, text: str, expected_count: int) -> "AssignmentStore":
        """Build the table from assignment text held in memory"""
        return cls.from_lines(text.splitlines(), expected_count)
