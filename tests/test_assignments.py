"""
Unit tests for streamline node assignment parsing
"""

import pytest
import numpy as np
from tckextract.connectome.assignments import (
    AssignmentKind,
    AssignmentStore,
    ListAssignment,
    PairAssignment
)
from tckextract.errors import AssignmentError, CountMismatch, MalformedAssignment


class TestAssignmentStore:
    """Test assignment table construction"""

    @pytest.fixture
    def pair_text(self):
        """Every line holds exactly two nodes"""
        return "1 2\n2 3\n3 1\n0 0\n"

    def test_pair_mode(self, pair_text):
        """Two tokens on every line selects the pair representation"""
        store = AssignmentStore.load_text(pair_text, 4)

        assert store.kind is AssignmentKind.PAIR
        assert store.count == 4
        assert len(store) == 4
        assert store.max_node_index == 3
        assert store.pairs.shape == (4, 2)
        assert store.lists is None

    def test_pair_lookup(self, pair_text):
        """Pair assignments are unordered for edge purposes"""
        store = AssignmentStore.load_text(pair_text, 4)

        assert store.get(0) == PairAssignment(1, 2)
        assert store.get(2) == PairAssignment(3, 1)
        assert store.get(2).edge == (1, 3)
        assert store.get(3).edge == (0, 0)

    def test_single_nonpair_line_switches_to_list(self):
        """One line of a different length switches the whole dataset"""
        store = AssignmentStore.load_text("1 2\n2 3\n1 2 3\n4 1\n", 4)

        assert store.kind is AssignmentKind.LIST
        assert store.pairs is None
        assert store.get(0) == ListAssignment((1, 2))
        assert store.get(2) == ListAssignment((1, 2, 3))
        assert store.max_node_index == 4

    def test_blank_line_is_empty_list(self):
        """A blank line is a streamline assigned to no node"""
        store = AssignmentStore.load_text("1 2\n\n3 4\n", 3)

        assert store.kind is AssignmentKind.LIST
        assert store.get(1) == ListAssignment(())

    def test_count_mismatch(self, pair_text):
        """Line count must equal the declared streamline count"""
        with pytest.raises(CountMismatch) as excinfo:
            AssignmentStore.load_text(pair_text, 5)

        assert excinfo.value.n_assignments == 4
        assert excinfo.value.n_streamlines == 5
        assert isinstance(excinfo.value, AssignmentError)

    def test_malformed_token(self):
        """Non-integer tokens are rejected"""
        with pytest.raises(MalformedAssignment, match="line 2|Line 2"):
            AssignmentStore.load_text("1 2\n1 x\n", 2)

    def test_negative_index(self):
        """Negative node indices are rejected"""
        with pytest.raises(MalformedAssignment):
            AssignmentStore.load_text("1 -2\n", 1)

    def test_load_file(self, tmp_path, pair_text):
        """Load from a text file"""
        path = tmp_path / "assignments.txt"
        path.write_text(pair_text)

        store = AssignmentStore.load(path, 4)

        assert store.kind is AssignmentKind.PAIR
        np.testing.assert_array_equal(store.pairs[1], [2, 3])

    def test_index_out_of_range(self, pair_text):
        """Lookups beyond the table fail"""
        store = AssignmentStore.load_text(pair_text, 4)

        with pytest.raises(IndexError):
            store.get(4)

    def test_empty_file(self):
        """An empty file matches an empty tractogram"""
        store = AssignmentStore.load_text("", 0)

        assert store.count == 0
        assert store.max_node_index == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
