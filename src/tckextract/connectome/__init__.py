"""
Connectome Module

Node assignments, node selection, output grouping and node centroids.
"""

from .assignments import (
    AssignmentKind,
    AssignmentStore,
    ListAssignment,
    NodeAssignment,
    PairAssignment
)
from .selection import NodeSelection, parse_node_list, retained, select_nodes
from .edges import (
    GroupKind,
    GroupRouter,
    OutputGroup,
    enumerate_groups,
    self_pairs_kept,
    single_file_paths
)
from .centroids import compute_node_centroids, load_parcellation, load_parcellation_centroids

__all__ = [
    # Assignments
    'AssignmentKind',
    'AssignmentStore',
    'ListAssignment',
    'NodeAssignment',
    'PairAssignment',

    # Selection
    'NodeSelection',
    'parse_node_list',
    'retained',
    'select_nodes',

    # Output groups
    'GroupKind',
    'GroupRouter',
    'OutputGroup',
    'enumerate_groups',
    'self_pairs_kept',
    'single_file_paths',

    # Centroids
    'compute_node_centroids',
    'load_parcellation',
    'load_parcellation_centroids',
]
