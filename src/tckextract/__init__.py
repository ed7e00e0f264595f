"""
tckextract

Extract streamlines, or per-edge exemplars, from a tractogram based on the
assignment of each streamline to the nodes of a connectome.
"""

__version__ = "0.1.0"

from .config import ExtractionConfig, FileMode
from .errors import (
    AssignmentError,
    CountMismatch,
    MalformedAssignment,
    OutputError,
    ParcellationError,
    PipelineError,
    TckExtractError,
    TractogramError,
    WeightsError
)

__all__ = [
    'ExtractionConfig',
    'FileMode',
    'AssignmentError',
    'CountMismatch',
    'MalformedAssignment',
    'OutputError',
    'ParcellationError',
    'PipelineError',
    'TckExtractError',
    'TractogramError',
    'WeightsError',
]
