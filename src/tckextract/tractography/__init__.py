"""
Tractography Module

Streamline extraction and exemplar generation from connectome assignments.

Main components:
- ExtractionPipeline: Loader plus worker pool classifying every streamline
- ExemplarAccumulator: Per-edge weighted mean streamline anchored at node centroids
- OutputWriter: Disk-spooled, all-or-nothing TCK / weights output
- StreamlineUtils: Streamline geometry helpers and TCK / weights I/O
"""

from .exemplar import Exemplar, ExemplarAccumulator
from .pipeline import (
    Classification,
    ExtractionPipeline,
    PipelineStats,
    extract_connectome_tracks,
    write_exemplars
)
from .streamline_utils import (
    ArraySource,
    Streamline,
    StreamlineUtils,
    TractogramSource,
    load_track_weights
)
from .writer import OutputWriter

__all__ = [
    'Exemplar',
    'ExemplarAccumulator',
    'Classification',
    'ExtractionPipeline',
    'PipelineStats',
    'extract_connectome_tracks',
    'write_exemplars',
    'ArraySource',
    'Streamline',
    'StreamlineUtils',
    'TractogramSource',
    'load_track_weights',
    'OutputWriter',
]
