"""
Shared utilities (logging)
"""

from .logger import TckExtractLogger, get_logger, set_verbosity

__all__ = [
    'TckExtractLogger',
    'get_logger',
    'set_verbosity',
]
