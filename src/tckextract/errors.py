"""
Exception hierarchy for tckextract

Validation and resource errors abort the whole run; policy issues are
logged as warnings and never raised.
"""


class TckExtractError(Exception):
    """Base class for all fatal tckextract errors"""
    pass


class AssignmentError(TckExtractError):
    """Exception raised for invalid streamline node assignments"""
    pass


class CountMismatch(AssignmentError):
    """Assignment file and tractogram disagree on the number of streamlines"""

    def __init__(self, n_assignments: int, n_streamlines: int):
        self.n_assignments = n_assignments
        self.n_streamlines = n_streamlines
        super().__init__(
            f"Assignments file contains {n_assignments} entries; "
            f"track file contains {n_streamlines} tracks"
        )


class MalformedAssignment(AssignmentError):
    """An assignment line contains something other than node indices"""
    pass


class TractogramError(TckExtractError):
    """Exception raised for unreadable or malformed track files"""
    pass


class WeightsError(TckExtractError):
    """Exception raised for invalid streamline weights files"""
    pass


class ParcellationError(TckExtractError):
    """Exception raised when the parcellation image cannot be used"""
    pass


class OutputError(TckExtractError):
    """Exception raised when an output file cannot be created"""
    pass


class PipelineError(TckExtractError):
    """Exception raised when the extraction pipeline is aborted"""
    pass
