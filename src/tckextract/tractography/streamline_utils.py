"""
Streamline Input/Output and Geometry Utilities

Provides:
- Streamline record carrying its tractogram index and weight
- Lazy TCK reading with the declared streamline count
- Streamline weights file reading / writing
- TCK writing
- Arc-length resampling
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence
import logging
from scipy.interpolate import interp1d

from ..errors import TractogramError, WeightsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Streamline:
    """
    One streamline of the input tractogram

    Attributes:
        index: Position in the input tractogram
        points: Array of points (N, 3)
        weight: Per-streamline weight (1.0 when no weights file is given)
    """
    index: int
    points: np.ndarray
    weight: float = 1.0


class TractogramSource:
    """
    Sequential reader over a TCK file

    Streamlines are yielded in file order; `count` is the count declared in
    the file header.
    """

    def __init__(self, filepath: str):
        from nibabel.streamlines import load
        from nibabel.streamlines.header import Field

        self.filepath = filepath
        logger.info(f"Opening track file: {filepath}")

        try:
            self._tck = load(filepath, lazy_load=True)
        except Exception as e:
            raise TractogramError(f"Unable to open track file {filepath}: {e}") from e

        header = self._tck.header
        count = header.get(Field.NB_STREAMLINES, header.get('count'))
        if count is None:
            raise TractogramError(f"Track file {filepath} does not declare a streamline count")
        self.count = int(count)

        logger.info(f"Track file declares {self.count} streamlines")

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[np.ndarray]:
        try:
            for points in self._tck.tractogram.streamlines:
                yield np.asarray(points, dtype=np.float32)
        except (ValueError, OSError) as e:
            raise TractogramError(f"Malformed streamline data in {self.filepath}: {e}") from e


class ArraySource:
    """In-memory streamline source with the same interface as TractogramSource"""

    def __init__(self, streamlines: Sequence[np.ndarray], count: Optional[int] = None):
        self.streamlines = streamlines
        self.count = len(streamlines) if count is None else count

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[np.ndarray]:
        for points in self.streamlines:
            yield np.asarray(points, dtype=np.float32)


def load_track_weights(filepath: str, expected_count: int) -> np.ndarray:
    """
    Load per-streamline weights

    Args:
        filepath: Text file with one scalar per streamline (whitespace separated,
                  '#' comments allowed)
        expected_count: Declared streamline count of the tractogram

    Returns:
        Weights (N,)

    Raises:
        WeightsError: If the file cannot be parsed or the count differs
    """
    logger.info(f"Loading streamline weights: {filepath}")

    try:
        weights = np.loadtxt(filepath, dtype=np.float64, comments='#', ndmin=1).ravel()
    except (OSError, ValueError) as e:
        raise WeightsError(f"Unable to read streamline weights file {filepath}: {e}") from e

    if len(weights) != expected_count:
        raise WeightsError(
            f"Weights file {filepath} contains {len(weights)} entries; "
            f"track file contains {expected_count} tracks"
        )
    if not np.all(np.isfinite(weights)):
        raise WeightsError(f"Weights file {filepath} contains non-finite values")

    return weights


def save_track_weights(weights: Sequence[float], filepath):
    """Write one weight per line to a path or an open text file"""
    np.savetxt(filepath, np.asarray(weights, dtype=np.float64), fmt='%.9g')


def save_tck(streamlines: List[np.ndarray], filepath: str):
    """
    Save streamlines in MRtrix TCK format

    The header count always matches the number of streamlines written,
    including zero.

    Args:
        streamlines: List of streamlines in scanner coordinates
        filepath: Output file path
    """
    from nibabel.streamlines import Tractogram, TckFile

    logger.debug(f"Saving {len(streamlines)} streamlines to TCK: {filepath}")

    tractogram = Tractogram(
        streamlines=[np.asarray(s, dtype=np.float32) for s in streamlines],
        affine_to_rasmm=np.eye(4)
    )
    TckFile(tractogram).save(str(filepath))


def save_tck_lazy(streamlines: Callable[[], Iterator[np.ndarray]], filepath: str):
    """
    Save streamlines in MRtrix TCK format without holding them in memory

    nibabel writes the data as the generator yields it and fixes the header
    count once the generator is exhausted.

    Args:
        streamlines: Generator function yielding streamlines in scanner coordinates
        filepath: Output file path
    """
    from nibabel.streamlines import LazyTractogram, TckFile

    logger.debug(f"Streaming streamlines to TCK: {filepath}")

    tractogram = LazyTractogram(streamlines=streamlines, affine_to_rasmm=np.eye(4))
    TckFile(tractogram).save(str(filepath))


def load_tck(filepath: str) -> List[np.ndarray]:
    """
    Load all streamlines from a TCK file

    Args:
        filepath: Path to TCK file

    Returns:
        streamlines: List of streamlines
    """
    from nibabel.streamlines import load

    logger.debug(f"Loading TCK file: {filepath}")

    tck = load(str(filepath))
    return [np.asarray(s) for s in tck.streamlines]


class StreamlineUtils:
    """Geometry helpers for streamlines"""

    @staticmethod
    def resample_streamline(
        streamline: np.ndarray,
        n_points: int
    ) -> np.ndarray:
        """
        Resample streamline to n_points equally spaced along its arc length

        Args:
            streamline: Input streamline (N, 3), N >= 1
            n_points: Target number of points

        Returns:
            Resampled streamline (n_points, 3)
        """
        streamline = np.asarray(streamline, dtype=np.float64)

        # Compute cumulative arc length
        segments = np.diff(streamline, axis=0)
        segment_lengths = np.linalg.norm(segments, axis=1)
        arc_length = np.concatenate([[0], np.cumsum(segment_lengths)])
        total_length = arc_length[-1]

        if len(streamline) < 2 or total_length <= 0:
            return np.repeat(streamline[:1], n_points, axis=0)

        # Drop repeated points; interp1d needs strictly increasing samples
        keep = np.concatenate([[True], segment_lengths > 0])
        target_arc = np.linspace(0, total_length, n_points)

        interp_func = interp1d(
            arc_length[keep],
            streamline[keep],
            kind='linear',
            axis=0,
            assume_sorted=True
        )
        return interp_func(target_arc)
