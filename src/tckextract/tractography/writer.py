"""
Output Track Files

Streams the streamlines of every output group to disk while the pipeline
runs, and turns them into TCK (and optional weights) files once processing
has succeeded.

Each destination keeps at most `flush_size` streamlines in memory; the rest
are spooled to raw files in a hidden staging directory next to the outputs.
On close, every destination is converted to a `.partial` sibling of its final
path, and all partials are then moved into place. A failure at any point
restores the previous state: nothing is written for an aborted run.
"""

import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
import logging

import numpy as np
from tqdm import tqdm

from ..connectome.edges import OutputGroup
from ..errors import OutputError
from .exemplar import Exemplar
from .streamline_utils import save_tck_lazy, save_track_weights

logger = logging.getLogger(__name__)

# Number of spooled records read back per chunk
_READ_CHUNK = 65536


class _Destination:
    """Pending streamlines of one output group plus their on-disk spool"""

    __slots__ = ('group', 'spool', 'pending', 'pending_weights', 'count', 'lock')

    def __init__(self, group: OutputGroup, spool: str):
        self.group = group
        self.spool = spool
        self.pending: List[np.ndarray] = []
        self.pending_weights: List[float] = []
        self.count = 0
        self.lock = threading.Lock()

        for suffix in ('.points', '.lengths', '.weights'):
            open(spool + suffix, 'wb').close()

    def flush(self):
        """Append pending streamlines to the spool; caller holds the lock"""
        if not self.pending:
            return
        lengths = np.array([len(points) for points in self.pending], dtype=np.int64)
        with open(self.spool + '.points', 'ab') as f:
            for points in self.pending:
                np.ascontiguousarray(points, dtype=np.float32).tofile(f)
        with open(self.spool + '.lengths', 'ab') as f:
            lengths.tofile(f)
        with open(self.spool + '.weights', 'ab') as f:
            np.asarray(self.pending_weights, dtype=np.float64).tofile(f)
        self.pending = []
        self.pending_weights = []

    def streamlines(self) -> Iterator[np.ndarray]:
        """Read the spooled streamlines back in write order"""
        with open(self.spool + '.lengths', 'rb') as lengths_file, \
                open(self.spool + '.points', 'rb') as points_file:
            while True:
                lengths = np.fromfile(lengths_file, dtype=np.int64, count=_READ_CHUNK)
                if not len(lengths):
                    break
                for length in lengths:
                    yield np.fromfile(points_file, dtype=np.float32, count=3 * int(length)).reshape(-1, 3)

    def export_weights(self, filepath: str):
        """Write the spooled weights as text, one value per line"""
        with open(self.spool + '.weights', 'rb') as src, open(filepath, 'w') as dst:
            while True:
                chunk = np.fromfile(src, dtype=np.float64, count=_READ_CHUNK)
                if not len(chunk):
                    break
                save_track_weights(chunk, dst)


class OutputWriter:
    """
    Thread-safe set of output destinations

    Usage:
        with OutputWriter() as writer:
            index = writer.add(group)
            writer.write(index, points, weight)
        # files are written on successful exit, discarded on error
    """

    def __init__(self, show_progress: bool = False, flush_size: int = 256):
        """
        Initialize writer

        Args:
            show_progress: Display a progress bar while writing files
            flush_size: Streamlines kept in memory per destination before
                        they are spooled to disk
        """
        if flush_size < 1:
            raise ValueError(f"flush_size must be positive, got {flush_size}")

        self._destinations: List[_Destination] = []
        self._spool_dir: Optional[str] = None
        self._closed = False
        self.show_progress = show_progress
        self.flush_size = flush_size
        self.written: Dict[str, int] = {}

    def add(self, group: OutputGroup) -> int:
        """
        Register a destination; returns its index

        The output directories are created and checked here, so an unusable
        output location fails before any streamline is processed.

        Raises:
            OutputError: If the destination cannot be created
        """
        if self._closed:
            raise RuntimeError("Cannot add destinations to a closed writer")

        try:
            for path in filter(None, (group.path, group.weights_path)):
                path = Path(path)
                if path.is_dir():
                    raise IsADirectoryError(f"Output path {path} is a directory")
                path.parent.mkdir(parents=True, exist_ok=True)
                if not os.access(path.parent, os.W_OK):
                    raise PermissionError(f"Output directory {path.parent} is not writable")

            if self._spool_dir is None:
                self._spool_dir = tempfile.mkdtemp(prefix='.tckextract-', dir=Path(group.path).parent)
            spool = os.path.join(self._spool_dir, str(len(self._destinations)))
            self._destinations.append(_Destination(group, spool))
        except OSError as e:
            self.discard()
            raise OutputError(f"Unable to create output file {group.path}: {e}") from e

        return len(self._destinations) - 1

    def add_all(self, groups: List[OutputGroup]) -> List[int]:
        return [self.add(group) for group in groups]

    def write(self, index: int, points: np.ndarray, weight: float = 1.0):
        """Append a streamline (or exemplar path) to one destination"""
        destination = self._destinations[index]
        with destination.lock:
            destination.pending.append(points)
            destination.pending_weights.append(float(weight))
            destination.count += 1
            if len(destination.pending) >= self.flush_size:
                try:
                    destination.flush()
                except OSError as e:
                    raise OutputError(f"Unable to spool output for {destination.group.path}: {e}") from e

    def write_exemplar(self, index: int, exemplar: Exemplar) -> bool:
        """Append a finalized exemplar; empty exemplars add nothing"""
        if exemplar.is_empty:
            return False
        self.write(index, exemplar.points, exemplar.weight)
        return True

    def file_count(self) -> int:
        return len(self._destinations)

    def counts(self) -> List[int]:
        """Number of streamlines written so far per destination"""
        return [d.count for d in self._destinations]

    @property
    def groups(self) -> List[OutputGroup]:
        return [d.group for d in self._destinations]

    def close(self):
        """
        Write every destination to its final path

        Raises:
            OutputError: If any file cannot be written; no output is left behind
        """
        if self._closed:
            return
        self._closed = True

        staged: List[Tuple[str, str]] = []
        committed: List[Tuple[str, Optional[str]]] = []
        success = False
        try:
            for destination in tqdm(
                self._destinations,
                desc="Writing track files",
                unit="file",
                disable=not self.show_progress
            ):
                destination.flush()
                self._stage(destination, staged)

            for partial, final in staged:
                backup = None
                if os.path.isfile(final):
                    backup = f"{final}.previous"
                    os.replace(final, backup)
                try:
                    os.replace(partial, final)
                except OSError:
                    if backup:
                        os.replace(backup, final)
                    raise
                committed.append((final, backup))
            success = True
        except OSError as e:
            raise OutputError(f"Unable to create output files: {e}") from e
        finally:
            if success:
                for _, backup in committed:
                    if backup:
                        Path(backup).unlink(missing_ok=True)
            else:
                self._rollback(committed, staged)
            self._remove_spool()

        self.written = {d.group.path: d.count for d in self._destinations}
        logger.info(f"Wrote {len(self._destinations)} track files")
        self._destinations = []

    def _stage(self, destination: _Destination, staged: List[Tuple[str, str]]):
        """Write a destination next to its final path, recording each (partial, final) pair"""
        group = destination.group

        tck_partial = f"{group.path}.partial"
        staged.append((tck_partial, group.path))
        save_tck_lazy(destination.streamlines, tck_partial)

        if group.weights_path:
            weights_partial = f"{group.weights_path}.partial"
            staged.append((weights_partial, group.weights_path))
            destination.export_weights(weights_partial)

    def _rollback(
        self,
        committed: List[Tuple[str, Optional[str]]],
        staged: List[Tuple[str, str]]
    ):
        """Undo a failed commit: remove new finals, restore replaced ones, drop partials"""
        for final, backup in reversed(committed):
            try:
                Path(final).unlink(missing_ok=True)
                if backup:
                    os.replace(backup, final)
            except OSError as e:
                logger.error(f"Unable to restore {final} after failed write: {e}")
        for partial, _ in staged:
            Path(partial).unlink(missing_ok=True)
        if committed or staged:
            logger.warning(f"Removed {len(committed)} committed and {len(staged)} staged output files")

    def _remove_spool(self):
        if self._spool_dir is not None:
            shutil.rmtree(self._spool_dir, ignore_errors=True)
            self._spool_dir = None

    def discard(self):
        """Drop all pending and spooled content without writing anything"""
        if not self._closed and self._destinations:
            logger.warning(f"Discarding {len(self._destinations)} unwritten output files")
        self._closed = True
        self._destinations = []
        self._remove_spool()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.discard()
        return False
