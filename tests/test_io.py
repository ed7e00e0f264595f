"""
Unit tests for track / weights / parcellation I/O and output writing
"""

import pytest
import numpy as np
import nibabel as nib
from tckextract.connectome.centroids import (
    compute_node_centroids,
    load_parcellation_centroids
)
from tckextract.connectome.edges import GroupKind, OutputGroup
from tckextract.errors import OutputError, ParcellationError, TractogramError, WeightsError
from tckextract.tractography.streamline_utils import (
    StreamlineUtils,
    TractogramSource,
    load_tck,
    load_track_weights,
    save_tck
)
from tckextract.tractography.exemplar import Exemplar
from tckextract.tractography import writer as writer_module
from tckextract.tractography.writer import OutputWriter


class TestTractogramSource:
    """Test lazy TCK reading"""

    @pytest.fixture
    def tck_file(self, tmp_path):
        path = tmp_path / "tracks.tck"
        streamlines = [np.random.RandomState(i).rand(5 + i, 3).astype(np.float32) for i in range(4)]
        save_tck(streamlines, str(path))
        return path, streamlines

    def test_count_and_order(self, tck_file):
        path, streamlines = tck_file
        source = TractogramSource(str(path))

        assert source.count == 4
        assert len(source) == 4
        loaded = list(source)
        assert len(loaded) == 4
        for original, read in zip(streamlines, loaded):
            np.testing.assert_allclose(read, original, atol=1e-6)

    def test_missing_file(self, tmp_path):
        with pytest.raises(TractogramError):
            TractogramSource(str(tmp_path / "missing.tck"))


class TestWeights:
    """Test streamline weights input"""

    def test_load(self, tmp_path):
        path = tmp_path / "weights.txt"
        path.write_text("# comment\n0.5\n1.0\n2.5\n")

        np.testing.assert_allclose(load_track_weights(str(path), 3), [0.5, 1.0, 2.5])

    def test_single_line(self, tmp_path):
        path = tmp_path / "weights.txt"
        path.write_text("0.5 1.0 2.5\n")

        assert len(load_track_weights(str(path), 3)) == 3

    def test_count_mismatch(self, tmp_path):
        path = tmp_path / "weights.txt"
        path.write_text("1\n2\n")

        with pytest.raises(WeightsError):
            load_track_weights(str(path), 3)

    def test_unreadable(self, tmp_path):
        path = tmp_path / "weights.txt"
        path.write_text("1\nabc\n")

        with pytest.raises(WeightsError):
            load_track_weights(str(path), 2)


class TestOutputWriter:
    """Test spooled, all-or-nothing output"""

    def _group(self, tmp_path, name, weights=False):
        return OutputGroup(
            GroupKind.EDGE,
            (1, 2),
            str(tmp_path / f"{name}.tck"),
            str(tmp_path / f"{name}.csv") if weights else None
        )

    def _leftovers(self, tmp_path):
        """Staging files and directories left next to the outputs"""
        return [p.name for p in tmp_path.iterdir() if p.name.startswith('.') or p.suffix in ('.partial', '.previous')]

    def test_write_and_close(self, tmp_path):
        writer = OutputWriter()
        first = writer.add(self._group(tmp_path, "a", weights=True))
        second = writer.add(self._group(tmp_path, "b"))
        writer.write(first, np.zeros((3, 3), dtype=np.float32), 2.0)
        writer.write(first, np.ones((4, 3), dtype=np.float32), 0.5)

        assert writer.file_count() == 2
        assert writer.counts() == [2, 0]
        writer.close()

        assert len(load_tck(tmp_path / "a.tck")) == 2
        np.testing.assert_allclose(np.loadtxt(tmp_path / "a.csv"), [2.0, 0.5])
        # Empty destinations still produce a valid file
        assert load_tck(tmp_path / "b.tck") == []
        assert writer.written == {str(tmp_path / "a.tck"): 2, str(tmp_path / "b.tck"): 0}
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a.csv", "a.tck", "b.tck"]

    def test_spooled_streamlines_keep_order(self, tmp_path):
        """Streamlines spooled to disk come back unchanged and in write order"""
        streamlines = [np.random.RandomState(i).rand(2 + i, 3).astype(np.float32) for i in range(5)]
        writer = OutputWriter(flush_size=2)
        index = writer.add(self._group(tmp_path, "a", weights=True))
        for i, points in enumerate(streamlines):
            writer.write(index, points, float(i) + 0.25)
        writer.close()

        loaded = load_tck(tmp_path / "a.tck")
        assert len(loaded) == 5
        for original, read in zip(streamlines, loaded):
            np.testing.assert_allclose(read, original, atol=1e-6)
        np.testing.assert_allclose(np.loadtxt(tmp_path / "a.csv"), [0.25, 1.25, 2.25, 3.25, 4.25])
        assert self._leftovers(tmp_path) == []

    def test_discard_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with OutputWriter() as writer:
                index = writer.add(self._group(tmp_path, "a"))
                writer.write(index, np.zeros((3, 3), dtype=np.float32))
                raise RuntimeError("abort")

        assert list(tmp_path.iterdir()) == []

    def test_output_error(self, tmp_path):
        """An unusable output location fails when the destination is added"""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        writer = OutputWriter()

        with pytest.raises(OutputError):
            writer.add(OutputGroup(GroupKind.ALL, (1,), str(blocker / "out.tck")))

        assert [p.name for p in tmp_path.iterdir()] == ["blocker"]

    def test_directory_as_output_path(self, tmp_path):
        (tmp_path / "a.tck").mkdir()
        writer = OutputWriter()

        with pytest.raises(OutputError):
            writer.add(self._group(tmp_path, "a"))

        assert self._leftovers(tmp_path) == []

    def test_failed_commit_rolls_back(self, tmp_path):
        """A destination that cannot be moved into place undoes the ones already committed"""
        (tmp_path / "a.tck").write_bytes(b"previous run")
        writer = OutputWriter()
        first = writer.add(self._group(tmp_path, "a", weights=True))
        writer.add(self._group(tmp_path, "b"))
        writer.write(first, np.zeros((3, 3), dtype=np.float32), 2.0)
        # b.tck turns into a directory after the checks in add()
        (tmp_path / "b.tck").mkdir()

        with pytest.raises(OutputError):
            writer.close()

        assert (tmp_path / "a.tck").read_bytes() == b"previous run"
        assert not (tmp_path / "a.csv").exists()
        assert (tmp_path / "b.tck").is_dir()
        assert self._leftovers(tmp_path) == []

    def test_unexpected_failure_removes_partials(self, tmp_path, monkeypatch):
        """Errors other than OSError leave nothing behind either"""
        real_save = writer_module.save_tck_lazy

        def failing_save(streamlines, filepath):
            if filepath.endswith("b.tck.partial"):
                raise RuntimeError("encoder failure")
            real_save(streamlines, filepath)

        monkeypatch.setattr(writer_module, "save_tck_lazy", failing_save)
        writer = OutputWriter()
        writer.add(self._group(tmp_path, "a"))
        writer.add(self._group(tmp_path, "b"))

        with pytest.raises(RuntimeError):
            writer.close()

        assert list(tmp_path.iterdir()) == []

    def test_write_exemplar(self, tmp_path):
        writer = OutputWriter()
        index = writer.add(self._group(tmp_path, "a"))

        assert not writer.write_exemplar(index, Exemplar.empty((1, 2)))
        assert writer.write_exemplar(index, Exemplar((1, 2), np.zeros((5, 3), dtype=np.float32), 3.0, 3))
        assert writer.counts() == [1]
        writer.discard()

        assert list(tmp_path.iterdir()) == []

    def test_nested_directories_created(self, tmp_path):
        writer = OutputWriter()
        writer.add(OutputGroup(GroupKind.NODE, (1,), str(tmp_path / "sub" / "dir" / "n1.tck")))
        writer.close()

        assert (tmp_path / "sub" / "dir" / "n1.tck").exists()


class TestCentroids:
    """Test node centre-of-mass computation"""

    @pytest.fixture
    def parcellation(self):
        labels = np.zeros((4, 4, 4), dtype=np.int16)
        labels[0, 0, 0] = 1
        labels[2, 0, 0] = 1
        labels[1, 3, 3] = 3
        return labels

    def test_voxel_centroids(self, parcellation):
        centroids = compute_node_centroids(parcellation, np.eye(4), max_node_index=3)

        assert centroids.shape == (4, 3)
        np.testing.assert_allclose(centroids[1], [1.0, 0.0, 0.0])
        np.testing.assert_allclose(centroids[3], [1.0, 3.0, 3.0])
        assert np.all(np.isnan(centroids[0]))
        # Node 2 has no voxels
        assert np.all(np.isnan(centroids[2]))

    def test_affine_applied(self, parcellation):
        affine = np.diag([2.0, 2.0, 2.0, 1.0])
        affine[:3, 3] = [-10, 0, 5]

        centroids = compute_node_centroids(parcellation, affine, max_node_index=3)

        np.testing.assert_allclose(centroids[1], [-8.0, 0.0, 5.0])

    def test_labels_above_max_ignored(self, parcellation):
        parcellation[3, 3, 3] = 9

        centroids = compute_node_centroids(parcellation, np.eye(4), max_node_index=3)

        assert centroids.shape == (4, 3)

    def test_load_from_nifti(self, tmp_path, parcellation):
        path = tmp_path / "parc.nii.gz"
        nib.save(nib.Nifti1Image(parcellation, np.eye(4)), str(path))

        centroids = load_parcellation_centroids(str(path), max_node_index=3)

        np.testing.assert_allclose(centroids[1], [1.0, 0.0, 0.0])

    def test_missing_image(self, tmp_path):
        with pytest.raises(ParcellationError):
            load_parcellation_centroids(str(tmp_path / "missing.nii.gz"), 3)


class TestStreamlineUtils:
    """Test geometry helpers"""

    def test_resample_even_spacing(self):
        line = np.array([[0, 0, 0], [1, 0, 0], [10, 0, 0]], dtype=float)
        resampled = StreamlineUtils.resample_streamline(line, 11)

        np.testing.assert_allclose(resampled[:, 0], np.arange(11))

    def test_resample_repeated_points(self):
        line = np.array([[0, 0, 0], [0, 0, 0], [4, 0, 0]], dtype=float)
        resampled = StreamlineUtils.resample_streamline(line, 5)

        np.testing.assert_allclose(resampled[:, 0], [0, 1, 2, 3, 4])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
