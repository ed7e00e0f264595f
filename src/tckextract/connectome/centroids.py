"""
Node Centroids

Computes the scanner-space centre of mass of every parcellation node. Used
to anchor exemplar streamlines at their two nodes.
"""

import numpy as np
from typing import Tuple
import logging

from ..errors import ParcellationError

logger = logging.getLogger(__name__)


def compute_node_centroids(
    parcellation: np.ndarray,
    affine: np.ndarray,
    max_node_index: int
) -> np.ndarray:
    """
    Voxel centres of mass per node, mapped to scanner space

    Args:
        parcellation: 3D integer parcellation map (x, y, z)
        affine: Voxel-to-scanner affine (4x4)
        max_node_index: Largest node index in the assignments

    Returns:
        Centroids (max_node_index + 1, 3); NaN for node 0 and for nodes
        without voxels
    """
    from nibabel.affines import apply_affine

    labels = np.asarray(parcellation)
    if labels.ndim > 3:
        labels = labels[..., 0]
    labels = np.rint(labels).astype(np.int64)

    n_labels = max_node_index + 1
    voxels = np.argwhere((labels > 0) & (labels <= max_node_index))
    indices = labels[tuple(voxels.T)]

    n_ignored = int(np.count_nonzero(labels > max_node_index))
    if n_ignored:
        logger.warning(
            f"{n_ignored} parcellation voxels carry node indices above the "
            f"maximum assigned node index {max_node_index}; ignoring them"
        )

    volumes = np.bincount(indices, minlength=n_labels)[:n_labels]
    sums = np.zeros((n_labels, 3), dtype=np.float64)
    for axis in range(3):
        sums[:, axis] = np.bincount(indices, weights=voxels[:, axis], minlength=n_labels)[:n_labels]

    centroids = np.full((n_labels, 3), np.nan, dtype=np.float64)
    present = volumes > 0
    present[0] = False
    centroids[present] = apply_affine(affine, sums[present] / volumes[present, None])

    empty = [n for n in range(1, n_labels) if not present[n]]
    if empty:
        logger.info(f"{len(empty)} nodes have no voxels in the parcellation image: {empty}")

    logger.info(f"Computed centroids for {int(np.count_nonzero(present))} nodes")

    return centroids


def load_parcellation(parcellation_file: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load parcellation from file

    Args:
        parcellation_file: Path to parcellation NIfTI

    Returns:
        Tuple of (parcellation array, affine matrix)

    Raises:
        ParcellationError: If the image cannot be opened
    """
    import nibabel as nib
    from nibabel.filebasedimages import ImageFileError

    logger.info(f"Loading parcellation from {parcellation_file}")

    try:
        img = nib.load(parcellation_file)
        parcellation = np.asanyarray(img.dataobj)
    except (OSError, ImageFileError) as e:
        raise ParcellationError(f"Unable to open parcellation image {parcellation_file}: {e}") from e

    return parcellation, img.affine


def load_parcellation_centroids(parcellation_file: str, max_node_index: int) -> np.ndarray:
    """Load a parcellation image and compute its node centroids"""
    parcellation, affine = load_parcellation(parcellation_file)
    return compute_node_centroids(parcellation, affine, max_node_index)
