"""
Normal estimation from local neighborhoods.
"""
import numpy as np

from .kdtree import KDTree
from .logger import get_logger

DEFAULT_NORMAL = np.array([0.0, 0.0, 1.0])


def second_moment(neighbors):
    """
    (1/m) * sum(n n^T) over the neighbor positions.

    The positions are not centered on their centroid, so this is the
    second-moment matrix about the origin.
    """
    neighbors = np.asarray(neighbors, dtype=np.float64)
    return neighbors.T @ neighbors / len(neighbors)


def plane_normal(neighbors):
    """Eigenvector of the smallest eigenvalue of the neighbors' second moment."""
    eigvals, eigvecs = np.linalg.eigh(second_moment(neighbors))
    return eigvecs[:, np.argmin(eigvals)]


def estimate_normals(cloud, radius):
    """
    Set every point's normal from the neighbors within ``radius``.

    Points with fewer than 3 neighbors (themselves included) get
    ``(0, 0, 1)``. Normals are unit length but not consistently oriented.
    The cloud is modified in place.

    Raises:
        TypeError: the cloud's point type carries no normal
    """
    logger = get_logger()
    if not cloud.has_normals():
        raise TypeError(f"{cloud.point_type.__name__} records have no normal to estimate")

    tree = KDTree(cloud.points)
    normals = cloud.normals
    degenerate = 0
    for i, p in enumerate(tree.data):
        idx = tree.radius_indices(p, radius)
        if len(idx) < 3:
            normals[i] = DEFAULT_NORMAL
            degenerate += 1
        else:
            normals[i] = plane_normal(tree.data[idx])
    logger.debug(
        f"[estimate_normals] radius={radius}: {len(cloud)} points, "
        f"{degenerate} with fewer than 3 neighbors"
    )
