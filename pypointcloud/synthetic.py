"""
Synthetic point clouds for tests and demos.
"""
import numpy as np

from .point import PointXYZ
from .pointcloud import PointCloud


def _plane_basis(normal):
    """Two unit vectors spanning the plane orthogonal to ``normal``."""
    if np.allclose(np.abs(normal), [1, 0, 0]):
        ortho1 = np.cross(normal, [0, 1, 0])
    else:
        ortho1 = np.cross(normal, [1, 0, 0])
    ortho1 = ortho1 / np.linalg.norm(ortho1)
    ortho2 = np.cross(normal, ortho1)
    return ortho1, ortho2 / np.linalg.norm(ortho2)


def generate_plane_point_cloud(normal=(0, 0, 1), offset=(0, 0, 0), size=1.0, n_points=1000,
                               noise=0.0, point_type=PointXYZ, rng=None):
    """
    Sample points on a square patch of a plane.

    Args:
        normal: (3,) plane normal (will be normalized)
        offset: (3,) center of the patch
        size: edge length of the patch
        n_points: number of points
        noise: stddev of Gaussian noise added along the normal
        point_type: record variant of the returned cloud
        rng: numpy.random.Generator, or a seed
    Returns:
        PointCloud
    """
    rng = np.random.default_rng(rng)
    normal = np.asarray(normal, dtype=np.float64)
    normal = normal / np.linalg.norm(normal)
    ortho1, ortho2 = _plane_basis(normal)
    u = rng.uniform(-size / 2, size / 2, n_points)
    v = rng.uniform(-size / 2, size / 2, n_points)
    h = rng.normal(scale=noise, size=n_points) if noise > 0 else np.zeros(n_points)
    pts = (np.asarray(offset, dtype=np.float64)
           + np.outer(u, ortho1) + np.outer(v, ortho2) + np.outer(h, normal))
    return PointCloud.from_positions(pts, point_type=point_type)


def add_uniform_outliers(cloud, n_outliers, extent=1.0, rng=None):
    """
    Return a copy of ``cloud`` with ``n_outliers`` points appended, drawn
    uniformly from the cube ``[-extent, extent]^3``.
    """
    rng = np.random.default_rng(rng)
    out = cloud.copy()
    n = len(out)
    out.resize(n + n_outliers)
    out.points[n:] = rng.uniform(-extent, extent, size=(n_outliers, 3))
    return out
