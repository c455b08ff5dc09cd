"""
Point cloud filters: voxel grid downsampling and outlier removal.

Every filter returns a new, unorganized cloud and leaves its input untouched.
"""
import numpy as np

from .errors import InvalidInputError
from .kdtree import KDTree
from .logger import get_logger
from .pointcloud import PointCloud


def voxel_grid_filter(cloud, voxel_size):
    """
    Replace the points falling into each voxel by their centroid.

    Voxels are cubes of edge ``voxel_size`` anchored at the per-axis minimum
    of the cloud. All record attributes (color, normal) are averaged along
    with the positions. Output points are ordered by voxel key.

    Raises:
        InvalidInputError: ``voxel_size`` is not positive or the cloud has
            two points or fewer
    """
    logger = get_logger()
    if not (np.isfinite(voxel_size) and voxel_size > 0):
        raise InvalidInputError(f"voxel_size must be positive, got {voxel_size}")
    if len(cloud) <= 2:
        raise InvalidInputError(
            f"voxel grid filter needs more than two points, got {len(cloud)}"
        )

    positions = cloud.points.astype(np.float64)
    finite = np.all(np.isfinite(positions), axis=1)
    if not finite.all():
        logger.debug(f"[voxel_grid_filter] Ignoring {int((~finite).sum())} non-finite points")
    out = PointCloud(cloud.point_type, dtype=cloud.dtype)
    if not finite.any():
        return out

    min_bound = positions[finite].min(axis=0)
    keys = np.floor((positions[finite] - min_bound) / voxel_size).astype(np.int64)
    voxels, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)

    out.resize(len(voxels))
    for name in cloud.point_type.fields:
        sums = np.zeros((len(voxels), 3), dtype=np.float64)
        np.add.at(sums, inverse, cloud.attribute_array(name)[finite])
        out.attribute_array(name)[:] = sums / counts[:, None]

    logger.debug(
        f"[voxel_grid_filter] voxel_size={voxel_size}: {len(cloud)} -> {len(out)} points"
    )
    return out


def remove_radius_outliers(cloud, radius, min_neighbors):
    """
    Keep the points that have more than ``min_neighbors`` points (themselves
    included) within ``radius``. Input order is preserved.
    """
    logger = get_logger()
    tree = KDTree(cloud.points)
    counts = np.array([len(tree.within_radius(p, radius)) for p in tree.data], dtype=np.int64)
    keep = counts > min_neighbors
    out = cloud.select(keep)
    logger.debug(
        f"[remove_radius_outliers] radius={radius}, min_neighbors={min_neighbors}: "
        f"{len(cloud)} -> {len(out)} points"
    )
    return out


def local_distance_stats(tree, k_neighbors):
    """
    Mean and population variance of the distances from every indexed point
    to its ``k_neighbors`` nearest neighbors (the point itself included).

    Returns:
        (local_means, local_spreads): two arrays of length ``len(tree)``;
        NaN for points without any neighbor
    """
    means = np.full(len(tree), np.nan)
    spreads = np.full(len(tree), np.nan)
    for i, p in enumerate(tree.data):
        found = tree.k_nearest(p, k_neighbors)
        if not found:
            continue
        dists = np.sqrt([n.squared_distance for n in found])
        means[i] = dists.mean()
        spreads[i] = np.mean((dists - means[i]) ** 2)
    return means, spreads


def remove_statistical_outliers(cloud, k_neighbors, std_ratio):
    """
    Drop points whose mean neighbor distance is unusually large.

    Runs in three passes: per-point neighbor statistics, the cloud-wide mean
    of the local means, then the filter. A point is kept when

        local_mean < global_mean + std_ratio * local_spread

    where ``local_spread`` is that point's own distance variance, not a
    cloud-wide deviation. Input order is preserved.

    Raises:
        InvalidInputError: ``k_neighbors`` is below 1
    """
    logger = get_logger()
    if int(k_neighbors) < 1:
        raise InvalidInputError(f"k_neighbors must be at least 1, got {k_neighbors}")
    if len(cloud) == 0:
        return cloud.select(slice(None))

    tree = KDTree(cloud.points)
    local_means, local_spreads = local_distance_stats(tree, int(k_neighbors))

    if np.isnan(local_means).all():
        logger.warning("[remove_statistical_outliers] No point has finite neighbor distances")
        return cloud.select(np.zeros(len(cloud), dtype=bool))
    global_mean = np.nanmean(local_means)

    keep = local_means < global_mean + std_ratio * local_spreads
    out = cloud.select(keep)
    logger.debug(
        f"[remove_statistical_outliers] k={k_neighbors}, std_ratio={std_ratio}, "
        f"global_mean={global_mean:.6f}: {len(cloud)} -> {len(out)} points"
    )
    return out
