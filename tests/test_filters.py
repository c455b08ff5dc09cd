import numpy as np
import pytest

from pypointcloud import (
    InvalidInputError, PointCloud, PointXYZRGBNormal,
    remove_radius_outliers, remove_statistical_outliers, voxel_grid_filter,
)
from pypointcloud.filters import local_distance_stats
from pypointcloud.kdtree import KDTree
from pypointcloud.synthetic import add_uniform_outliers, generate_plane_point_cloud


def sorted_rows(a):
    a = np.asarray(a)
    return a[np.lexsort(a.T[::-1])]


# ----------------------------------------------------------------------
# voxel grid
# ----------------------------------------------------------------------
def test_voxel_example_two_voxels_along_z():
    cloud = PointCloud.from_positions([[0, 0, 0], [0, 0, 1], [0, 0, 2]])
    out = voxel_grid_filter(cloud, 1.5)
    assert len(out) == 2
    np.testing.assert_allclose(sorted_rows(out.points), [[0, 0, 0.5], [0, 0, 2]])


def test_voxel_single_voxel_collapses_to_mean(full_cloud):
    cloud = full_cloud.copy()
    cloud.points[:] = cloud.points * 0.01 + 5.0
    out = cloud.voxel_grid_filter(1.0)
    assert len(out) == 1
    assert out.point_type is PointXYZRGBNormal
    np.testing.assert_allclose(out.points[0], cloud.points.mean(axis=0))
    np.testing.assert_allclose(out.colors[0], cloud.colors.mean(axis=0))
    np.testing.assert_allclose(out.normals[0], cloud.normals.mean(axis=0))


def test_voxel_never_grows_the_cloud(rng):
    for voxel_size in (0.05, 0.3, 2.0):
        cloud = PointCloud.from_positions(rng.normal(size=(200, 3)))
        out = voxel_grid_filter(cloud, voxel_size)
        assert 1 <= len(out) <= len(cloud)
        assert out.width == 1


def test_voxel_centroids_match_bucket_means(rng):
    pts = rng.uniform(0, 1, size=(500, 3))
    cloud = PointCloud.from_positions(pts)
    out = voxel_grid_filter(cloud, 0.25)

    keys = np.floor((pts - pts.min(axis=0)) / 0.25).astype(int)
    expected = [pts[(keys == k).all(axis=1)].mean(axis=0) for k in np.unique(keys, axis=0)]
    np.testing.assert_allclose(sorted_rows(out.points), sorted_rows(expected))


def test_voxel_rejects_small_clouds_and_bad_sizes():
    two = PointCloud.from_positions([[0, 0, 0], [1, 1, 1]])
    with pytest.raises(InvalidInputError):
        voxel_grid_filter(two, 1.0)
    three = PointCloud.from_positions([[0, 0, 0], [1, 1, 1], [2, 2, 2]])
    for bad in (0.0, -1.0, float('nan')):
        with pytest.raises(InvalidInputError):
            voxel_grid_filter(three, bad)


def test_voxel_ignores_non_finite_points():
    cloud = PointCloud.from_positions([[0, 0, 0], [0.1, 0, 0], [np.nan, 0, 0], [5, 5, 5]])
    out = voxel_grid_filter(cloud, 1.0)
    assert len(out) == 2
    assert np.all(np.isfinite(out.points))


def test_voxel_leaves_input_untouched(random_cloud):
    before = random_cloud.to_numpy()
    voxel_grid_filter(random_cloud, 0.5)
    np.testing.assert_array_equal(random_cloud.points, before)


# ----------------------------------------------------------------------
# radius outliers
# ----------------------------------------------------------------------
def test_radius_zero_min_neighbors_keeps_everything(random_cloud):
    for radius in (0.0, 0.01, 1.0):
        out = remove_radius_outliers(random_cloud, radius, 0)
        np.testing.assert_array_equal(out.points, random_cloud.points)


def test_radius_removes_isolated_points_and_keeps_order():
    cloud = PointCloud.from_positions([
        [0, 0, 0], [0.1, 0, 0], [10, 10, 10], [0, 0.1, 0], [0.1, 0.1, 0],
    ])
    out = remove_radius_outliers(cloud, 0.2, 2)
    np.testing.assert_array_equal(out.points, cloud.points[[0, 1, 3, 4]])
    assert out.width == 1


def test_radius_count_is_strictly_greater():
    cloud = PointCloud.from_positions([[0, 0, 0], [0.5, 0, 0], [5, 0, 0]])
    # each of the first two sees exactly 2 points (itself included)
    assert len(cloud.remove_radius_outliers(1.0, 2)) == 0
    assert len(cloud.remove_radius_outliers(1.0, 1)) == 2


# ----------------------------------------------------------------------
# statistical outliers
# ----------------------------------------------------------------------
def reference_statistical_mask(points, k, std_ratio):
    d = np.sqrt(np.sum((points[:, None, :] - points[None, :, :]) ** 2, axis=-1))
    nearest = np.sort(d, axis=1)[:, :k]
    local_mean = nearest.mean(axis=1)
    local_spread = nearest.var(axis=1)
    return local_mean < local_mean.mean() + std_ratio * local_spread


def test_statistical_matches_formula(rng):
    cloud = add_uniform_outliers(generate_plane_point_cloud(n_points=150, rng=rng), 10, extent=3, rng=rng)
    out = remove_statistical_outliers(cloud, 6, 0.5)
    mask = reference_statistical_mask(cloud.points, 6, 0.5)
    np.testing.assert_array_equal(out.points, cloud.points[mask])


def test_statistical_local_stats_include_self(rng):
    points = rng.uniform(size=(40, 3))
    means, spreads = local_distance_stats(KDTree(points), 4)
    d = np.sqrt(np.sum((points[:, None, :] - points[None, :, :]) ** 2, axis=-1))
    nearest = np.sort(d, axis=1)[:, :4]
    np.testing.assert_allclose(means, nearest.mean(axis=1))
    np.testing.assert_allclose(spreads, nearest.var(axis=1))


def test_statistical_far_outlier_is_removed(rng):
    plane = generate_plane_point_cloud(n_points=200, rng=rng)
    cloud = PointCloud.from_positions(np.vstack([plane.points, [[5.0, 5.0, 5.0]]]))
    out = remove_statistical_outliers(cloud, 8, 0.1)
    assert not np.any(np.all(out.points == [5.0, 5.0, 5.0], axis=1))


def test_statistical_large_ratio_is_identity(random_cloud):
    out = remove_statistical_outliers(random_cloud, 5, 1e9)
    np.testing.assert_array_equal(out.points, random_cloud.points)
    again = remove_statistical_outliers(out, 5, 1e9)
    np.testing.assert_array_equal(again.points, out.points)


def test_statistical_edge_cases(random_cloud):
    with pytest.raises(InvalidInputError):
        remove_statistical_outliers(random_cloud, 0, 1.0)
    assert len(remove_statistical_outliers(PointCloud(), 3, 1.0)) == 0


def test_filters_preserve_attributes(full_cloud):
    out = full_cloud.remove_statistical_outliers(3, 1e9)
    assert out.point_type is PointXYZRGBNormal
    np.testing.assert_array_equal(out.colors, full_cloud.colors)
    np.testing.assert_array_equal(out.normals, full_cloud.normals)
