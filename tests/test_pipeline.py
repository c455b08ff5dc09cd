import numpy as np
import pytest

from pypointcloud import CloudProcessor, InvalidInputError, PointXYZ, PointXYZNormal, write_pcd
from pypointcloud.synthetic import add_uniform_outliers, generate_plane_point_cloud


@pytest.fixture
def noisy_plane(rng):
    plane = generate_plane_point_cloud(n_points=500, point_type=PointXYZNormal, rng=rng)
    return add_uniform_outliers(plane, 20, extent=2.0, rng=rng)


def test_full_pipeline(noisy_plane):
    before = noisy_plane.to_numpy()
    processor = CloudProcessor(voxel_size=0.02, outlier_radius=0.1, min_neighbors=3,
                               k_neighbors=8, std_ratio=2.0, normal_radius=0.15)
    out = processor.process(noisy_plane)

    assert 0 < len(out) < len(noisy_plane)
    assert out.point_type is PointXYZNormal
    np.testing.assert_allclose(np.linalg.norm(out.normals, axis=1), 1.0)
    np.testing.assert_array_equal(noisy_plane.points, before)


def test_no_stages_returns_a_copy(noisy_plane):
    out = CloudProcessor().process(noisy_plane)
    assert out is not noisy_plane
    np.testing.assert_array_equal(out.points, noisy_plane.points)


def test_normals_only_does_not_touch_input(noisy_plane):
    out = CloudProcessor(normal_radius=0.1).process(noisy_plane)
    assert np.all(noisy_plane.normals == 0)
    assert np.any(out.normals != 0)


def test_process_file(tmp_path, noisy_plane):
    path = str(tmp_path / "plane.pcd")
    write_pcd(path, noisy_plane, data='binary_compressed')
    out = CloudProcessor(outlier_radius=0.1, min_neighbors=3).process_file(path)
    assert out.point_type is PointXYZNormal
    assert len(out) < len(noisy_plane)


@pytest.mark.parametrize("kwargs", [
    dict(voxel_size=0),
    dict(outlier_radius=-1),
    dict(k_neighbors=0),
    dict(normal_radius=0),
    dict(normal_radius=0.1, point_type=PointXYZ),
])
def test_invalid_configuration(kwargs):
    with pytest.raises(InvalidInputError):
        CloudProcessor(**kwargs)
