import numpy as np
import pytest

from pypointcloud import CloudLogger, PointCloud, PointXYZRGBNormal, set_logger


@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep test output clean; restore the default logger afterwards."""
    set_logger(CloudLogger(mode='off'))
    yield
    set_logger(None)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def random_cloud(rng):
    return PointCloud.from_positions(rng.uniform(-1, 1, size=(300, 3)))


@pytest.fixture
def full_cloud(rng):
    """Small cloud carrying colors and normals."""
    n = 25
    return PointCloud.from_positions(
        rng.uniform(-1, 1, size=(n, 3)),
        point_type=PointXYZRGBNormal,
        colors=rng.integers(0, 256, size=(n, 3)),
        normals=rng.normal(size=(n, 3)),
    )
