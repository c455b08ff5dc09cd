"""
pypointcloud: PCD file codec, k-d tree and point cloud filters
"""

# Make core modules available at package level
from .point import (
    HasPosition, HasColor, HasNormal,
    PointXYZ, PointXYZNormal, PointXYZRGB, PointXYZRGBNormal,
)
from .pointcloud import PointCloud
from .pcd import read_pcd, write_pcd
from .kdtree import KDTree, Neighbor
from .filters import voxel_grid_filter, remove_radius_outliers, remove_statistical_outliers
from .normals import estimate_normals
from .pipeline import CloudProcessor
from .errors import PointCloudError, PcdFormatError, InvalidInputError
from .logger import CloudLogger, LogLevel, get_logger, set_logger

__all__ = [
    'HasPosition',
    'HasColor',
    'HasNormal',
    'PointXYZ',
    'PointXYZNormal',
    'PointXYZRGB',
    'PointXYZRGBNormal',
    'PointCloud',
    'read_pcd',
    'write_pcd',
    'KDTree',
    'Neighbor',
    'voxel_grid_filter',
    'remove_radius_outliers',
    'remove_statistical_outliers',
    'estimate_normals',
    'CloudProcessor',
    'PointCloudError',
    'PcdFormatError',
    'InvalidInputError',
    'CloudLogger',
    'LogLevel',
    'get_logger',
    'set_logger',
]
