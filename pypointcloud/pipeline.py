"""
CloudProcessor: configured cleanup pipeline
"""
from .errors import InvalidInputError
from .filters import remove_radius_outliers, remove_statistical_outliers, voxel_grid_filter
from .logger import get_logger
from .normals import estimate_normals
from .pcd import read_pcd
from .point import PointXYZNormal


class CloudProcessor:
    def __init__(self, voxel_size=None, outlier_radius=None, min_neighbors=2,
                 k_neighbors=None, std_ratio=2.0, normal_radius=None,
                 point_type=PointXYZNormal):
        """
        Configure the pipeline. A stage whose main parameter is None is skipped.

        Args:
            voxel_size: Edge length of the downsampling voxels
            outlier_radius: Search radius of the radius outlier filter
            min_neighbors: A point survives the radius filter with more neighbors than this
            k_neighbors: Neighborhood size of the statistical outlier filter
            std_ratio: Threshold multiplier of the statistical outlier filter
            normal_radius: Search radius for normal estimation
            point_type: Record variant used when reading files
        """
        if voxel_size is not None and not voxel_size > 0:
            raise InvalidInputError(f"voxel_size must be positive, got {voxel_size}")
        if outlier_radius is not None and not outlier_radius > 0:
            raise InvalidInputError(f"outlier_radius must be positive, got {outlier_radius}")
        if k_neighbors is not None and k_neighbors < 1:
            raise InvalidInputError(f"k_neighbors must be at least 1, got {k_neighbors}")
        if normal_radius is not None:
            if not normal_radius > 0:
                raise InvalidInputError(f"normal_radius must be positive, got {normal_radius}")
            if not point_type.has_normal():
                raise InvalidInputError(
                    f"normal estimation requested but {point_type.__name__} has no normal"
                )

        self.voxel_size = voxel_size
        self.outlier_radius = outlier_radius
        self.min_neighbors = min_neighbors
        self.k_neighbors = k_neighbors
        self.std_ratio = std_ratio
        self.normal_radius = normal_radius
        self.point_type = point_type

    def process(self, cloud):
        """
        Run the configured stages in order: voxel grid, radius outliers,
        statistical outliers, normals. The input cloud is not modified.
        """
        logger = get_logger()
        logger.info(f"[process] Input: {len(cloud)} points")
        result = cloud
        if self.voxel_size is not None:
            result = voxel_grid_filter(result, self.voxel_size)
            logger.info(f"[process] Voxel grid ({self.voxel_size}): {len(result)} points")
        if self.outlier_radius is not None:
            result = remove_radius_outliers(result, self.outlier_radius, self.min_neighbors)
            logger.info(f"[process] Radius outlier removal: {len(result)} points")
        if self.k_neighbors is not None:
            result = remove_statistical_outliers(result, self.k_neighbors, self.std_ratio)
            logger.info(f"[process] Statistical outlier removal: {len(result)} points")
        if result is cloud:
            result = cloud.copy()
        if self.normal_radius is not None:
            estimate_normals(result, self.normal_radius)
            logger.info(f"[process] Estimated normals (radius {self.normal_radius})")
        return result

    def process_file(self, filename):
        """Read a PCD file as ``point_type`` records and process it."""
        return self.process(read_pcd(filename, point_type=self.point_type))
