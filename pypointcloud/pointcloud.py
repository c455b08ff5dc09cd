"""
PointCloud container: an ordered set of point records of a single variant.

Records are stored column-wise, one ``(n, 3)`` numpy array per attribute of
the point type, so the algorithms can work on whole arrays while callers can
still read and write individual records.
"""
import numpy as np

from .errors import InvalidInputError
from .point import PointXYZ, point_type_for

_ATTRIBUTE_ARRAYS = {'position': 'points', 'color': 'colors', 'normal': 'normals'}


class PointCloud:
    def __init__(self, point_type=PointXYZ, size=0, width=1, dtype=np.float64):
        """
        Create a cloud of ``size`` zero-valued records.

        Args:
            point_type: Record variant, e.g. PointXYZ or PointXYZRGBNormal
            size: Initial number of records
            width: Grid width; values above 1 mark an organized cloud
            dtype: Floating point type of the stored attributes
        """
        self.point_type = point_type
        self.dtype = np.dtype(dtype)
        self._data = {
            name: np.zeros((int(size), 3), dtype=self.dtype)
            for name in point_type.fields
        }
        self._width = 1
        self.width = width

    # ------------------------------------------------------------------
    # construction helpers
    # ------------------------------------------------------------------
    @classmethod
    def from_positions(cls, positions, point_type=None, colors=None, normals=None,
                       dtype=np.float64):
        """
        Build an unorganized cloud from an (N, 3) array of positions.

        When ``point_type`` is omitted it is chosen from the optional arrays
        that were passed.
        """
        positions = np.asarray(positions, dtype=dtype).reshape(-1, 3)
        if point_type is None:
            point_type = point_type_for(colors is not None, normals is not None)
        cloud = cls(point_type, size=len(positions), dtype=dtype)
        cloud.points[:] = positions
        if colors is not None:
            cloud.colors[:] = np.asarray(colors, dtype=dtype).reshape(-1, 3)
        if normals is not None:
            cloud.normals[:] = np.asarray(normals, dtype=dtype).reshape(-1, 3)
        return cloud

    @classmethod
    def from_records(cls, records, point_type=None, dtype=np.float64):
        """Build a cloud from point records that all share one variant."""
        records = list(records)
        if point_type is None:
            if not records:
                point_type = PointXYZ
            else:
                point_type = type(records[0])
        cloud = cls(point_type, size=len(records), dtype=dtype)
        for i, record in enumerate(records):
            cloud[i] = record
        return cloud

    @classmethod
    def from_file(cls, filename, point_type=PointXYZ, dtype=np.float64):
        """Load a cloud from a PCD file."""
        from .pcd import read_pcd
        return read_pcd(filename, point_type=point_type, dtype=dtype)

    # ------------------------------------------------------------------
    # grid
    # ------------------------------------------------------------------
    @property
    def width(self):
        return self._width

    @width.setter
    def width(self, width):
        width = int(width)
        if width < 1:
            raise InvalidInputError(f"width must be at least 1, got {width}")
        if width > 1 and len(self) % width != 0:
            raise InvalidInputError(
                f"cannot organize {len(self)} points into rows of width {width}"
            )
        self._width = width

    @property
    def height(self):
        if self._width > 1:
            return len(self) // self._width
        return 1

    @property
    def is_organized(self):
        return self._width > 1

    # ------------------------------------------------------------------
    # attribute arrays
    # ------------------------------------------------------------------
    def attribute_array(self, name):
        """Live (N, 3) array for a record attribute (position, color or normal)."""
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(
                f"{self.point_type.__name__} clouds have no {_ATTRIBUTE_ARRAYS[name]}"
            ) from None

    @property
    def points(self):
        """(N, 3) positions; writes go straight into the cloud."""
        return self._data['position']

    @property
    def colors(self):
        """(N, 3) colors in 0..255 units."""
        return self.attribute_array('color')

    @property
    def normals(self):
        """(N, 3) normals."""
        return self.attribute_array('normal')

    def has_colors(self):
        return 'color' in self._data

    def has_normals(self):
        return 'normal' in self._data

    def to_numpy(self):
        """Return a copy of the positions as an Nx3 numpy array."""
        return self.points.copy()

    def colors_numpy(self):
        """Return a copy of the colors, or None for variants without color."""
        return self._data['color'].copy() if self.has_colors() else None

    def normals_numpy(self):
        """Return a copy of the normals, or None for variants without normals."""
        return self._data['normal'].copy() if self.has_normals() else None

    # ------------------------------------------------------------------
    # sequence protocol
    # ------------------------------------------------------------------
    def __len__(self):
        return len(self._data['position'])

    def __getitem__(self, index):
        return self.point_type(**{name: arr[index] for name, arr in self._data.items()})

    def __setitem__(self, index, record):
        if type(record) is not self.point_type:
            raise TypeError(
                f"expected {self.point_type.__name__}, got {type(record).__name__}"
            )
        for name, arr in self._data.items():
            arr[index] = getattr(record, name)

    def __iter__(self):
        for i in range(len(self)):
            yield self[i]

    def __repr__(self):
        return (f"PointCloud<{self.point_type.__name__}>(n={len(self)}, "
                f"width={self.width}, height={self.height})")

    def append(self, record):
        """Add one record at the end; the cloud becomes unorganized."""
        n = len(self)
        self.resize(n + 1)
        self[n] = record

    def resize(self, size):
        """
        Truncate or grow the cloud to ``size`` records.

        New records are zero-valued and the cloud becomes unorganized.
        """
        size = int(size)
        if size < 0:
            raise InvalidInputError(f"size must be non-negative, got {size}")
        self._width = 1
        for name, arr in self._data.items():
            if size <= len(arr):
                self._data[name] = arr[:size].copy()
            else:
                grown = np.zeros((size, 3), dtype=self.dtype)
                grown[:len(arr)] = arr
                self._data[name] = grown

    def select(self, indices):
        """
        Return a new unorganized cloud holding the records at ``indices``.

        ``indices`` may be an integer index array or a boolean mask.
        """
        out = PointCloud(self.point_type, dtype=self.dtype)
        out._data = {name: arr[indices].copy() for name, arr in self._data.items()}
        return out

    def copy(self):
        out = self.select(slice(None))
        out._width = self._width
        return out

    # ------------------------------------------------------------------
    # algorithms
    # ------------------------------------------------------------------
    def build_kdtree(self, leaf_size=16):
        """Index a snapshot of the current positions."""
        from .kdtree import KDTree
        return KDTree(self.points, leaf_size=leaf_size)

    def voxel_grid_filter(self, voxel_size):
        from .filters import voxel_grid_filter
        return voxel_grid_filter(self, voxel_size)

    def remove_radius_outliers(self, radius, min_neighbors):
        from .filters import remove_radius_outliers
        return remove_radius_outliers(self, radius, min_neighbors)

    def remove_statistical_outliers(self, k_neighbors, std_ratio):
        from .filters import remove_statistical_outliers
        return remove_statistical_outliers(self, k_neighbors, std_ratio)

    def estimate_normals(self, radius=0.05):
        """Estimate normals in place from neighbors within ``radius``."""
        from .normals import estimate_normals
        estimate_normals(self, radius)

    # ------------------------------------------------------------------
    # Open3D interop
    # ------------------------------------------------------------------
    def to_open3d(self):
        """Convert to an ``open3d.geometry.PointCloud`` (colors scaled to 0..1)."""
        import open3d as o3d
        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(self.points.astype(np.float64))
        if self.has_colors():
            rgb = np.clip(self.colors / 255.0, 0.0, 1.0)
            pcd.colors = o3d.utility.Vector3dVector(rgb.astype(np.float64))
        if self.has_normals():
            pcd.normals = o3d.utility.Vector3dVector(self.normals.astype(np.float64))
        return pcd

    @classmethod
    def from_open3d(cls, o3d_pcd, point_type=None, dtype=np.float64):
        """Wrap the data of an ``open3d.geometry.PointCloud``."""
        has_colors = o3d_pcd.has_colors()
        has_normals = o3d_pcd.has_normals()
        if point_type is None:
            point_type = point_type_for(has_colors, has_normals)
        cloud = cls(point_type, size=len(o3d_pcd.points), dtype=dtype)
        cloud.points[:] = np.asarray(o3d_pcd.points)
        if has_colors and cloud.has_colors():
            cloud.colors[:] = np.asarray(o3d_pcd.colors) * 255.0
        if has_normals and cloud.has_normals():
            cloud.normals[:] = np.asarray(o3d_pcd.normals)
        return cloud
