"""
Reader and writer for the PCD point cloud file format.

A PCD file is a text header of ``KEY value...`` lines ended by a
``DATA <mode>`` line, followed by the point records in one of three
encodings:

* ``ascii``: one whitespace separated row per point.
* ``binary``: fixed size records packed back to back, native byte order.
* ``binary_compressed``: an 8 byte preamble (compressed length, then the
  big-endian uncompressed length) and one LZF block. The decompressed bytes
  are stored field by field (all x values, then all y values, ...) and have
  to be re-interleaved into per-point records before decoding.

Only floating point columns (``TYPE F``) are decoded; other columns are
skipped but still occupy their bytes or tokens.
"""
import struct

import lzf
import numpy as np

from .errors import InvalidInputError, PcdFormatError, PointCloudError
from .logger import get_logger
from .point import PointXYZ
from .pointcloud import PointCloud

DATA_MODES = ('ascii', 'binary', 'binary_compressed')

_FLOAT_SIZES = {2: 'f2', 4: 'f4', 8: 'f8'}

# field name -> (record attribute, component); component None means a
# packed 0x00RRGGBB color stored in the bits of a float32
_FIELD_TARGETS = {
    'x': ('position', 0),
    'y': ('position', 1),
    'z': ('position', 2),
    'normal_x': ('normal', 0),
    'normal_y': ('normal', 1),
    'normal_z': ('normal', 2),
    'r': ('color', 0),
    'g': ('color', 1),
    'b': ('color', 2),
    'red': ('color', 0),
    'green': ('color', 1),
    'blue': ('color', 2),
    'rgb': ('color', None),
    'rgba': ('color', None),
}

_PREAMBLE = struct.Struct('>II')


class PcdHeader:
    """Parsed PCD header."""

    def __init__(self):
        self.version = None
        self.fields = []
        self.size = []
        self.type = []
        self.count = []
        self.width = 0
        self.height = 1
        self.data = None

    @property
    def n_points(self):
        return self.width * self.height

    @property
    def field_spans(self):
        """Byte span of every field within one record (size * count)."""
        return [s * c for s, c in zip(self.size, self.count)]

    @property
    def field_offsets(self):
        """Byte offset of every field within one record."""
        offsets = [0]
        for span in self.field_spans[:-1]:
            offsets.append(offsets[-1] + span)
        return offsets

    @property
    def record_size(self):
        return sum(self.field_spans)

    def float_fields(self):
        """Indices of the columns that get decoded."""
        return [j for j, t in enumerate(self.type) if t == 'F']

    def validate(self):
        n_fields = len(self.fields)
        if n_fields == 0:
            raise PcdFormatError("header declares no FIELDS")
        if not self.count:
            self.count = [1] * n_fields
        for key, values in (('SIZE', self.size), ('TYPE', self.type), ('COUNT', self.count)):
            if len(values) != n_fields:
                raise PcdFormatError(
                    f"{key} has {len(values)} entries but FIELDS has {n_fields}"
                )
        if any(s <= 0 for s in self.size) or any(c <= 0 for c in self.count):
            raise PcdFormatError("SIZE and COUNT entries must be positive")
        for j in self.float_fields():
            if self.size[j] not in _FLOAT_SIZES:
                raise PcdFormatError(
                    f"unsupported floating point size {self.size[j]} for field {self.fields[j]!r}"
                )
        if self.width < 0 or self.height < 0:
            raise PcdFormatError("WIDTH and HEIGHT must not be negative")
        if self.data not in DATA_MODES:
            raise PcdFormatError(f"unknown DATA mode {self.data!r}")

    def __repr__(self):
        return (f"PcdHeader(fields={self.fields}, size={self.size}, type={self.type}, "
                f"count={self.count}, width={self.width}, height={self.height}, data={self.data!r})")


def _parse_ints(key, values):
    try:
        return [int(v) for v in values]
    except ValueError:
        raise PcdFormatError(f"malformed {key} value in header: {' '.join(values)!r}") from None


def _parse_single(key, values):
    if len(values) < 1:
        raise PcdFormatError(f"{key} line has no value")
    return values[0]


def parse_header(lines):
    """
    Parse header lines up to and including the ``DATA`` line.

    Lines after ``DATA`` are not looked at. Unknown keys and ``#`` comments
    are ignored.

    Raises:
        PcdFormatError: on a malformed token, inconsistent field lists or a
            missing ``DATA`` line
    """
    header = PcdHeader()
    for line in lines:
        tokens = line.split()
        if not tokens or tokens[0].startswith('#'):
            continue
        key, values = tokens[0], tokens[1:]
        if key == 'VERSION':
            header.version = _parse_single(key, values)
        elif key == 'FIELDS':
            header.fields = values
        elif key == 'SIZE':
            header.size = _parse_ints(key, values)
        elif key == 'TYPE':
            header.type = values
        elif key == 'COUNT':
            header.count = _parse_ints(key, values)
        elif key == 'WIDTH':
            header.width = _parse_ints(key, [_parse_single(key, values)])[0]
        elif key == 'HEIGHT':
            header.height = _parse_ints(key, [_parse_single(key, values)])[0]
        elif key == 'DATA':
            header.data = _parse_single(key, values)
            break
    if header.data is None:
        raise PcdFormatError("header has no DATA line")
    header.validate()
    return header


def _split_header(raw):
    """Return the header lines and the byte offset where the body starts."""
    lines = []
    pos = 0
    while pos < len(raw):
        end = raw.find(b'\n', pos)
        if end == -1:
            end = len(raw)
        try:
            line = raw[pos:end].decode('ascii')
        except UnicodeDecodeError:
            raise PcdFormatError(f"non-ASCII bytes in header at offset {pos}") from None
        lines.append(line)
        pos = end + 1
        if line.split()[:1] == ['DATA']:
            return lines, min(pos, len(raw))
    raise PcdFormatError("header has no DATA line")


# ----------------------------------------------------------------------
# body decoding
# ----------------------------------------------------------------------
def _ascii_columns(body, header):
    """Parse the text rows; return ``[(field_index, values), ...]``."""
    n = header.n_points
    token_offsets = [0]
    for c in header.count[:-1]:
        token_offsets.append(token_offsets[-1] + c)
    tokens_per_row = sum(header.count)
    wanted = [(j, token_offsets[j]) for j in header.float_fields()]
    values = np.zeros((n, len(wanted)), dtype=np.float64)

    row = 0
    for line_no, line in enumerate(bytes(body).decode('ascii', errors='replace').splitlines()):
        if row >= n:
            break
        tokens = line.split()
        if not tokens:
            continue
        if len(tokens) < tokens_per_row:
            raise PcdFormatError(
                f"data row {line_no + 1} has {len(tokens)} values, expected {tokens_per_row}"
            )
        for col, (j, t) in enumerate(wanted):
            try:
                values[row, col] = float(tokens[t])
            except ValueError:
                raise PcdFormatError(
                    f"cannot parse {tokens[t]!r} as a float for field "
                    f"{header.fields[j]!r} on data row {line_no + 1}"
                ) from None
        row += 1
    if row < n:
        raise PcdFormatError(f"ascii body has {row} rows, header declares {n} points")
    return [(j, values[:, col]) for col, (j, _) in enumerate(wanted)]


def _binary_columns(rows, header):
    """Decode packed records; return ``[(field_index, values), ...]``."""
    n = header.n_points
    needed = n * header.record_size
    if len(rows) < needed:
        raise PcdFormatError(
            f"binary body has {len(rows)} bytes, {needed} needed for {n} points"
        )
    float_fields = header.float_fields()
    if not float_fields or n == 0:
        return [(j, np.zeros(n)) for j in float_fields]

    offsets = header.field_offsets
    layout = np.dtype({
        'names': [f"f{j}" for j in float_fields],
        'formats': ['=' + _FLOAT_SIZES[header.size[j]] for j in float_fields],
        'offsets': [offsets[j] for j in float_fields],
        'itemsize': header.record_size,
    })
    table = np.frombuffer(rows, dtype=layout, count=n)
    return [(j, table[f"f{j}"]) for j in float_fields]


def column_major_to_rows(buffer, header):
    """
    Re-interleave field-major bytes into per-point records.

    Field ``j`` starts in ``buffer`` at the summed spans of the previous
    fields times the point count; each point's slice of it is copied to the
    field's offset within that point's record.
    """
    n = header.n_points
    spans = header.field_spans
    record_size = header.record_size
    if n == 0:
        return b''
    flat = np.frombuffer(buffer, dtype=np.uint8, count=n * record_size)
    rows = np.empty((n, record_size), dtype=np.uint8)
    src = 0
    dst = 0
    for span in spans:
        rows[:, dst:dst + span] = flat[src:src + span * n].reshape(n, span)
        src += span * n
        dst += span
    return rows.tobytes()


def _decompress(body, header):
    if len(body) < _PREAMBLE.size:
        raise PcdFormatError("compressed body is shorter than its 8 byte preamble")
    _, uncompressed_size = _PREAMBLE.unpack(bytes(body[:_PREAMBLE.size]))
    payload = bytes(body[_PREAMBLE.size:])
    if uncompressed_size == 0:
        decompressed = b''
    else:
        try:
            decompressed = lzf.decompress(payload, uncompressed_size)
        except ValueError as e:
            raise PcdFormatError(f"LZF decompression failed: {e}") from e
        if decompressed is None:
            raise PcdFormatError(
                f"LZF payload expands beyond the declared {uncompressed_size} bytes"
            )
    needed = header.n_points * header.record_size
    if len(decompressed) < needed:
        raise PcdFormatError(
            f"decompressed body has {len(decompressed)} bytes, {needed} needed"
        )
    return column_major_to_rows(decompressed, header)


def _unpack_rgb(values):
    packed = np.asarray(values).astype(np.float32).view(np.uint32)
    return np.stack([(packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF], axis=1)


def _assign_columns(cloud, header, columns):
    for j, values in columns:
        target = _FIELD_TARGETS.get(header.fields[j])
        if target is None:
            continue
        attribute, component = target
        if attribute not in cloud.point_type.fields:
            continue
        dest = cloud.attribute_array(attribute)
        valid = ~np.isnan(values)
        if component is None:
            dest[valid] = _unpack_rgb(values)[valid]
        else:
            dest[valid, component] = values[valid]


def read_pcd(filename, point_type=PointXYZ, dtype=np.float64):
    """
    Load a PCD file into a PointCloud of ``point_type`` records.

    Columns are matched to record attributes by field name; columns the
    point type has no attribute for are ignored. NaN values keep the
    attribute's zero default.

    Args:
        filename: Path of the .pcd file
        point_type: Record variant of the returned cloud
        dtype: Floating point type of the returned cloud

    Raises:
        OSError: the file cannot be opened or read
        PcdFormatError: malformed header, truncated body or bad LZF data
    """
    logger = get_logger()
    with open(filename, 'rb') as f:
        raw = f.read()

    lines, body_start = _split_header(raw)
    header = parse_header(lines)
    body = memoryview(raw)[body_start:]
    logger.debug(f"[read_pcd] {filename}: {header}")

    if header.data == 'ascii':
        columns = _ascii_columns(body, header)
    elif header.data == 'binary':
        columns = _binary_columns(body, header)
    else:
        columns = _binary_columns(_decompress(body, header), header)

    cloud = PointCloud(point_type, size=header.n_points, dtype=dtype)
    _assign_columns(cloud, header, columns)
    if header.height > 1 and header.width > 1:
        cloud.width = header.width
    logger.debug(f"[read_pcd] Loaded {len(cloud)} {point_type.__name__} points from {filename}")
    return cloud


# ----------------------------------------------------------------------
# writing
# ----------------------------------------------------------------------
def _pack_rgb(colors):
    rgb = np.clip(np.rint(np.nan_to_num(colors)), 0, 255).astype(np.uint32)
    packed = (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]
    return packed.view(np.float32)


def _record_table(cloud):
    """Structured array with one PCD column per field of the cloud's records."""
    columns = [(axis, cloud.dtype, cloud.points[:, i]) for i, axis in enumerate('xyz')]
    if cloud.has_colors():
        columns.append(('rgb', np.dtype(np.float32), _pack_rgb(cloud.colors)))
    if cloud.has_normals():
        columns.extend(
            (f"normal_{axis}", cloud.dtype, cloud.normals[:, i]) for i, axis in enumerate('xyz')
        )
    table = np.empty(len(cloud), dtype=[(name, dt.newbyteorder('=')) for name, dt, _ in columns])
    for name, _, values in columns:
        table[name] = values
    return table


def write_pcd(filename, cloud, data='binary'):
    """
    Save a PointCloud as a PCD file.

    Args:
        filename: Destination path
        cloud: The cloud to write
        data: 'ascii', 'binary' or 'binary_compressed'
    """
    if data not in DATA_MODES:
        raise InvalidInputError(f"data must be one of {', '.join(DATA_MODES)}, got {data!r}")
    logger = get_logger()
    table = _record_table(cloud)
    names = table.dtype.names
    n = len(cloud)
    if cloud.is_organized:
        width, height = cloud.width, cloud.height
    else:
        width, height = n, 1

    header = "\n".join([
        "# .PCD v0.7 - Point Cloud Data file format",
        "VERSION 0.7",
        "FIELDS " + " ".join(names),
        "SIZE " + " ".join(str(table.dtype[name].itemsize) for name in names),
        "TYPE " + " ".join('F' for _ in names),
        "COUNT " + " ".join('1' for _ in names),
        f"WIDTH {width}",
        f"HEIGHT {height}",
        "VIEWPOINT 0 0 0 1 0 0 0",
        f"POINTS {n}",
        f"DATA {data}",
    ]) + "\n"

    if data == 'ascii':
        rows = (" ".join(repr(float(record[name])) for name in names) for record in table)
        body = "".join(row + "\n" for row in rows).encode('ascii')
    elif data == 'binary':
        body = table.tobytes()
    else:
        uncompressed = b"".join(np.ascontiguousarray(table[name]).tobytes() for name in names)
        if uncompressed:
            compressed = lzf.compress(uncompressed, len(uncompressed) + len(uncompressed) // 16 + 64)
            if compressed is None:
                raise PointCloudError("LZF compression failed")
        else:
            compressed = b''
        body = _PREAMBLE.pack(len(compressed), len(uncompressed)) + compressed

    with open(filename, 'wb') as f:
        f.write(header.encode('ascii'))
        f.write(body)
    logger.debug(f"[write_pcd] Wrote {n} points to {filename} ({data})")
