"""
Decoding of individual .shp geometry records.

Each record is an 8-byte big-endian header (record number, content length
in words) followed by little-endian content starting with the shape type.
Geometry problems that make a record unreadable raise
ShapefileGeometryError; problems that leave a usable but degenerate shape
are returned as messages so the caller can flag the record and keep it.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from geoloader.core.errors import ShapefileGeometryError
from geoloader.models.geometry import Geometry, GeometryType
from geoloader.models.shapefile import ShapeType

RECORD_HEADER_SIZE = 8

SUPPORTED_FAMILIES = (
    ShapeType.POINT,
    ShapeType.MULTIPOINT,
    ShapeType.POLYLINE,
    ShapeType.POLYGON,
)


@dataclass
class DecodedShape:
    """Geometry decoded from one record, plus any degeneracy notes."""

    record_number: int
    shape_type: int
    geometry: Optional[Geometry]
    problems: List[str] = field(default_factory=list)


class _Reader:
    """Bounds-checked little-endian reads over one record's content."""

    def __init__(self, content: memoryview, record_number: int):
        self.content = content
        self.record_number = record_number

    def fail(self, message: str) -> ShapefileGeometryError:
        return ShapefileGeometryError(
            f"Record {self.record_number}: {message}",
            record_number=self.record_number,
        )

    def require(self, end: int, what: str) -> None:
        if end > len(self.content):
            raise self.fail(
                f"{what} needs {end} bytes but the record holds {len(self.content)}"
            )

    def ints(self, offset: int, count: int, what: str) -> Tuple[int, ...]:
        self.require(offset + 4 * count, what)
        return struct.unpack_from(f"<{count}i", self.content, offset)

    def doubles(self, offset: int, count: int, what: str) -> np.ndarray:
        self.require(offset + 8 * count, what)
        if count == 0:
            return np.empty(0, dtype=float)
        values = np.frombuffer(self.content, dtype="<f8", count=count, offset=offset)
        if not np.all(np.isfinite(values)):
            raise self.fail(f"{what} contains non-finite values")
        return values


def read_record_content(buf: bytes, offset: int, record_index: int) -> Tuple[int, memoryview]:
    """
    Locate one record's content.

    Args:
        buf: Complete .shp contents
        offset: Byte offset of the record header (from the SHX index)
        record_index: 0-based index, used for error messages

    Returns:
        (record number, content view starting at the shape type)

    Raises:
        ShapefileGeometryError: If the record header or content lies outside
            the buffer
    """
    if offset < 100 or offset + RECORD_HEADER_SIZE > len(buf):
        raise ShapefileGeometryError(
            f"Record {record_index + 1}: offset {offset} is outside the .shp file",
            record_number=record_index + 1,
            details={"offset": offset},
        )
    record_number, content_words = struct.unpack_from(">ii", buf, offset)
    start = offset + RECORD_HEADER_SIZE
    end = start + content_words * 2
    if content_words < 2 or end > len(buf):
        raise ShapefileGeometryError(
            f"Record {record_number}: content of {content_words * 2} bytes at offset "
            f"{offset} does not fit the .shp file",
            record_number=record_number,
            details={"offset": offset, "content_bytes": content_words * 2},
        )
    return record_number, memoryview(buf)[start:end]


def read_shape_type(content: memoryview) -> int:
    (shape_type,) = struct.unpack_from("<i", content, 0)
    return shape_type


def _with_z(xy: np.ndarray, z: Optional[np.ndarray]) -> np.ndarray:
    if z is None:
        return xy
    return np.column_stack([xy, z])


def _read_z(reader: _Reader, offset: int, count: int) -> np.ndarray:
    # Z range (2 doubles) precedes the Z array
    return reader.doubles(offset + 16, count, "Z array")


def _decode_point(reader: _Reader, shape: ShapeType) -> Geometry:
    xy = reader.doubles(4, 2, "point")
    if shape.has_z:
        z = reader.doubles(20, 1, "point Z")
        return Geometry.point(xy[0], xy[1], z[0])
    return Geometry.point(xy[0], xy[1])


def _decode_multipoint(reader: _Reader, shape: ShapeType) -> DecodedShape:
    (num_points,) = reader.ints(36, 1, "point count")
    if num_points < 0:
        raise reader.fail(f"negative point count {num_points}")
    points_offset = 40
    xy = reader.doubles(points_offset, num_points * 2, "points").reshape(-1, 2)
    z = None
    if shape.has_z:
        z = _read_z(reader, points_offset + 16 * num_points, num_points)

    problems = []
    if num_points == 0:
        problems.append("multipoint has no points")
    geometry = Geometry(GeometryType.MULTI_POINT, _with_z(xy, z).tolist())
    return DecodedShape(0, shape.value, geometry, problems)


def _read_parts(reader: _Reader, shape: ShapeType) -> List[np.ndarray]:
    num_parts, num_points = reader.ints(36, 2, "part and point counts")
    if num_parts < 0 or num_points < 0:
        raise reader.fail(f"negative counts (parts={num_parts}, points={num_points})")

    parts_offset = 44
    starts = list(reader.ints(parts_offset, num_parts, "part index"))
    points_offset = parts_offset + 4 * num_parts
    xy = reader.doubles(points_offset, num_points * 2, "points").reshape(-1, 2)
    z = None
    if shape.has_z:
        z = _read_z(reader, points_offset + 16 * num_points, num_points)
    coords = _with_z(xy, z)

    if num_parts and starts[0] != 0:
        raise reader.fail(f"first part starts at {starts[0]}, expected 0")
    bounds = starts + [num_points]
    for index in range(num_parts):
        if not bounds[index] <= bounds[index + 1] <= num_points:
            raise reader.fail(f"part index {bounds[index]} is out of order or range")

    return [coords[bounds[i]:bounds[i + 1]] for i in range(num_parts)]


def _decode_polyline(reader: _Reader, shape: ShapeType) -> DecodedShape:
    parts = _read_parts(reader, shape)
    problems = []
    if not parts:
        problems.append("polyline has no parts")
    for index, part in enumerate(parts):
        if len(part) < 2:
            problems.append(f"part {index} has {len(part)} point(s), a line needs 2")

    lines = [part.tolist() for part in parts]
    if len(lines) == 1:
        geometry = Geometry(GeometryType.LINE_STRING, lines[0])
    else:
        geometry = Geometry(GeometryType.MULTI_LINE_STRING, lines)
    return DecodedShape(0, shape.value, geometry, problems)


def signed_area(ring: np.ndarray) -> float:
    """Shoelace area; negative for clockwise rings."""
    if len(ring) < 3:
        return 0.0
    x, y = ring[:, 0], ring[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y))


def assemble_polygons(rings: List[np.ndarray]) -> List[List[np.ndarray]]:
    """
    Group rings into polygons by orientation.

    Clockwise rings are shells and start a new polygon; counter-clockwise
    rings are holes of the most recent shell. A hole before any shell starts
    a polygon of its own.
    """
    polygons: List[List[np.ndarray]] = []
    for ring in rings:
        is_hole = signed_area(ring) > 0
        if is_hole and polygons:
            polygons[-1].append(ring)
        else:
            polygons.append([ring])
    return polygons


def _decode_polygon(reader: _Reader, shape: ShapeType) -> DecodedShape:
    rings = _read_parts(reader, shape)
    problems = []
    if not rings:
        problems.append("polygon has no rings")
    for index, ring in enumerate(rings):
        if len(ring) < 4:
            problems.append(f"ring {index} has {len(ring)} point(s), a ring needs 4")
        elif not np.array_equal(ring[0, :2], ring[-1, :2]):
            problems.append(f"ring {index} is not closed")

    polygons = [[ring.tolist() for ring in polygon] for polygon in assemble_polygons(rings)]
    if len(polygons) == 1:
        geometry = Geometry(GeometryType.POLYGON, polygons[0])
    else:
        geometry = Geometry(GeometryType.MULTI_POLYGON, polygons)
    return DecodedShape(0, shape.value, geometry, problems)


def decode_geometry(content: memoryview, record_number: int) -> DecodedShape:
    """
    Decode the geometry payload of one record.

    The caller must have checked that the shape type is supported (see
    :func:`is_supported_shape_type`); null shapes decode to ``geometry=None``.

    Raises:
        ShapefileGeometryError: If counts, part indices or coordinates are
            invalid or the payload is truncated
    """
    reader = _Reader(content, record_number)
    reader.require(4, "shape type")
    shape_type = read_shape_type(content)
    if shape_type == ShapeType.NULL:
        return DecodedShape(record_number, shape_type, None)

    shape = ShapeType(shape_type)
    family = shape.base
    if family is ShapeType.POINT:
        decoded = DecodedShape(0, shape_type, _decode_point(reader, shape))
    elif family is ShapeType.MULTIPOINT:
        decoded = _decode_multipoint(reader, shape)
    elif family is ShapeType.POLYLINE:
        decoded = _decode_polyline(reader, shape)
    elif family is ShapeType.POLYGON:
        decoded = _decode_polygon(reader, shape)
    else:
        raise reader.fail(f"shape type {shape_type} cannot be decoded")

    decoded.record_number = record_number
    return decoded


def is_supported_shape_type(shape_type: int) -> bool:
    """True for null shapes and the Point/MultiPoint/PolyLine/Polygon families."""
    if shape_type == ShapeType.NULL:
        return True
    try:
        return ShapeType(shape_type).base in SUPPORTED_FAMILIES
    except ValueError:
        return False
