"""
Geometry value types shared by the Shapefile and DXF pipelines.

``Geometry`` is a closed tagged union: the ``type`` tag fixes how deeply the
``coordinates`` are nested, so every traversal dispatches on the tag instead
of probing the shape of the data at runtime.

    Point            (x, y[, z])
    MultiPoint       (point, ...)
    LineString       (point, ...)
    MultiLineString  ((point, ...), ...)
    Polygon          (ring, ...)              first ring is the shell
    MultiPolygon     ((ring, ...), ...)
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Sequence, Tuple

from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

Point = Tuple[float, ...]


class GeometryType(str, Enum):
    """Geometry variants, named as in GeoJSON."""

    POINT = "Point"
    MULTI_POINT = "MultiPoint"
    LINE_STRING = "LineString"
    MULTI_LINE_STRING = "MultiLineString"
    POLYGON = "Polygon"
    MULTI_POLYGON = "MultiPolygon"

    @property
    def depth(self) -> int:
        """Number of sequence levels wrapped around each point."""
        return _DEPTH[self]


_DEPTH: Dict[GeometryType, int] = {
    GeometryType.POINT: 0,
    GeometryType.MULTI_POINT: 1,
    GeometryType.LINE_STRING: 1,
    GeometryType.MULTI_LINE_STRING: 2,
    GeometryType.POLYGON: 2,
    GeometryType.MULTI_POLYGON: 3,
}


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned envelope of a set of coordinates.

    Attributes:
        min_x: Minimum X coordinate (or longitude)
        min_y: Minimum Y coordinate (or latitude)
        max_x: Maximum X coordinate (or longitude)
        max_y: Maximum Y coordinate (or latitude)
        min_z: Minimum Z, when every point carries one
        max_z: Maximum Z, when every point carries one
    """

    min_x: float
    min_y: float
    max_x: float
    max_y: float
    min_z: Optional[float] = None
    max_z: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate bounding box."""
        if self.min_x > self.max_x:
            raise ValueError(f"min_x ({self.min_x}) must be <= max_x ({self.max_x})")
        if self.min_y > self.max_y:
            raise ValueError(f"min_y ({self.min_y}) must be <= max_y ({self.max_y})")

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "BoundingBox":
        """
        Compute the envelope of a point sequence.

        Raises:
            ValueError: If ``points`` is empty
        """
        min_x = min_y = min_z = math.inf
        max_x = max_y = max_z = -math.inf
        count = 0
        all_z = True
        for point in points:
            count += 1
            x, y = point[0], point[1]
            min_x, max_x = min(min_x, x), max(max_x, x)
            min_y, max_y = min(min_y, y), max(max_y, y)
            if len(point) > 2:
                min_z, max_z = min(min_z, point[2]), max(max_z, point[2])
            else:
                all_z = False

        if count == 0:
            raise ValueError("cannot compute a bounding box of zero points")

        if all_z:
            return cls(min_x, min_y, max_x, max_y, min_z, max_z)
        return cls(min_x, min_y, max_x, max_y)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    @property
    def corners(self) -> Tuple[Point, Point, Point, Point]:
        """The four 2D corners, counter-clockwise from (min_x, min_y)."""
        return (
            (self.min_x, self.min_y),
            (self.max_x, self.min_y),
            (self.max_x, self.max_y),
            (self.min_x, self.max_y),
        )

    def contains(self, x: float, y: float) -> bool:
        """Check if a point lies within the box (edges included)."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def intersects(self, other: "BoundingBox") -> bool:
        """Check if this bounding box intersects another."""
        return not (
            self.max_x < other.min_x
            or self.min_x > other.max_x
            or self.max_y < other.min_y
            or self.min_y > other.max_y
        )

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box enclosing both boxes."""
        if self.min_z is not None and other.min_z is not None:
            min_z: Optional[float] = min(self.min_z, other.min_z)
            max_z: Optional[float] = max(self.max_z, other.max_z)  # type: ignore[type-var]
        else:
            min_z = max_z = None
        return BoundingBox(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
            min_z,
            max_z,
        )

    def to_tuple(self) -> Tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y)."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data: Dict[str, Any] = {
            "min_x": self.min_x,
            "min_y": self.min_y,
            "max_x": self.max_x,
            "max_y": self.max_y,
        }
        if self.min_z is not None:
            data["min_z"] = self.min_z
            data["max_z"] = self.max_z
        return data


def _freeze(coords: Any, depth: int) -> Any:
    """Convert nested sequences to nested tuples of floats, validating points."""
    if depth == 0:
        point = tuple(float(value) for value in coords)
        if len(point) not in (2, 3):
            raise ValueError(f"a point needs 2 or 3 ordinates, got {len(point)}")
        if not all(math.isfinite(value) for value in point):
            raise ValueError(f"non-finite coordinate {point}")
        return point
    return tuple(_freeze(part, depth - 1) for part in coords)


def _walk(coords: Any, depth: int) -> Iterator[Point]:
    if depth == 0:
        yield coords
        return
    for part in coords:
        yield from _walk(part, depth - 1)


def _map(coords: Any, depth: int, func: Callable[[Point], Sequence[float]]) -> Any:
    if depth == 0:
        return tuple(func(coords))
    return tuple(_map(part, depth - 1, func) for part in coords)


def _to_lists(coords: Any, depth: int) -> Any:
    if depth == 0:
        return list(coords)
    return [_to_lists(part, depth - 1) for part in coords]


@dataclass(frozen=True)
class Geometry:
    """
    Immutable geometry value.

    Coordinates are normalized to nested tuples of finite floats on
    construction; a non-finite ordinate or a point of the wrong arity raises
    ``ValueError``.

    Attributes:
        type: Geometry variant
        coordinates: Nested coordinate tuples, nesting fixed by ``type``
    """

    type: GeometryType
    coordinates: Any

    def __post_init__(self) -> None:
        geometry_type = GeometryType(self.type)
        object.__setattr__(self, "type", geometry_type)
        object.__setattr__(
            self, "coordinates", _freeze(self.coordinates, geometry_type.depth)
        )

    def iter_points(self) -> Iterator[Point]:
        """Yield every vertex in storage order."""
        return _walk(self.coordinates, self.type.depth)

    def map_points(self, func: Callable[[Point], Sequence[float]]) -> "Geometry":
        """
        Apply ``func`` to every vertex, keeping type and nesting.

        Args:
            func: Callable taking a point tuple and returning the new point

        Returns:
            New Geometry of the same type
        """
        return Geometry(self.type, _map(self.coordinates, self.type.depth, func))

    @property
    def point_count(self) -> int:
        return sum(1 for _ in self.iter_points())

    @property
    def is_empty(self) -> bool:
        return self.point_count == 0

    @property
    def has_z(self) -> bool:
        """True when every vertex carries a Z ordinate."""
        points = list(self.iter_points())
        return bool(points) and all(len(point) == 3 for point in points)

    @property
    def bounds(self) -> Optional[BoundingBox]:
        """Envelope recomputed from the coordinates, None when empty."""
        if self.is_empty:
            return None
        return BoundingBox.from_points(self.iter_points())

    def to_geojson(self) -> Dict[str, Any]:
        """GeoJSON geometry object with list coordinates."""
        return {
            "type": self.type.value,
            "coordinates": _to_lists(self.coordinates, self.type.depth),
        }

    def to_shapely(self) -> BaseGeometry:
        """
        Build the equivalent shapely geometry.

        Raises:
            ValueError: If shapely rejects the coordinates (for example a
                polygon ring with fewer than four points)
        """
        try:
            return shape(self.to_geojson())
        except Exception as e:
            raise ValueError(f"cannot build shapely {self.type.value}: {e}") from e

    @classmethod
    def from_shapely(cls, geom: BaseGeometry) -> "Geometry":
        """
        Convert a shapely geometry.

        Raises:
            ValueError: For geometry collections and empty geometries
        """
        if geom.is_empty:
            raise ValueError("cannot convert an empty shapely geometry")
        geojson = mapping(geom)
        try:
            geometry_type = GeometryType(geojson["type"])
        except ValueError:
            raise ValueError(f"unsupported shapely geometry type {geojson['type']}")
        return cls(geometry_type, geojson["coordinates"])

    @classmethod
    def point(cls, x: float, y: float, z: Optional[float] = None) -> "Geometry":
        """Shorthand for a Point geometry."""
        coords = (x, y) if z is None else (x, y, z)
        return cls(GeometryType.POINT, coords)

    @classmethod
    def line_string(cls, points: Iterable[Sequence[float]]) -> "Geometry":
        """Shorthand for a LineString geometry."""
        return cls(GeometryType.LINE_STRING, tuple(points))
