"""
Data models for DXF drawings.

Entities are immutable; block expansion produces transformed copies. Every
entity can list its representative points (used for coordinate system
detection), check its own shape and convert itself to a Geometry.
"""

import math
from dataclasses import dataclass, field, replace
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from ezdxf.math import BSpline
from shapely.geometry import Polygon as ShapelyPolygon

from geoloader.models.crs import DetectionResult
from geoloader.models.geometry import BoundingBox, Geometry, GeometryType
from geoloader.models.issues import IssueLog

if TYPE_CHECKING:
    from geoloader.core.dxf.matrix import AffineTransform

Point3 = Tuple[float, float, float]

ORIGIN: Point3 = (0.0, 0.0, 0.0)
CIRCLE_SEGMENTS = 64
SPLINE_SEGMENTS = 32


def _finite(point: Sequence[float]) -> bool:
    return all(math.isfinite(value) for value in point)


def _flatten_z(points: Sequence[Sequence[float]]) -> List[Tuple[float, ...]]:
    """Drop Z when every point lies in the Z=0 plane."""
    if all(len(p) < 3 or p[2] == 0.0 for p in points):
        return [(p[0], p[1]) for p in points]
    return [tuple(p) for p in points]


def _arc_points(
    center: Point3, radius: float, start: float, end: float, segments: int
) -> List[Point3]:
    """Points along a counter-clockwise arc from ``start`` to ``end`` degrees."""
    if end <= start:
        end += 360.0
    count = max(2, int(math.ceil(segments * (end - start) / 360.0)) + 1)
    step = (end - start) / (count - 1)
    cx, cy, cz = center
    return [
        (
            cx + radius * math.cos(math.radians(start + i * step)),
            cy + radius * math.sin(math.radians(start + i * step)),
            cz,
        )
        for i in range(count)
    ]


@dataclass(frozen=True)
class DxfEntity:
    """
    Fields shared by every entity.

    Attributes:
        handle: DXF handle, used in issue reports
        layer: Layer name
        line_type: Line type name, if set explicitly
    """

    entity_type: ClassVar[str] = "ENTITY"

    handle: Optional[str] = None
    layer: str = "0"
    line_type: Optional[str] = None

    def points(self) -> List[Point3]:
        """Representative points used for coordinate system detection."""
        return []

    def iter_points(self) -> Iterator[Point3]:
        return iter(self.points())

    def validate(self) -> List[str]:
        """Shape problems; an empty list means the entity is well formed."""
        if not all(_finite(point) for point in self.points()):
            return ["contains non-finite coordinates"]
        return []

    def transform(self, matrix: "AffineTransform") -> "DxfEntity":
        return self

    def to_geometry(self) -> Optional[Geometry]:
        return None

    def with_layer(self, layer: str) -> "DxfEntity":
        return replace(self, layer=layer)

    def to_dict(self) -> Dict[str, Any]:
        geometry = self.to_geometry() if not self.validate() else None
        return {
            "type": self.entity_type,
            "handle": self.handle,
            "layer": self.layer,
            "line_type": self.line_type,
            "geometry": geometry.to_geojson() if geometry else None,
        }


@dataclass(frozen=True)
class DxfLine(DxfEntity):
    entity_type: ClassVar[str] = "LINE"

    start: Point3 = ORIGIN
    end: Point3 = ORIGIN

    def points(self) -> List[Point3]:
        return [self.start, self.end]

    def validate(self) -> List[str]:
        problems = super().validate()
        if len(self.start) != 3 or len(self.end) != 3:
            problems.append("a line needs two 3D points")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfLine":
        return replace(self, start=matrix.apply(self.start), end=matrix.apply(self.end))

    def to_geometry(self) -> Geometry:
        return Geometry(GeometryType.LINE_STRING, _flatten_z([self.start, self.end]))


@dataclass(frozen=True)
class DxfPoint(DxfEntity):
    entity_type: ClassVar[str] = "POINT"

    position: Point3 = ORIGIN

    def points(self) -> List[Point3]:
        return [self.position]

    def transform(self, matrix: "AffineTransform") -> "DxfPoint":
        return replace(self, position=matrix.apply(self.position))

    def to_geometry(self) -> Geometry:
        return Geometry(GeometryType.POINT, _flatten_z([self.position])[0])


@dataclass(frozen=True)
class DxfPolyline(DxfEntity):
    """LWPOLYLINE or POLYLINE; bulge (arc) segments are treated as straight."""

    entity_type: ClassVar[str] = "POLYLINE"

    vertices: Tuple[Point3, ...] = ()
    closed: bool = False

    def points(self) -> List[Point3]:
        return list(self.vertices)

    def validate(self) -> List[str]:
        problems = super().validate()
        if len(self.vertices) < 2:
            problems.append(f"a polyline needs 2 vertices, has {len(self.vertices)}")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfPolyline":
        return replace(self, vertices=tuple(matrix.apply(v) for v in self.vertices))

    def to_geometry(self) -> Geometry:
        vertices = _flatten_z(self.vertices)
        if self.closed and len(vertices) >= 3:
            if vertices[0] != vertices[-1]:
                vertices.append(vertices[0])
            return Geometry(GeometryType.POLYGON, [vertices])
        return Geometry(GeometryType.LINE_STRING, vertices)


@dataclass(frozen=True)
class DxfCircle(DxfEntity):
    entity_type: ClassVar[str] = "CIRCLE"

    center: Point3 = ORIGIN
    radius: float = 0.0

    def points(self) -> List[Point3]:
        return [self.center]

    def validate(self) -> List[str]:
        problems = super().validate()
        if not self.radius > 0:
            problems.append(f"radius must be positive, got {self.radius}")
        return problems

    def transform(self, matrix: "AffineTransform") -> DxfEntity:
        """
        Map the circle; a stretched or sheared transform turns it into an ellipse.
        """
        if not matrix.is_uniform:
            return self.as_ellipse().transform(matrix)
        return replace(
            self, center=matrix.apply(self.center), radius=self.radius * matrix.scale_factor
        )

    def as_ellipse(self) -> "DxfEllipse":
        return DxfEllipse(
            handle=self.handle,
            layer=self.layer,
            line_type=self.line_type,
            center=self.center,
            major_axis=(self.radius, 0.0, 0.0),
        )

    def to_geometry(self) -> Geometry:
        ring = _flatten_z(_arc_points(self.center, self.radius, 0.0, 360.0, CIRCLE_SEGMENTS))
        ring[-1] = ring[0]
        return Geometry(GeometryType.POLYGON, [ring])


@dataclass(frozen=True)
class DxfArc(DxfEntity):
    """Counter-clockwise arc; angles in degrees."""

    entity_type: ClassVar[str] = "ARC"

    center: Point3 = ORIGIN
    radius: float = 0.0
    start_angle: float = 0.0
    end_angle: float = 360.0

    def points(self) -> List[Point3]:
        return [self.center]

    def validate(self) -> List[str]:
        problems = super().validate()
        if not self.radius > 0:
            problems.append(f"radius must be positive, got {self.radius}")
        return problems

    def transform(self, matrix: "AffineTransform") -> DxfEntity:
        """
        Map the arc; a stretched or sheared transform turns it into an
        elliptical arc.
        """
        if not matrix.is_uniform:
            return self.as_ellipse().transform(matrix)
        rotation = matrix.rotation_degrees
        if matrix.is_mirrored:
            # Mirroring reverses direction; swap to stay counter-clockwise
            start, end = rotation - self.end_angle, rotation - self.start_angle
        else:
            start, end = self.start_angle + rotation, self.end_angle + rotation
        return replace(
            self,
            center=matrix.apply(self.center),
            radius=self.radius * matrix.scale_factor,
            start_angle=start % 360.0,
            end_angle=end % 360.0,
        )

    def as_ellipse(self) -> "DxfEllipse":
        start = math.radians(self.start_angle)
        end = math.radians(self.end_angle)
        if end <= start:
            end += 2 * math.pi
        return DxfEllipse(
            handle=self.handle,
            layer=self.layer,
            line_type=self.line_type,
            center=self.center,
            major_axis=(self.radius, 0.0, 0.0),
            start_param=start,
            end_param=end,
        )

    def to_geometry(self) -> Geometry:
        points = _arc_points(
            self.center, self.radius, self.start_angle, self.end_angle, CIRCLE_SEGMENTS
        )
        return Geometry(GeometryType.LINE_STRING, _flatten_z(points))


@dataclass(frozen=True)
class DxfEllipse(DxfEntity):
    """
    Ellipse or elliptical arc.

    ``major_axis`` is the vector from the center to the end of the major
    axis; start/end parameters are in radians.
    """

    entity_type: ClassVar[str] = "ELLIPSE"

    center: Point3 = ORIGIN
    major_axis: Point3 = (1.0, 0.0, 0.0)
    minor_axis_ratio: float = 1.0
    start_param: float = 0.0
    end_param: float = 2 * math.pi

    def points(self) -> List[Point3]:
        return [self.center]

    def validate(self) -> List[str]:
        problems = super().validate()
        if not 0 < self.minor_axis_ratio <= 1:
            problems.append(f"minor axis ratio must be in (0, 1], got {self.minor_axis_ratio}")
        if math.hypot(*self.major_axis) == 0:
            problems.append("major axis has zero length")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfEllipse":
        """
        Map both axes and rebuild the ellipse from their images.

        A mirror reverses the parameter direction, and a stretch may make the
        old minor axis the longer one, in which case the axes swap and the
        parameters shift by a quarter turn. Under shear the mapped axes are no
        longer perpendicular and the result is approximate.
        """
        mx, my = self.major_axis[0], self.major_axis[1]
        ratio = self.minor_axis_ratio
        major = matrix.apply_vector(self.major_axis)
        minor = matrix.apply_vector((-my * ratio, mx * ratio, 0.0))

        span = self.end_param - self.start_param
        if span <= 0:
            span += 2 * math.pi
        start = self.start_param
        if matrix.is_mirrored:
            minor = (-minor[0], -minor[1], -minor[2])
            start = -(self.start_param + span)

        major_length = math.hypot(major[0], major[1])
        minor_length = math.hypot(minor[0], minor[1])
        if minor_length > major_length:
            major, major_length, minor_length = minor, minor_length, major_length
            start -= math.pi / 2

        start %= 2 * math.pi
        return replace(
            self,
            center=matrix.apply(self.center),
            major_axis=major,
            minor_axis_ratio=min(1.0, minor_length / major_length) if major_length else 0.0,
            start_param=start,
            end_param=start + span,
        )

    def to_geometry(self) -> Geometry:
        mx, my = self.major_axis[0], self.major_axis[1]
        nx, ny = -my * self.minor_axis_ratio, mx * self.minor_axis_ratio
        start, end = self.start_param, self.end_param
        if end <= start:
            end += 2 * math.pi
        full = math.isclose(end - start, 2 * math.pi)
        count = max(2, int(math.ceil(CIRCLE_SEGMENTS * (end - start) / (2 * math.pi))) + 1)
        step = (end - start) / (count - 1)
        cx, cy, cz = self.center
        points = [
            (
                cx + math.cos(start + i * step) * mx + math.sin(start + i * step) * nx,
                cy + math.cos(start + i * step) * my + math.sin(start + i * step) * ny,
                cz,
            )
            for i in range(count)
        ]
        coords = _flatten_z(points)
        if full:
            coords[-1] = coords[0]
            return Geometry(GeometryType.POLYGON, [coords])
        return Geometry(GeometryType.LINE_STRING, coords)


@dataclass(frozen=True)
class DxfText(DxfEntity):
    """TEXT or MTEXT."""

    entity_type: ClassVar[str] = "TEXT"

    position: Point3 = ORIGIN
    text: str = ""
    height: float = 0.0
    rotation: float = 0.0

    def points(self) -> List[Point3]:
        return [self.position]

    def transform(self, matrix: "AffineTransform") -> "DxfText":
        return replace(
            self,
            position=matrix.apply(self.position),
            height=self.height * matrix.scale_factor,
            rotation=(self.rotation + matrix.rotation_degrees) % 360.0,
        )

    def to_geometry(self) -> Geometry:
        return Geometry(GeometryType.POINT, _flatten_z([self.position])[0])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["text"] = self.text
        return data


@dataclass(frozen=True)
class DxfInsert(DxfEntity):
    """
    Block reference. ``rows``/``columns`` > 1 make it a MINSERT array.
    """

    entity_type: ClassVar[str] = "INSERT"

    block: str = ""
    position: Point3 = ORIGIN
    scale: Point3 = (1.0, 1.0, 1.0)
    rotation: float = 0.0
    rows: int = 1
    columns: int = 1
    row_spacing: float = 0.0
    col_spacing: float = 0.0

    def points(self) -> List[Point3]:
        return [self.position]

    def validate(self) -> List[str]:
        problems = super().validate()
        if not self.block:
            problems.append("block reference has no block name")
        if any(s == 0 for s in self.scale):
            problems.append(f"scale {self.scale} has a zero component")
        if self.rows < 1 or self.columns < 1:
            problems.append(f"array size {self.rows}x{self.columns} is empty")
        return problems


def _ring_area(ring: Sequence[Sequence[float]]) -> float:
    """Signed XY area (shoelace); positive for counter-clockwise rings."""
    area = 0.0
    for (x1, y1, *_), (x2, y2, *_) in zip(ring, list(ring[1:]) + [ring[0]]):
        area += x1 * y2 - x2 * y1
    return area / 2.0


def _distinct(points: Sequence[Point3]) -> List[Point3]:
    """Drop consecutive repeats, including a closing repeat of the first point."""
    result: List[Point3] = []
    for point in points:
        if not result or point != result[-1]:
            result.append(point)
    if len(result) > 1 and result[0] == result[-1]:
        result.pop()
    return result


@dataclass(frozen=True)
class DxfSolid(DxfEntity):
    """
    Filled triangle or quadrilateral.

    ``vertices`` are in ring order. DXF stores the last two corners of a
    SOLID crosswise; the parser reorders them.
    """

    entity_type: ClassVar[str] = "SOLID"

    vertices: Tuple[Point3, ...] = ()

    def points(self) -> List[Point3]:
        return list(self.vertices)

    def validate(self) -> List[str]:
        problems = super().validate()
        corners = _distinct(self.vertices)
        if not 3 <= len(corners) <= 4:
            problems.append(f"needs 3 or 4 distinct vertices, has {len(corners)}")
        elif math.isclose(_ring_area(corners), 0.0, abs_tol=1e-12):
            problems.append("degenerate face with zero area")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfSolid":
        return replace(self, vertices=tuple(matrix.apply(v) for v in self.vertices))

    def to_geometry(self) -> Geometry:
        ring = _flatten_z(_distinct(self.vertices))
        ring.append(ring[0])
        return Geometry(GeometryType.POLYGON, [ring])


@dataclass(frozen=True)
class DxfFace(DxfSolid):
    """3DFACE; a triangle repeats its third corner as the fourth."""

    entity_type: ClassVar[str] = "3DFACE"


@dataclass(frozen=True)
class DxfHatch(DxfEntity):
    """
    Filled area bounded by one or more closed loops.

    Loops are flattened to vertices when the drawing is read. Loops inside
    another loop are holes; loops outside every other loop are separate
    areas.
    """

    entity_type: ClassVar[str] = "HATCH"

    loops: Tuple[Tuple[Point3, ...], ...] = ()
    pattern: Optional[str] = None
    solid_fill: bool = True

    def points(self) -> List[Point3]:
        return [point for loop in self.loops for point in loop]

    def validate(self) -> List[str]:
        problems = super().validate()
        if not self.loops:
            problems.append("hatch has no boundary loops")
        for index, loop in enumerate(self.loops):
            corners = _distinct(loop)
            if len(corners) < 3:
                problems.append(f"boundary loop {index} has fewer than 3 vertices")
            elif math.isclose(_ring_area(corners), 0.0, abs_tol=1e-12):
                problems.append(f"boundary loop {index} has zero area")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfHatch":
        return replace(
            self, loops=tuple(tuple(matrix.apply(p) for p in loop) for loop in self.loops)
        )

    def to_geometry(self) -> Geometry:
        rings = []
        for loop in self.loops:
            ring = _flatten_z(_distinct(loop))
            ring.append(ring[0])
            rings.append(ring)
        rings.sort(key=lambda ring: abs(_ring_area(ring)), reverse=True)

        shells: List[Tuple[ShapelyPolygon, List[List[Tuple[float, ...]]]]] = []
        for ring in rings:
            outline = ShapelyPolygon(ring)
            for shell, members in shells:
                if shell.contains(outline.representative_point()):
                    members.append(ring)
                    break
            else:
                shells.append((outline, [ring]))

        polygons = [members for _, members in shells]
        if len(polygons) == 1:
            return Geometry(GeometryType.POLYGON, polygons[0])
        return Geometry(GeometryType.MULTI_POLYGON, polygons)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["pattern"] = self.pattern
        data["solid_fill"] = self.solid_fill
        return data


@dataclass(frozen=True)
class DxfSpline(DxfEntity):
    entity_type: ClassVar[str] = "SPLINE"

    degree: int = 3
    control_points: Tuple[Point3, ...] = ()
    knots: Tuple[float, ...] = ()
    weights: Tuple[float, ...] = ()

    def points(self) -> List[Point3]:
        return list(self.control_points)

    def validate(self) -> List[str]:
        problems = super().validate()
        if self.degree < 1:
            problems.append(f"degree must be at least 1, got {self.degree}")
        elif len(self.control_points) < self.degree + 1:
            problems.append(
                f"degree {self.degree} needs {self.degree + 1} control points, "
                f"has {len(self.control_points)}"
            )
        if self.knots and len(self.knots) != len(self.control_points) + self.degree + 1:
            problems.append("knot vector length does not match control points")
        if self.weights and len(self.weights) != len(self.control_points):
            problems.append("weight count does not match control points")
        return problems

    def transform(self, matrix: "AffineTransform") -> "DxfSpline":
        return replace(
            self, control_points=tuple(matrix.apply(p) for p in self.control_points)
        )

    def to_geometry(self) -> Geometry:
        spline = BSpline(
            self.control_points,
            order=self.degree + 1,
            knots=self.knots or None,
            weights=self.weights or None,
        )
        points = [tuple(v) for v in spline.approximate(SPLINE_SEGMENTS)]
        return Geometry(GeometryType.LINE_STRING, _flatten_z(points))


@dataclass(frozen=True)
class DxfBlock:
    """
    Block definition.

    Attributes:
        name: Block name
        position: Base point subtracted from block coordinates on insertion
        entities: Entities in block coordinates
        layer: Layer of the BLOCK entity itself
    """

    name: str
    position: Point3 = ORIGIN
    entities: Tuple[DxfEntity, ...] = ()
    layer: str = "0"


@dataclass(frozen=True)
class DxfLayer:
    """Layer table entry."""

    name: str
    color: Optional[int] = None
    line_type: Optional[str] = None
    frozen: bool = False
    locked: bool = False
    visible: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "color": self.color,
            "line_type": self.line_type,
            "frozen": self.frozen,
            "locked": self.locked,
            "visible": self.visible,
        }


@dataclass
class DxfDocument:
    """
    Parsed drawing before block expansion.

    Attributes:
        entities: Model space entities, INSERTs included
        blocks: Block definitions by name
        layers: Layer table by name
        ext_min / ext_max: ``$EXTMIN``/``$EXTMAX`` header values, when set
        version: ``$ACADVER`` header value
        units: ``$INSUNITS`` header value
    """

    entities: List[DxfEntity] = field(default_factory=list)
    blocks: Dict[str, DxfBlock] = field(default_factory=dict)
    layers: Dict[str, DxfLayer] = field(default_factory=dict)
    ext_min: Optional[Point3] = None
    ext_max: Optional[Point3] = None
    version: Optional[str] = None
    units: Optional[int] = None


@dataclass
class DxfParseResult:
    """
    Output of a DXF load: expanded world-space entities plus diagnostics.

    Attributes:
        document: Parsed document (unexpanded)
        entities: Entities after block expansion
        issues: Non-fatal problems found while parsing and expanding
        detection: Coordinate system detection outcome
        duration_ms: Parse time
    """

    document: DxfDocument
    entities: List[DxfEntity]
    issues: IssueLog
    detection: DetectionResult
    duration_ms: Optional[float] = None

    def geometries(self) -> List[Geometry]:
        """Geometry of every expanded entity that converts to one."""
        result = []
        for entity in self.entities:
            if entity.validate():
                continue
            geometry = entity.to_geometry()
            if geometry is not None:
                result.append(geometry)
        return result

    @property
    def bounds(self) -> Optional[BoundingBox]:
        points = [p for entity in self.entities for p in entity.points() if _finite(p)]
        if not points:
            return None
        return BoundingBox.from_points(points)

    def count_by_type(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for entity in self.entities:
            counts[entity.entity_type] = counts.get(entity.entity_type, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        bounds = self.bounds
        return {
            "entity_count": len(self.entities),
            "entity_types": self.count_by_type(),
            "layers": [layer.to_dict() for layer in self.document.layers.values()],
            "blocks": sorted(self.document.blocks),
            "bounds": bounds.to_dict() if bounds else None,
            "detection": self.detection.to_dict(),
            "issues": self.issues.to_list(),
            "duration_ms": self.duration_ms,
        }
