"""
Data models for parsed Shapefiles.
"""

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from shapely.geometry.base import BaseGeometry

from geoloader.models.crs import DetectionResult
from geoloader.models.geometry import BoundingBox, Geometry, GeometryType
from geoloader.models.issues import IssueLog


class ShapeType(IntEnum):
    """ESRI shape type codes."""

    NULL = 0
    POINT = 1
    POLYLINE = 3
    POLYGON = 5
    MULTIPOINT = 8
    POINTZ = 11
    POLYLINEZ = 13
    POLYGONZ = 15
    MULTIPOINTZ = 18
    POINTM = 21
    POLYLINEM = 23
    POLYGONM = 25
    MULTIPOINTM = 28
    MULTIPATCH = 31

    @property
    def base(self) -> "ShapeType":
        """The 2D family this code belongs to (PolygonZ -> Polygon)."""
        if self is ShapeType.NULL or self is ShapeType.MULTIPATCH:
            return self
        return ShapeType(self.value % 10)

    @property
    def has_z(self) -> bool:
        return 10 < self.value < 20

    @property
    def has_m(self) -> bool:
        return 20 < self.value < 30 or self.has_z


@dataclass(frozen=True)
class ShapefileHeader:
    """
    Main file header of a .shp file.

    Attributes:
        file_code: Magic number, always 9994
        file_length_words: Declared file length in 16-bit words
        version: Format version, normally 1000
        shape_type: Shape type shared by all non-null records
        bounds: Declared X/Y (and Z) envelope; informational only
        m_range: Declared M range
    """

    file_code: int
    file_length_words: int
    version: int
    shape_type: int
    bounds: Optional[BoundingBox]
    m_range: Tuple[float, float] = (0.0, 0.0)

    @property
    def file_length_bytes(self) -> int:
        return self.file_length_words * 2

    @property
    def shape_type_name(self) -> str:
        try:
            return ShapeType(self.shape_type).name
        except ValueError:
            return f"UNKNOWN({self.shape_type})"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "file_code": self.file_code,
            "file_length_words": self.file_length_words,
            "version": self.version,
            "shape_type": self.shape_type,
            "shape_type_name": self.shape_type_name,
            "bounds": self.bounds.to_dict() if self.bounds else None,
        }


@dataclass(frozen=True)
class ShapefileRecord:
    """
    One feature: geometry joined with its DBF attributes.

    The bounding box is always recomputed from ``geometry``; a record with a
    null shape has neither.

    Attributes:
        record_number: 1-based record number from the record header
        shape_type: ESRI shape type code of this record
        geometry: Parsed geometry, None for null shapes
        attributes: DBF row for this record
    """

    record_number: int
    shape_type: int
    geometry: Optional[Geometry]
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def bounding_box(self) -> Optional[BoundingBox]:
        return self.geometry.bounds if self.geometry is not None else None

    @property
    def geometry_type(self) -> Optional[GeometryType]:
        return self.geometry.type if self.geometry is not None else None

    @property
    def coordinates(self) -> Any:
        return self.geometry.coordinates if self.geometry is not None else None

    def iter_points(self) -> Iterator[Tuple[float, ...]]:
        if self.geometry is None:
            return iter(())
        return self.geometry.iter_points()

    def with_geometry(self, geometry: Optional[Geometry]) -> "ShapefileRecord":
        """Copy of this record with a different geometry."""
        return replace(self, geometry=geometry)

    def to_shapely(self) -> Optional[BaseGeometry]:
        return self.geometry.to_shapely() if self.geometry is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """GeoJSON-like feature dictionary."""
        bbox = self.bounding_box
        return {
            "type": "Feature",
            "id": self.record_number,
            "geometry": self.geometry.to_geojson() if self.geometry is not None else None,
            "bbox": list(bbox.to_tuple()) if bbox else None,
            "properties": dict(self.attributes),
        }


@dataclass
class ShapefileParseResult:
    """
    Output of a Shapefile parse.

    Attributes:
        header: Main .shp header
        records: Parsed records in file order
        issues: Non-fatal problems found while parsing
        detection: Coordinate system detection outcome
        fields: DBF field names in column order
        duration_ms: Parse time
    """

    header: ShapefileHeader
    records: List[ShapefileRecord]
    issues: IssueLog
    detection: DetectionResult
    fields: List[str] = field(default_factory=list)
    duration_ms: Optional[float] = None

    @property
    def bounds(self) -> Optional[BoundingBox]:
        """Union of all record envelopes."""
        result: Optional[BoundingBox] = None
        for record in self.records:
            bbox = record.bounding_box
            if bbox is not None:
                result = bbox if result is None else result.union(bbox)
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        bounds = self.bounds
        return {
            "header": self.header.to_dict(),
            "record_count": len(self.records),
            "fields": self.fields,
            "bounds": bounds.to_dict() if bounds else None,
            "detection": self.detection.to_dict(),
            "issues": self.issues.to_list(),
            "duration_ms": self.duration_ms,
        }
