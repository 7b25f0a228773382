"""
Value types produced by the loaders.
"""

from geoloader.models.crs import CoordinateSystem, DetectionMethod, DetectionResult
from geoloader.models.dxf import (
    DxfArc,
    DxfBlock,
    DxfCircle,
    DxfDocument,
    DxfEllipse,
    DxfEntity,
    DxfFace,
    DxfHatch,
    DxfInsert,
    DxfLayer,
    DxfLine,
    DxfParseResult,
    DxfPoint,
    DxfPolyline,
    DxfSolid,
    DxfSpline,
    DxfText,
)
from geoloader.models.geometry import BoundingBox, Geometry, GeometryType
from geoloader.models.issues import IssueCode, IssueLog, IssueSeverity, ParseIssue
from geoloader.models.shapefile import (
    ShapefileHeader,
    ShapefileParseResult,
    ShapefileRecord,
    ShapeType,
)

__all__ = [
    "BoundingBox",
    "CoordinateSystem",
    "DetectionMethod",
    "DetectionResult",
    "DxfArc",
    "DxfBlock",
    "DxfCircle",
    "DxfDocument",
    "DxfEllipse",
    "DxfEntity",
    "DxfFace",
    "DxfHatch",
    "DxfInsert",
    "DxfLayer",
    "DxfLine",
    "DxfParseResult",
    "DxfPoint",
    "DxfPolyline",
    "DxfSolid",
    "DxfSpline",
    "DxfText",
    "Geometry",
    "GeometryType",
    "IssueCode",
    "IssueLog",
    "IssueSeverity",
    "ParseIssue",
    "ShapeType",
    "ShapefileHeader",
    "ShapefileParseResult",
    "ShapefileRecord",
]
