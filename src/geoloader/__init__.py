"""
GeoLoader - Shapefile and DXF ingestion with coordinate system detection.

This package parses ESRI Shapefile component sets and DXF drawings into a
common feature representation, detects their coordinate reference system and
transforms coordinates between Swiss LV95/LV03, WGS84 and Web Mercator.
"""

from geoloader.core.crs import TransformManager, detect
from geoloader.core.dxf import DxfParser, load_dxf
from geoloader.core.shapefile import ShapefileParser, parse_shapefile
from geoloader.models import CoordinateSystem, DetectionResult, Geometry

__version__ = "0.1.0"

__all__ = [
    "CoordinateSystem",
    "DetectionResult",
    "DxfParser",
    "Geometry",
    "ShapefileParser",
    "TransformManager",
    "detect",
    "load_dxf",
    "parse_shapefile",
]
