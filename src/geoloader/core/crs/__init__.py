"""
Coordinate system detection and transformation.
"""

from geoloader.core.crs.detector import (
    detect,
    detect_from_header_extents,
    detect_from_point_pattern,
)
from geoloader.core.crs.systems import SYSTEMS, SystemDefinition, get_definition
from geoloader.core.crs.transformer import PointTransform, TransformManager

__all__ = [
    "SYSTEMS",
    "PointTransform",
    "SystemDefinition",
    "TransformManager",
    "detect",
    "detect_from_header_extents",
    "detect_from_point_pattern",
    "get_definition",
]
