"""
Shapefile record parsing.
"""

from geoloader.core.shapefile.header import read_shp_header
from geoloader.core.shapefile.parser import ShapefileParser, find_companions, parse_shapefile
from geoloader.core.shapefile.records import assemble_polygons, decode_geometry

__all__ = [
    "ShapefileParser",
    "assemble_polygons",
    "decode_geometry",
    "find_companions",
    "parse_shapefile",
    "read_shp_header",
]
