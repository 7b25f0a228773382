"""
DXF entity parsing and block expansion.
"""

from geoloader.core.dxf.detection import detect_dxf_system
from geoloader.core.dxf.expander import BlockExpander, expand_blocks
from geoloader.core.dxf.matrix import AffineTransform
from geoloader.core.dxf.parser import DxfParser, load_dxf

__all__ = [
    "AffineTransform",
    "BlockExpander",
    "DxfParser",
    "detect_dxf_system",
    "expand_blocks",
    "load_dxf",
]
