"""
Shared fixtures: in-memory Shapefile component builders and DXF documents.
"""

import logging
import struct
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import ezdxf
import pytest

from geoloader.core.config import Settings

Coords = Sequence[Tuple[float, float]]


def point_content(x: float, y: float, z: Optional[float] = None) -> bytes:
    """Content of a Point (or PointZ when ``z`` is given) record."""
    if z is None:
        return struct.pack("<idd", 1, x, y)
    return struct.pack("<idddd", 11, x, y, z, 0.0)


def parts_content(shape_type: int, parts: Sequence[Coords]) -> bytes:
    """Content of a PolyLine (3) or Polygon (5) record."""
    points = [point for part in parts for point in part]
    xs = [p[0] for p in points] or [0.0]
    ys = [p[1] for p in points] or [0.0]
    content = struct.pack("<i4d", shape_type, min(xs), min(ys), max(xs), max(ys))
    content += struct.pack("<ii", len(parts), len(points))
    start = 0
    for part in parts:
        content += struct.pack("<i", start)
        start += len(part)
    for x, y in points:
        content += struct.pack("<dd", x, y)
    return content


def multipoint_content(points: Coords) -> bytes:
    xs = [p[0] for p in points] or [0.0]
    ys = [p[1] for p in points] or [0.0]
    content = struct.pack("<i4di", 8, min(xs), min(ys), max(xs), max(ys), len(points))
    for x, y in points:
        content += struct.pack("<dd", x, y)
    return content


def _main_header(file_length_bytes: int, shape_type: int, version: int = 1000) -> bytes:
    header = struct.pack(">7i", 9994, 0, 0, 0, 0, 0, file_length_bytes // 2)
    header += struct.pack("<ii", version, shape_type)
    header += struct.pack("<8d", 0, 0, 0, 0, 0, 0, 0, 0)
    return header


def build_shp_shx(
    contents: Iterable[bytes], shape_type: int = 1, version: int = 1000
) -> Tuple[bytes, bytes]:
    """Assemble .shp and .shx buffers from record contents."""
    records = b""
    index = b""
    offset = 100
    for number, content in enumerate(contents, start=1):
        index += struct.pack(">ii", offset // 2, len(content) // 2)
        record = struct.pack(">ii", number, len(content) // 2) + content
        records += record
        offset += len(record)

    shp = _main_header(100 + len(records), shape_type, version) + records
    shx = _main_header(100 + len(index), shape_type, version) + index
    return shp, shx


def build_dbf(
    fields: Sequence[Tuple[str, str, int, int]],
    rows: Sequence[Sequence[str]],
    deleted: Optional[Set[int]] = None,
) -> bytes:
    """
    Assemble a dBase III table.

    Args:
        fields: (name, type code, length, decimal count) per column
        rows: Raw text per column; padded to the field width
        deleted: Indices of rows to flag as deleted
    """
    deleted = deleted or set()
    header_length = 32 + 32 * len(fields) + 1
    record_length = 1 + sum(f[2] for f in fields)

    buf = struct.pack("<BBBBIHH20x", 0x03, 124, 5, 17, len(rows), header_length, record_length)
    for name, type_code, length, decimals in fields:
        buf += struct.pack(
            "<11sc4xBB14x", name.encode("ascii"), type_code.encode("ascii"), length, decimals
        )
    buf += b"\x0d"

    for index, row in enumerate(rows):
        buf += b"*" if index in deleted else b" "
        for (_, type_code, length, _), value in zip(fields, row):
            raw = value.encode("utf-8") if isinstance(value, str) else value
            if type_code in ("N", "F"):
                buf += raw.rjust(length)[:length]
            else:
                buf += raw.ljust(length)[:length]
    return buf + b"\x1a"


SWISS_POINTS: List[Tuple[float, float]] = [
    (2600000.0, 1200000.0),
    (2601000.0, 1201000.0),
    (2602500.0, 1199000.0),
]

LV95_WKT = (
    'PROJCS["CH1903+_LV95",GEOGCS["GCS_CH1903+",DATUM["D_CH1903+",'
    'SPHEROID["Bessel_1841",6377397.155,299.1528128]],PRIMEM["Greenwich",0.0],'
    'UNIT["Degree",0.0174532925199433]],PROJECTION["Hotine_Oblique_Mercator_Azimuth_Center"],'
    'PARAMETER["False_Easting",2600000.0],PARAMETER["False_Northing",1200000.0],'
    'PARAMETER["Scale_Factor",1.0],PARAMETER["Azimuth",90.0],'
    'PARAMETER["Longitude_Of_Center",7.439583333333333],'
    'PARAMETER["Latitude_Of_Center",46.95240555555556],UNIT["Meter",1.0]]'
)


@pytest.fixture
def config() -> Settings:
    """Settings isolated from the environment defaults."""
    return Settings(_env_file=None, environment="production")


@pytest.fixture
def point_shapefile() -> Dict[str, bytes]:
    """Three LV95 points with a NAME and POP column."""
    shp, shx = build_shp_shx(point_content(x, y) for x, y in SWISS_POINTS)
    dbf = build_dbf(
        [("NAME", "C", 10, 0), ("POP", "N", 8, 2)],
        [("Bern", "  12.50"), ("Thun", "N/A_____"), ("Biel", "3")],
    )
    return {"shp": shp, "shx": shx, "dbf": dbf}


@pytest.fixture
def write_shapefile(tmp_path: Path):
    """Write Shapefile components to ``tmp_path`` and return the .shp path."""

    def _write(name: str, components: Dict[str, bytes]) -> Path:
        for suffix, data in components.items():
            (tmp_path / f"{name}.{suffix}").write_bytes(data)
        return tmp_path / f"{name}.shp"

    return _write


@pytest.fixture
def dxf_doc():
    """Empty R2010 drawing."""
    return ezdxf.new("R2010")


@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
