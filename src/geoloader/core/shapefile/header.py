"""
Main .shp file header.

Bytes 0-27 are big-endian (file code, five unused ints, file length in
words); bytes 28-99 are little-endian (version, shape type, Xmin, Ymin,
Xmax, Ymax, Zmin, Zmax, Mmin, Mmax).
"""

import math
import struct

from geoloader.core.errors import ShapefileHeaderError
from geoloader.models.geometry import BoundingBox
from geoloader.models.shapefile import ShapefileHeader

HEADER_SIZE = 100
FILE_CODE = 9994
EXPECTED_VERSION = 1000


def read_shp_header(buf: bytes) -> ShapefileHeader:
    """
    Parse the 100-byte main header of a .shp buffer.

    Declared bounds are kept for information only; record envelopes are
    always recomputed. Non-finite or inverted declared bounds become None.

    Raises:
        ShapefileHeaderError: If the buffer is shorter than 100 bytes or the
            file code is not 9994
    """
    if len(buf) < HEADER_SIZE:
        raise ShapefileHeaderError(
            f"SHP buffer is {len(buf)} bytes, shorter than the {HEADER_SIZE}-byte header",
            details={"length": len(buf)},
        )

    (file_code,) = struct.unpack_from(">i", buf, 0)
    if file_code != FILE_CODE:
        raise ShapefileHeaderError(
            f"SHP file code is {file_code}, expected {FILE_CODE}",
            file_code=file_code,
        )

    (file_length_words,) = struct.unpack_from(">i", buf, 24)
    version, shape_type = struct.unpack_from("<ii", buf, 28)
    x_min, y_min, x_max, y_max, z_min, z_max, m_min, m_max = struct.unpack_from(
        "<8d", buf, 36
    )

    bounds = None
    values = (x_min, y_min, x_max, y_max)
    if all(math.isfinite(v) for v in values) and x_min <= x_max and y_min <= y_max:
        if math.isfinite(z_min) and math.isfinite(z_max) and z_min <= z_max and (z_min or z_max):
            bounds = BoundingBox(x_min, y_min, x_max, y_max, z_min, z_max)
        else:
            bounds = BoundingBox(x_min, y_min, x_max, y_max)

    return ShapefileHeader(
        file_code=file_code,
        file_length_words=file_length_words,
        version=version,
        shape_type=shape_type,
        bounds=bounds,
        m_range=(m_min, m_max),
    )
