"""
SHX index reader.

The .shx file repeats the 100-byte Shapefile main header and then holds one
8-byte entry per record: big-endian int32 offset and content length, both
counted in 16-bit words. Offsets are returned in bytes.
"""

import struct
from typing import List, NamedTuple

import numpy as np

from geoloader.core.errors import IndexOutOfBoundsError, InvalidHeaderError

HEADER_SIZE = 100
ENTRY_SIZE = 8
FILE_CODE = 9994


class ShxIndexEntry(NamedTuple):
    """Location of one geometry record in the .shp file, in bytes."""

    offset_bytes: int
    length_bytes: int


def _require_header(buf: bytes) -> None:
    if len(buf) < HEADER_SIZE:
        raise InvalidHeaderError(
            f"SHX buffer is {len(buf)} bytes, shorter than the {HEADER_SIZE}-byte header",
            details={"length": len(buf)},
        )


def read_header(buf: bytes) -> int:
    """
    Validate the SHX main header and return the declared file length.

    Args:
        buf: Complete .shx file contents

    Returns:
        File length in 16-bit words, as stored at byte 24

    Raises:
        InvalidHeaderError: If the buffer is shorter than 100 bytes or the
            file code at byte 0 is not 9994
    """
    _require_header(buf)
    (file_code,) = struct.unpack_from(">i", buf, 0)
    if file_code != FILE_CODE:
        raise InvalidHeaderError(
            f"SHX file code is {file_code}, expected {FILE_CODE}",
            file_code=file_code,
        )
    (file_length_words,) = struct.unpack_from(">i", buf, 24)
    return file_length_words


def get_record_count(buf: bytes) -> int:
    """Number of complete index entries after the header."""
    return max(len(buf) - HEADER_SIZE, 0) // ENTRY_SIZE


def read_offsets(buf: bytes) -> List[ShxIndexEntry]:
    """
    Read every index entry.

    Only the header length is checked here; callers that need the file code
    validated call :func:`read_header` first. A trailing partial entry is
    ignored.

    Args:
        buf: Complete .shx file contents

    Returns:
        One entry per record with offset and length doubled to bytes
    """
    _require_header(buf)
    count = get_record_count(buf)
    if count == 0:
        return []

    words = np.frombuffer(buf, dtype=">i4", count=count * 2, offset=HEADER_SIZE)
    pairs = words.reshape(count, 2).astype(np.int64) * 2
    return [ShxIndexEntry(int(offset), int(length)) for offset, length in pairs]


def get_record_location(buf: bytes, index: int) -> ShxIndexEntry:
    """
    Constant-time lookup of one index entry.

    Raises:
        IndexOutOfBoundsError: If the entry at ``index`` lies outside the buffer
    """
    position = HEADER_SIZE + index * ENTRY_SIZE
    if index < 0 or position + ENTRY_SIZE > len(buf):
        raise IndexOutOfBoundsError(index, get_record_count(buf))
    offset, length = struct.unpack_from(">ii", buf, position)
    return ShxIndexEntry(offset * 2, length * 2)
