"""
dBase (.dbf) attribute table reader.

Layout: a 32-byte table header, 32-byte field descriptors terminated by
0x0D, then fixed-width records each prefixed by a one-byte deletion flag
(0x20 live, 0x2A deleted). 0x1A marks end of file.
"""

import codecs
import datetime
import logging
import math
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from geoloader.core.errors import DbfFormatError

logger = logging.getLogger(__name__)

TABLE_HEADER_SIZE = 32
DESCRIPTOR_SIZE = 32
FIELD_TERMINATOR = 0x0D
DELETED_FLAG = 0x2A
EOF_MARKER = 0x1A

DbfRecord = Dict[str, Any]


class DbfFieldType(str, Enum):
    """dBase field type codes."""

    NUMERIC = "N"
    FLOAT = "F"
    CHARACTER = "C"
    LOGICAL = "L"
    DATE = "D"


@dataclass(frozen=True)
class DbfField:
    """
    One column descriptor.

    Attributes:
        name: Field name (up to 10 characters)
        type: Field type
        length: Width in bytes
        decimal_count: Digits after the decimal point (numeric fields)
    """

    name: str
    type: DbfFieldType
    length: int
    decimal_count: int = 0


@dataclass(frozen=True)
class DbfHeader:
    """Decoded table header."""

    version: int
    last_update: Optional[datetime.date]
    record_count: int
    header_length: int
    record_length: int
    fields: Tuple[DbfField, ...]
    unknown_field_types: Tuple[Tuple[str, str], ...] = ()


class DbfRow(NamedTuple):
    """One decoded row in file order."""

    index: int
    deleted: bool
    values: DbfRecord


def _last_update(year: int, month: int, day: int) -> Optional[datetime.date]:
    try:
        return datetime.date(1900 + year, month, day)
    except ValueError:
        return None


def read_dbf_header(buf: bytes, encoding: str = "ascii") -> DbfHeader:
    """
    Parse the table header and field descriptors.

    Unknown field type codes are read as Character and listed as
    (name, code) pairs in ``unknown_field_types``.

    Raises:
        DbfFormatError: If the buffer is too short for the declared header
    """
    if len(buf) < TABLE_HEADER_SIZE + 1:
        raise DbfFormatError(
            f"DBF buffer is {len(buf)} bytes, too short for a table header",
            details={"length": len(buf)},
        )

    version = buf[0]
    year, month, day = buf[1], buf[2], buf[3]
    (record_count,) = struct.unpack_from("<I", buf, 4)
    header_length, record_length = struct.unpack_from("<HH", buf, 8)

    fields: List[DbfField] = []
    unknown: List[Tuple[str, str]] = []
    position = TABLE_HEADER_SIZE
    while position < len(buf) and buf[position] != FIELD_TERMINATOR:
        if position + DESCRIPTOR_SIZE > len(buf):
            raise DbfFormatError(
                "DBF field descriptor array is truncated",
                details={"position": position},
            )
        descriptor = buf[position:position + DESCRIPTOR_SIZE]
        name = descriptor[:11].split(b"\x00", 1)[0].decode(encoding, errors="replace").strip()
        type_code = chr(descriptor[11]).upper()
        try:
            field_type = DbfFieldType(type_code)
        except ValueError:
            logger.debug(f"DBF field {name!r} has unknown type {type_code!r}, reading as text")
            unknown.append((name, type_code))
            field_type = DbfFieldType.CHARACTER
        fields.append(
            DbfField(
                name=name,
                type=field_type,
                length=descriptor[16],
                decimal_count=descriptor[17],
            )
        )
        position += DESCRIPTOR_SIZE

    if header_length < position:
        # Some writers leave header_length at zero
        header_length = position + 1

    computed_length = 1 + sum(f.length for f in fields)
    if record_length < computed_length:
        raise DbfFormatError(
            f"DBF record length {record_length} is smaller than its fields ({computed_length})",
            details={"record_length": record_length, "fields_length": computed_length},
        )

    return DbfHeader(
        version=version,
        last_update=_last_update(year, month, day),
        record_count=record_count,
        header_length=header_length,
        record_length=record_length,
        fields=tuple(fields),
        unknown_field_types=tuple(unknown),
    )


def _parse_number(text: str) -> Optional[float]:
    text = text.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _parse_logical(text: str) -> Optional[bool]:
    text = text.strip()
    if text in ("T", "t", "Y", "y"):
        return True
    if text in ("F", "f", "N", "n"):
        return False
    return None


def _parse_date(text: str) -> Optional[str]:
    text = text.strip()
    if len(text) != 8 or not text.isdigit():
        return None
    try:
        return datetime.date(int(text[:4]), int(text[4:6]), int(text[6:])).isoformat()
    except ValueError:
        return None


def coerce_value(field: DbfField, raw: bytes, encoding: str) -> Any:
    """
    Convert one raw column to its typed value.

    Numeric and float columns become floats (None when unparseable or blank),
    logical columns booleans from T/F/Y/N (None otherwise), dates ISO strings
    (None when invalid) and character columns stripped strings.
    """
    text = raw.decode(encoding, errors="replace")
    if field.type in (DbfFieldType.NUMERIC, DbfFieldType.FLOAT):
        return _parse_number(text)
    if field.type is DbfFieldType.LOGICAL:
        return _parse_logical(text)
    if field.type is DbfFieldType.DATE:
        return _parse_date(text)
    return text.strip().rstrip("\x00")


def detect_encoding(buf: bytes, header: DbfHeader) -> str:
    """UTF-8 when the record area decodes cleanly, otherwise Latin-1."""
    try:
        buf[header.header_length:].decode("utf-8")
    except UnicodeDecodeError:
        return "latin-1"
    return "utf-8"


def iter_dbf_rows(
    buf: bytes,
    header: Optional[DbfHeader] = None,
    encoding: Optional[str] = None,
) -> Iterator[DbfRow]:
    """
    Yield every row in file order, deleted rows included.

    Iteration stops at the declared record count, an end-of-file marker or
    the end of the buffer, whichever comes first.
    """
    header = header or read_dbf_header(buf)
    encoding = encoding or detect_encoding(buf, header)

    for index in range(header.record_count):
        start = header.header_length + index * header.record_length
        if start >= len(buf) or buf[start] == EOF_MARKER:
            break
        if start + header.record_length > len(buf):
            logger.warning(f"DBF record {index} is truncated, stopping")
            break

        deleted = buf[start] == DELETED_FLAG
        position = start + 1
        values: DbfRecord = {}
        for field in header.fields:
            raw = buf[position:position + field.length]
            values[field.name] = coerce_value(field, raw, encoding)
            position += field.length
        yield DbfRow(index=index, deleted=deleted, values=values)


def read_dbf_records(
    buf: bytes,
    include_deleted: bool = False,
    encoding: Optional[str] = None,
) -> List[DbfRecord]:
    """
    Read all attribute rows.

    Args:
        buf: Complete .dbf file contents
        include_deleted: Keep rows whose deletion flag is set
        encoding: Text encoding; detected when omitted

    Returns:
        Ordered field-to-value mappings
    """
    return [
        row.values
        for row in iter_dbf_rows(buf, encoding=encoding)
        if include_deleted or not row.deleted
    ]


def encoding_from_cpg(text: str) -> Optional[str]:
    """
    Resolve a .cpg code page declaration to a Python codec name.

    Bare Windows code page numbers ("1252") map to ``cp1252``; ESRI's
    "88591" style names map to the ISO-8859 codecs. Returns None when the
    declaration names no codec Python knows.
    """
    name = text.strip().strip("\x00").strip()
    if not name:
        return None
    if name.isdigit():
        name = f"iso-8859-{name[4:]}" if name.startswith("8859") else f"cp{name}"
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning(f"Unknown DBF code page {text.strip()!r}")
        return None
