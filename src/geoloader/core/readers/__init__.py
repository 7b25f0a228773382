"""
Stateless decoders for the Shapefile companion files (.shx, .dbf, .prj).
"""

from geoloader.core.readers.dbf import (
    DbfField,
    DbfFieldType,
    DbfHeader,
    DbfRecord,
    DbfRow,
    encoding_from_cpg,
    iter_dbf_rows,
    read_dbf_header,
    read_dbf_records,
)
from geoloader.core.readers.prj import read_prj
from geoloader.core.readers.shx import (
    ShxIndexEntry,
    get_record_count,
    get_record_location,
    read_header,
    read_offsets,
)

__all__ = [
    "DbfField",
    "DbfFieldType",
    "DbfHeader",
    "DbfRecord",
    "DbfRow",
    "ShxIndexEntry",
    "encoding_from_cpg",
    "get_record_count",
    "get_record_location",
    "iter_dbf_rows",
    "read_dbf_header",
    "read_dbf_records",
    "read_header",
    "read_offsets",
    "read_prj",
]
