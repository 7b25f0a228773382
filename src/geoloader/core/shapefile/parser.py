"""
Shapefile parsing module.

Combines the .shx index, .shp geometry records, .dbf attributes and the
optional .prj projection into ShapefileRecord values, with coordinate
system detection.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

from geoloader.core.config import Settings, settings as default_settings
from geoloader.core.crs.detector import detect
from geoloader.core.errors import ShapefileComponentError, ShapefileGeometryError, ShapefileSizeError
from geoloader.core.readers import dbf, prj, shx
from geoloader.core.shapefile.header import EXPECTED_VERSION, read_shp_header
from geoloader.core.shapefile.records import (
    decode_geometry,
    is_supported_shape_type,
    read_record_content,
    read_shape_type,
)
from geoloader.models.crs import DetectionResult
from geoloader.models.issues import IssueCode, IssueLog
from geoloader.models.shapefile import ShapefileParseResult, ShapefileRecord
from geoloader.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)

COMPANION_SUFFIXES = (".shx", ".dbf", ".prj", ".cpg")


def find_companions(shp_path: Path) -> Dict[str, Path]:
    """
    Locate companion files next to a .shp, matching the suffix case-insensitively.

    Returns:
        Mapping of lower-case suffix (".shx", ...) to existing path
    """
    found: Dict[str, Path] = {}
    stem = shp_path.stem
    for candidate in shp_path.parent.iterdir():
        suffix = candidate.suffix.lower()
        if candidate.stem == stem and suffix in COMPANION_SUFFIXES and candidate.is_file():
            found.setdefault(suffix, candidate)
    return found


class ShapefileParser:
    """
    Parse a Shapefile component set into typed records.

    Handles:
    - SHX-indexed record access with per-record error isolation
    - Point, MultiPoint, PolyLine and Polygon shapes (with Z/M variants)
    - DBF attribute join by record index, deleted-row policy
    - PRJ classification with bounds-detection fallback
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        """
        Initialize Shapefile parser.

        Args:
            config: Settings instance (defaults to the global settings)
        """
        self.config = config or default_settings

    def parse(
        self,
        shp: bytes,
        shx_buf: bytes,
        dbf_buf: bytes,
        prj_data: Optional[Union[bytes, str]] = None,
        cpg_data: Optional[Union[bytes, str]] = None,
        source: Optional[str] = None,
    ) -> ShapefileParseResult:
        """
        Parse in-memory Shapefile components.

        Args:
            shp: .shp contents
            shx_buf: .shx contents
            dbf_buf: .dbf contents
            prj_data: .prj contents, if available
            cpg_data: .cpg contents, if available
            source: Name used in log records

        Returns:
            ShapefileParseResult with records, issues and detection

        Raises:
            ShapefileSizeError: If the .shp buffer exceeds the memory ceiling
            ShapefileHeaderError: If the .shp or .shx header is invalid
            ShapefileComponentError: If the DBF is unreadable or its row count
                differs from the SHX record count
        """
        limit = self.config.max_shapefile_size_bytes
        if len(shp) > limit:
            raise ShapefileSizeError(len(shp), limit)

        issues = IssueLog(source)
        with PerformanceTimer("shapefile.parse", source_file=source) as timer:
            header = read_shp_header(shp)
            if header.version != EXPECTED_VERSION:
                issues.info(
                    IssueCode.UNEXPECTED_VERSION,
                    f"SHP version is {header.version}, expected {EXPECTED_VERSION}",
                )

            shx.read_header(shx_buf)
            entries = shx.read_offsets(shx_buf)

            encoding = self._dbf_encoding(cpg_data)
            dbf_header = dbf.read_dbf_header(dbf_buf)
            for name, type_code in dbf_header.unknown_field_types:
                issues.warning(
                    IssueCode.UNKNOWN_FIELD_TYPE,
                    f"DBF field {name!r} has unknown type {type_code!r}, read as text",
                    details={"field": name, "type": type_code},
                )
            rows = list(dbf.iter_dbf_rows(dbf_buf, dbf_header, encoding=encoding))
            if len(rows) != len(entries):
                raise ShapefileComponentError(
                    f"DBF has {len(rows)} rows but the SHX index has {len(entries)} records",
                    component="dbf",
                    details={"dbf_rows": len(rows), "shx_records": len(entries)},
                )

            records = self._read_records(shp, entries, rows, issues)
            detection = self._detect(prj_data, records, issues)

        logger.log(
            logging.WARNING if issues.has_errors else logging.INFO,
            f"Parsed {len(records)} of {len(entries)} Shapefile records "
            f"({len(issues)} issues, system={detection.system})"
        )
        return ShapefileParseResult(
            header=header,
            records=records,
            issues=issues,
            detection=detection,
            fields=[f.name for f in dbf_header.fields],
            duration_ms=timer.duration_ms,
        )

    def parse_path(self, shp_path: Union[str, Path]) -> ShapefileParseResult:
        """
        Parse a .shp file and its companions from disk.

        The size ceiling is checked from the file's metadata before any
        bytes are read.

        Raises:
            FileNotFoundError: If the .shp file does not exist
            ShapefileSizeError: If the .shp file exceeds the memory ceiling
            ShapefileComponentError: If the .shx or .dbf companion is missing
        """
        shp_path = Path(shp_path)
        if not shp_path.is_file():
            raise FileNotFoundError(f"File not found: {shp_path}")

        size = shp_path.stat().st_size
        limit = self.config.max_shapefile_size_bytes
        if size > limit:
            raise ShapefileSizeError(size, limit)

        companions = find_companions(shp_path)
        for suffix in (".shx", ".dbf"):
            if suffix not in companions:
                raise ShapefileComponentError(
                    f"Missing {suffix} companion for {shp_path.name}",
                    component=suffix.lstrip("."),
                    details={"path": str(shp_path)},
                )

        prj_path = companions.get(".prj")
        cpg_path = companions.get(".cpg")
        return self.parse(
            shp_path.read_bytes(),
            companions[".shx"].read_bytes(),
            companions[".dbf"].read_bytes(),
            prj_data=prj_path.read_bytes() if prj_path else None,
            cpg_data=cpg_path.read_bytes() if cpg_path else None,
            source=shp_path.name,
        )

    def _dbf_encoding(self, cpg_data: Optional[Union[bytes, str]]) -> Optional[str]:
        if self.config.dbf_encoding:
            return self.config.dbf_encoding
        if cpg_data is None:
            return None
        if isinstance(cpg_data, bytes):
            cpg_data = cpg_data.decode("ascii", errors="ignore")
        return dbf.encoding_from_cpg(cpg_data)

    def _read_records(
        self,
        shp: bytes,
        entries: List[shx.ShxIndexEntry],
        rows: List[dbf.DbfRow],
        issues: IssueLog,
    ) -> List[ShapefileRecord]:
        include_deleted = self.config.include_deleted_records
        records: List[ShapefileRecord] = []

        for index, (entry, row) in enumerate(zip(entries, rows)):
            record_number = index + 1
            if row.deleted and not include_deleted:
                issues.info(
                    IssueCode.DELETED_RECORD,
                    f"Record {record_number} is marked deleted in the DBF, skipped",
                    record_number=record_number,
                )
                continue

            try:
                record_number, content = read_record_content(shp, entry.offset_bytes, index)
                shape_type = read_shape_type(content)
                if not is_supported_shape_type(shape_type):
                    issues.warning(
                        IssueCode.UNSUPPORTED_SHAPE_TYPE,
                        f"Record {record_number} has unsupported shape type {shape_type}, skipped",
                        record_number=record_number,
                        details={"shape_type": shape_type},
                    )
                    continue
                decoded = decode_geometry(content, record_number)
            except ShapefileGeometryError as e:
                issues.error(
                    IssueCode.GEOMETRY_ERROR,
                    f"{e.message}, skipped",
                    record_number=e.record_number or record_number,
                    details=e.details,
                )
                continue

            if decoded.geometry is None:
                issues.info(
                    IssueCode.NULL_SHAPE,
                    f"Record {record_number} has a null shape",
                    record_number=record_number,
                )
            for problem in decoded.problems:
                issues.warning(
                    IssueCode.DEGENERATE_GEOMETRY,
                    f"Record {record_number}: {problem}",
                    record_number=record_number,
                )

            records.append(
                ShapefileRecord(
                    record_number=record_number,
                    shape_type=decoded.shape_type,
                    geometry=decoded.geometry,
                    attributes=row.values,
                )
            )
        return records

    def _detect(
        self,
        prj_data: Optional[Union[bytes, str]],
        records: List[ShapefileRecord],
        issues: IssueLog,
    ) -> DetectionResult:
        if prj_data is None:
            issues.info(
                IssueCode.MISSING_PROJECTION,
                "No .prj companion, detecting coordinate system from bounds",
            )
        else:
            from_prj = prj.read_prj(prj_data)
            if from_prj.detected:
                return from_prj
            issues.warning(
                IssueCode.UNRECOGNIZED_PROJECTION,
                f"{from_prj.reasoning}, detecting coordinate system from bounds",
            )

        result = detect(records)
        if not result.detected:
            issues.warning(
                IssueCode.NO_COORDINATE_SYSTEM_DETECTED,
                f"Coordinate system could not be determined: {result.reasoning}",
            )
        return result


def parse_shapefile(
    shp_path: Union[str, Path], config: Optional[Settings] = None
) -> ShapefileParseResult:
    """
    Parse a Shapefile from disk (convenience function).

    Args:
        shp_path: Path to the .shp file
        config: Optional settings override

    Returns:
        ShapefileParseResult
    """
    return ShapefileParser(config).parse_path(shp_path)
