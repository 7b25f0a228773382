"""
Tests for the Shapefile parser (SHX + SHP + DBF + PRJ).
"""

import struct

import pytest
from conftest import LV95_WKT, build_dbf, build_shp_shx, parts_content, point_content

from geoloader.core.config import Settings
from geoloader.core.errors import (
    ShapefileComponentError,
    ShapefileHeaderError,
    ShapefileSizeError,
)
from geoloader.core.shapefile.parser import ShapefileParser, find_companions, parse_shapefile
from geoloader.models.crs import CoordinateSystem, DetectionMethod
from geoloader.models.geometry import GeometryType
from geoloader.models.issues import IssueCode, IssueSeverity


@pytest.fixture
def parser(config: Settings) -> ShapefileParser:
    return ShapefileParser(config)


def _parse(parser: ShapefileParser, components, **kwargs):
    return parser.parse(components["shp"], components["shx"], components["dbf"], **kwargs)


class TestParse:
    """Tests for parsing in-memory components."""

    def test_points_with_attributes(self, parser, point_shapefile) -> None:
        """Test geometry joined with typed DBF attributes."""
        result = _parse(parser, point_shapefile)

        assert len(result.records) == 3
        assert result.fields == ["NAME", "POP"]
        first = result.records[0]
        assert first.record_number == 1
        assert first.geometry_type is GeometryType.POINT
        assert first.attributes == {"NAME": "Bern", "POP": 12.5}
        assert result.records[1].attributes["POP"] is None

    def test_bounding_box_is_recomputed(self, parser, point_shapefile) -> None:
        """Test record envelopes come from coordinates, not the file."""
        result = _parse(parser, point_shapefile)
        bbox = result.records[0].bounding_box
        assert bbox.to_tuple() == (2600000.0, 1200000.0, 2600000.0, 1200000.0)
        assert result.bounds.to_tuple() == (2600000.0, 1199000.0, 2602500.0, 1201000.0)

    def test_detects_from_bounds_without_prj(self, parser, point_shapefile) -> None:
        """Test bounds analysis is used when no PRJ is supplied."""
        result = _parse(parser, point_shapefile)
        assert result.detection.system is CoordinateSystem.SWISS_LV95
        assert result.detection.method is DetectionMethod.BOUNDS_ANALYSIS
        assert result.issues.by_code(IssueCode.MISSING_PROJECTION)

    def test_prj_takes_precedence(self, parser, point_shapefile) -> None:
        """Test a recognized PRJ is used instead of bounds analysis."""
        result = _parse(parser, point_shapefile, prj_data=LV95_WKT.encode())
        assert result.detection.system is CoordinateSystem.SWISS_LV95
        assert result.detection.method is DetectionMethod.PROJECTION_TEXT
        assert not result.issues.by_code(IssueCode.MISSING_PROJECTION)

    def test_unrecognized_prj_falls_back_to_bounds(self, parser, point_shapefile) -> None:
        """Test an unknown PRJ is reported and bounds analysis used."""
        result = _parse(parser, point_shapefile, prj_data=b'PROJCS["Mystery"]')
        assert result.detection.system is CoordinateSystem.SWISS_LV95
        assert result.issues.by_code(IssueCode.UNRECOGNIZED_PROJECTION)

    def test_polygon_records(self, parser) -> None:
        """Test polygons parse with their ring structure."""
        ring = [(7.0, 46.0), (7.0, 47.0), (8.0, 47.0), (8.0, 46.0), (7.0, 46.0)]
        shp, shx = build_shp_shx([parts_content(5, [ring])], shape_type=5)
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",)])

        result = parser.parse(shp, shx, dbf)

        record = result.records[0]
        assert record.geometry_type is GeometryType.POLYGON
        assert record.to_shapely().area == pytest.approx(1.0)
        assert result.detection.system is CoordinateSystem.WGS84

    def test_degenerate_geometry_is_kept(self, parser) -> None:
        """Test degenerate records stay in the output with a warning."""
        shp, shx = build_shp_shx([parts_content(3, [[(0.0, 0.0)]])], shape_type=3)
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",)])

        result = parser.parse(shp, shx, dbf)

        assert len(result.records) == 1
        assert len(result.issues.by_code(IssueCode.DEGENERATE_GEOMETRY)) == 1

    def test_bad_record_is_skipped(self, parser) -> None:
        """Test an unreadable record is skipped and parsing continues."""
        good = point_content(2600000.0, 1200000.0)
        bad = struct.pack("<i4dii", 3, 0, 0, 0, 0, 1, 50)
        shp, shx = build_shp_shx([good, bad, good])
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",), ("2",), ("3",)])

        result = parser.parse(shp, shx, dbf)

        assert [r.record_number for r in result.records] == [1, 3]
        issues = result.issues.by_code(IssueCode.GEOMETRY_ERROR)
        assert len(issues) == 1
        assert issues[0].record_number == 2
        assert issues[0].severity is IssueSeverity.ERROR
        assert result.issues.has_errors

    def test_unsupported_shape_type_is_skipped(self, parser) -> None:
        """Test MultiPatch records are skipped with a warning."""
        multipatch = struct.pack("<i4dii", 31, 0, 0, 1, 1, 0, 0)
        shp, shx = build_shp_shx([multipatch, point_content(1.0, 2.0)])
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",), ("2",)])

        result = parser.parse(shp, shx, dbf)

        assert len(result.records) == 1
        assert result.issues.by_code(IssueCode.UNSUPPORTED_SHAPE_TYPE)

    def test_null_shape_is_kept(self, parser) -> None:
        """Test null shapes become records without geometry."""
        shp, shx = build_shp_shx([struct.pack("<i", 0)])
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",)])

        result = parser.parse(shp, shx, dbf)

        assert result.records[0].geometry is None
        assert result.records[0].bounding_box is None
        assert result.issues.by_code(IssueCode.NULL_SHAPE)

    def test_unknown_field_type_is_reported(self, parser) -> None:
        """Test a memo column is read as text with a warning naming the field."""
        shp, shx = build_shp_shx([point_content(1.0, 2.0)])
        dbf = build_dbf([("ID", "N", 4, 0), ("NOTE", "M", 10, 0)], [("1", "0000000001")])

        result = parser.parse(shp, shx, dbf)

        assert result.records[0].attributes == {"ID": 1.0, "NOTE": "0000000001"}
        unknown = result.issues.by_code(IssueCode.UNKNOWN_FIELD_TYPE)
        assert len(unknown) == 1
        assert unknown[0].details == {"field": "NOTE", "type": "M"}
        assert not result.issues.has_errors

    def test_deleted_row_skips_record(self, parser, point_shapefile) -> None:
        """Test a deleted DBF row omits its record but keeps the join aligned."""
        point_shapefile["dbf"] = build_dbf(
            [("NAME", "C", 10, 0)], [("Bern",), ("Thun",), ("Biel",)], deleted={1}
        )
        result = _parse(parser, point_shapefile)

        assert [r.record_number for r in result.records] == [1, 3]
        assert result.records[1].attributes == {"NAME": "Biel"}
        assert result.issues.by_code(IssueCode.DELETED_RECORD)

    def test_deleted_rows_kept_when_configured(self, point_shapefile) -> None:
        """Test include_deleted_records keeps every record."""
        point_shapefile["dbf"] = build_dbf(
            [("NAME", "C", 10, 0)], [("Bern",), ("Thun",), ("Biel",)], deleted={1}
        )
        config = Settings(_env_file=None, include_deleted_records=True)
        result = _parse(ShapefileParser(config), point_shapefile)
        assert len(result.records) == 3

    def test_count_mismatch_is_fatal(self, parser, point_shapefile) -> None:
        """Test a DBF with a different row count raises."""
        point_shapefile["dbf"] = build_dbf([("NAME", "C", 10, 0)], [("Bern",)])
        with pytest.raises(ShapefileComponentError) as exc_info:
            _parse(parser, point_shapefile)
        assert exc_info.value.details == {"dbf_rows": 1, "shx_records": 3, "component": "dbf"}

    def test_bad_shx_header_is_fatal(self, parser, point_shapefile) -> None:
        """Test a corrupt SHX magic number raises."""
        point_shapefile["shx"] = b"\x00" * 4 + point_shapefile["shx"][4:]
        with pytest.raises(ShapefileHeaderError):
            _parse(parser, point_shapefile)

    def test_size_ceiling(self, point_shapefile) -> None:
        """Test oversized buffers are rejected before parsing."""
        config = Settings(_env_file=None, max_shapefile_size_mb=0)
        with pytest.raises(ShapefileSizeError) as exc_info:
            _parse(ShapefileParser(config), point_shapefile)
        assert exc_info.value.limit_bytes == 0

    def test_unexpected_version_is_reported(self, parser) -> None:
        """Test a version other than 1000 is an info issue."""
        shp, shx = build_shp_shx([point_content(1.0, 2.0)], version=999)
        dbf = build_dbf([("ID", "N", 4, 0)], [("1",)])
        result = parser.parse(shp, shx, dbf)
        assert result.issues.by_code(IssueCode.UNEXPECTED_VERSION)

    def test_cpg_selects_encoding(self, parser, point_shapefile) -> None:
        """Test the .cpg companion decides the DBF text encoding."""
        dbf = build_dbf([("NAME", "C", 10, 0)], [("Zurich",), ("b",), ("c",)])
        point_shapefile["dbf"] = dbf.replace(b"Zurich", "Zürich".encode("cp1252"))
        result = _parse(parser, point_shapefile, cpg_data=b"1252")
        assert result.records[0].attributes["NAME"] == "Zürich"

    def test_to_dict(self, parser, point_shapefile) -> None:
        """Test the result summary is serializable."""
        data = _parse(parser, point_shapefile).to_dict()
        assert data["record_count"] == 3
        assert data["detection"]["system"] == "EPSG:2056"
        assert data["header"]["shape_type_name"] == "POINT"


class TestParsePath:
    """Tests for loading components from disk."""

    def test_reads_companions(self, write_shapefile, point_shapefile, config) -> None:
        """Test .shx/.dbf/.prj are found next to the .shp."""
        path = write_shapefile("places", {**point_shapefile, "prj": LV95_WKT.encode()})
        result = parse_shapefile(path, config)
        assert len(result.records) == 3
        assert result.detection.method is DetectionMethod.PROJECTION_TEXT

    def test_companion_suffix_case_insensitive(self, write_shapefile, point_shapefile) -> None:
        """Test upper-case companion suffixes are found."""
        components = {
            "shp": point_shapefile["shp"],
            "SHX": point_shapefile["shx"],
            "DBF": point_shapefile["dbf"],
        }
        path = write_shapefile("upper", components)
        assert set(find_companions(path)) == {".shx", ".dbf"}

    def test_missing_dbf(self, write_shapefile, point_shapefile, parser) -> None:
        """Test a missing .dbf is a component error."""
        path = write_shapefile(
            "nodbf", {"shp": point_shapefile["shp"], "shx": point_shapefile["shx"]}
        )
        with pytest.raises(ShapefileComponentError) as exc_info:
            parser.parse_path(path)
        assert exc_info.value.details["component"] == "dbf"

    def test_size_checked_before_reading(self, write_shapefile, point_shapefile) -> None:
        """Test the ceiling applies to the file size on disk."""
        path = write_shapefile("big", point_shapefile)
        config = Settings(_env_file=None, max_shapefile_size_mb=0)
        with pytest.raises(ShapefileSizeError):
            ShapefileParser(config).parse_path(path)

    def test_missing_file(self, parser, tmp_path) -> None:
        """Test a missing .shp raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            parser.parse_path(tmp_path / "absent.shp")
