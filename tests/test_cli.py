"""
Tests for the geoloader command.
"""

import json
import logging

import ezdxf
import pytest
from conftest import LV95_WKT

from geoloader import __version__
from geoloader.cli import _run_inspect, main


@pytest.fixture(autouse=True)
def _isolate_logging(restore_root_logger):
    yield


@pytest.fixture
def shapefile_path(write_shapefile, point_shapefile):
    return write_shapefile("places", {**point_shapefile, "prj": LV95_WKT.encode()})


class TestInspect:
    """Tests for the inspect subcommand."""

    def test_shapefile_summary(self, shapefile_path, capsys) -> None:
        """Test the human-readable summary of a Shapefile."""
        assert main(["inspect", str(shapefile_path)]) == 0

        out = capsys.readouterr().out
        assert "Shape type:  POINT" in out
        assert "Records:     3" in out
        assert "EPSG:2056" in out

    def test_shapefile_json_with_target(self, shapefile_path, capsys) -> None:
        """Test JSON output with bounds transformed to WGS84."""
        assert main(["inspect", str(shapefile_path), "--json", "--to", "WGS84"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["record_count"] == 3
        assert report["detection"]["method"] == "ProjectionText"
        transformed = report["transformed_bounds"]
        assert transformed["system"] == "EPSG:4326"
        assert 7.0 < transformed["min_x"] < 8.0
        assert 46.0 < transformed["min_y"] < 47.5

    def test_dxf_summary(self, tmp_path, capsys) -> None:
        """Test a drawing is summarized by entity type."""
        doc = ezdxf.new("R2010")
        msp = doc.modelspace()
        msp.add_line((2600000, 1200000), (2601000, 1201000))
        msp.add_circle((2600500, 1200500), radius=5)
        path = tmp_path / "site.dxf"
        doc.saveas(path)

        assert main(["inspect", str(path)]) == 0

        out = capsys.readouterr().out
        assert "Entities:    2" in out
        assert "CIRCLE" in out
        assert "EPSG:2056" in out

    def test_undetected_target(self, tmp_path, capsys) -> None:
        """Test transformed bounds are unavailable without a detected system."""
        doc = ezdxf.new("R2010")
        doc.modelspace().add_line((5000, 5000), (9000, 9000))
        path = tmp_path / "local.dxf"
        doc.saveas(path)

        assert main(["inspect", str(path), "--json", "--to", "LV95"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["detection"]["system"] is None
        assert report["transformed_bounds"] is None

    def test_log_records_carry_input_path(self, write_shapefile, point_shapefile, caplog) -> None:
        """Test records logged while loading carry the input path."""
        path = write_shapefile("towns", point_shapefile)

        with caplog.at_level(logging.INFO, logger="geoloader"):
            assert _run_inspect(str(path), None, as_json=True) == 0

        missing = [
            r for r in caplog.records if getattr(r, "issue_code", None) == "MissingProjection"
        ]
        assert missing
        assert missing[0].input_path == str(path)


class TestErrors:
    """Tests for exit codes on failure."""

    def test_missing_file(self, tmp_path, capsys) -> None:
        """Test a missing path exits with 2."""
        assert main(["inspect", str(tmp_path / "absent.shp")]) == 2
        assert "file not found" in capsys.readouterr().err

    def test_unknown_suffix(self, tmp_path, capsys) -> None:
        """Test unsupported file types exit with 2."""
        path = tmp_path / "data.kml"
        path.write_text("<kml/>", encoding="utf-8")
        assert main(["inspect", str(path)]) == 2
        assert "unsupported file type" in capsys.readouterr().err

    def test_unknown_target(self, shapefile_path, capsys) -> None:
        """Test an unknown --to system exits with 2."""
        assert main(["inspect", str(shapefile_path), "--to", "EPSG:32632"]) == 2
        assert "Unknown coordinate system" in capsys.readouterr().err

    def test_corrupt_file(self, tmp_path, capsys) -> None:
        """Test loader errors exit with 1 and print the error code."""
        path = tmp_path / "broken.shp"
        path.write_bytes(b"\x00" * 120)
        path.with_suffix(".shx").write_bytes(b"\x00" * 120)
        path.with_suffix(".dbf").write_bytes(b"\x00" * 40)

        assert main(["inspect", str(path)]) == 1
        assert "INVALID_HEADER" in capsys.readouterr().err

    def test_no_command(self, capsys) -> None:
        """Test running without a subcommand prints help."""
        assert main([]) == 2
        assert "inspect" in capsys.readouterr().out

    def test_version(self, capsys) -> None:
        """Test --version prints the package version."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out
