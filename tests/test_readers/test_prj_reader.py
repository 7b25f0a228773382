"""
Tests for PRJ projection text classification.
"""

import pytest
from conftest import LV95_WKT
from pyproj import CRS

from geoloader.core.readers.prj import decode_prj, read_prj
from geoloader.models.crs import CoordinateSystem, DetectionMethod

ESRI_WGS84 = (
    'GEOGCS["GCS_WGS_1984",DATUM["D_WGS_1984",SPHEROID["WGS_1984",6378137.0,298.257223563]],'
    'PRIMEM["Greenwich",0.0],UNIT["Degree",0.0174532925199433]]'
)


class TestReadPrj:
    """Tests for read_prj."""

    @pytest.mark.parametrize(
        "epsg,expected",
        [
            (2056, CoordinateSystem.SWISS_LV95),
            (21781, CoordinateSystem.SWISS_LV03),
            (4326, CoordinateSystem.WGS84),
            (3857, CoordinateSystem.WEB_MERCATOR),
        ],
    )
    def test_ogc_wkt_from_epsg(self, epsg: int, expected: CoordinateSystem) -> None:
        """Test WKT generated by pyproj for each supported system."""
        result = read_prj(CRS.from_epsg(epsg).to_wkt("WKT1_GDAL"))
        assert result.system is expected
        assert result.method is DetectionMethod.PROJECTION_TEXT
        assert result.confidence >= 0.8
        assert result.reasoning

    def test_esri_lv95(self) -> None:
        """Test an ESRI-style LV95 definition."""
        result = read_prj(LV95_WKT)
        assert result.system is CoordinateSystem.SWISS_LV95
        assert result.confidence >= 0.85

    def test_esri_wgs84(self) -> None:
        """Test the ESRI geographic WGS 1984 definition."""
        assert read_prj(ESRI_WGS84).system is CoordinateSystem.WGS84

    def test_bytes_with_bom(self) -> None:
        """Test that a UTF-8 BOM does not prevent recognition."""
        data = b"\xef\xbb\xbf" + LV95_WKT.encode("utf-8")
        assert read_prj(data).system is CoordinateSystem.SWISS_LV95

    def test_false_origin_parameters(self) -> None:
        """Test classification from false easting/northing alone."""
        text = (
            'PROJCS["Custom",PROJECTION["Oblique"],'
            'PARAMETER["False_Easting",600000.0],PARAMETER["False_Northing",200000.0]]'
        )
        result = read_prj(text)
        assert result.system is CoordinateSystem.SWISS_LV03
        assert "false easting" in result.reasoning

    def test_unrecognized_text(self) -> None:
        """Test that unknown projections yield no system with confidence 0."""
        text = CRS.from_epsg(32632).to_wkt("WKT1_GDAL")
        result = read_prj(text)
        assert result.system is None
        assert result.confidence == 0.0
        assert result.method is DetectionMethod.PROJECTION_TEXT
        assert not result.detected

    def test_empty_file(self) -> None:
        """Test that an empty PRJ is unrecognized rather than an error."""
        result = read_prj(b"   \n")
        assert result.system is None
        assert result.reasoning == "PRJ file is empty"


def test_decode_prj_strips_bom_and_whitespace() -> None:
    """Test PRJ decoding."""
    assert decode_prj(b"\xef\xbb\xbf GEOGCS[] \r\n") == "GEOGCS[]"
