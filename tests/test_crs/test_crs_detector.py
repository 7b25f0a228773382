"""
Tests for coordinate system detection heuristics.
"""

import numpy as np
import pytest

from geoloader.core.crs.detector import (
    detect,
    detect_from_header_extents,
    detect_from_point_pattern,
    envelope_of,
)
from geoloader.models.crs import CoordinateSystem, DetectionMethod, DetectionResult
from geoloader.models.geometry import Geometry


class TestDetect:
    """Tests for envelope-based detection."""

    def test_single_lv95_point(self) -> None:
        """Test a single Swiss-range point is LV95 with high confidence."""
        result = detect([[2600000, 1200000]])
        assert result.system is CoordinateSystem.SWISS_LV95
        assert result.confidence >= 0.8
        assert result.method is DetectionMethod.BOUNDS_ANALYSIS
        assert "CH1903+" in result.reasoning

    def test_lv03(self) -> None:
        """Test LV03 coordinates."""
        result = detect([(600000, 200000), (601000, 201000)])
        assert result.system is CoordinateSystem.SWISS_LV03

    def test_wgs84(self) -> None:
        """Test lon/lat coordinates."""
        result = detect([(7.44, 46.95), (8.54, 47.37)])
        assert result.system is CoordinateSystem.WGS84
        assert result.confidence == pytest.approx(0.8)

    def test_expanded_range_has_lower_confidence(self) -> None:
        """Test a point outside the tight LV95 range scores 0.7."""
        result = detect([(2900000, 1500000)])
        assert result.system is CoordinateSystem.SWISS_LV95
        assert result.confidence == pytest.approx(0.7)

    def test_lat_lon_shaped_fallback(self) -> None:
        """Test longitudes beyond 180 fall back to low-confidence WGS84."""
        result = detect([(200.0, 10.0), (210.0, 20.0)])
        assert result.system is CoordinateSystem.WGS84
        assert result.method is DetectionMethod.FALLBACK
        assert result.confidence == pytest.approx(0.3)

    def test_no_match(self) -> None:
        """Test local engineering coordinates are undetected."""
        result = detect([(5000, 5000), (9000, 9000)])
        assert result.system is None
        assert result.confidence == 0.0
        assert result.method is DetectionMethod.FALLBACK

    def test_empty_input(self) -> None:
        """Test empty input is undetected rather than an error."""
        assert not detect([]).detected

    def test_accepts_geometries_and_arrays(self) -> None:
        """Test Geometry values and numpy arrays are accepted."""
        line = Geometry.line_string([(2600000, 1200000), (2610000, 1210000)])
        assert detect([line]).system is CoordinateSystem.SWISS_LV95
        assert detect(np.array([[7.0, 46.0], [8.0, 47.0]])).system is CoordinateSystem.WGS84

    def test_non_finite_points_ignored(self) -> None:
        """Test NaN points do not spoil the envelope."""
        result = detect([(float("nan"), 1.0), (2600000, 1200000)])
        assert result.system is CoordinateSystem.SWISS_LV95


class TestPointPattern:
    """Tests for share-of-points detection."""

    def test_tolerates_outliers(self) -> None:
        """Test a stray origin point does not prevent LV95 detection."""
        points = [(2600000 + i, 1200000 + i) for i in range(9)] + [(0.0, 0.0)]
        result = detect_from_point_pattern(points)
        assert result.system is CoordinateSystem.SWISS_LV95
        assert result.method is DetectionMethod.POINT_PATTERN
        assert result.confidence == pytest.approx(0.9 * 0.95)

    def test_too_few_points(self) -> None:
        """Test fewer than the minimum points yields None."""
        assert detect_from_point_pattern([(2600000, 1200000)], min_points=3) is None

    def test_below_threshold(self) -> None:
        """Test scattered points below the threshold yield None."""
        points = [(2600000, 1200000), (5000, 5000), (6000, 6000), (7000, 7000)]
        assert detect_from_point_pattern(points, threshold=0.5) is None


class TestHeaderExtents:
    """Tests for $EXTMIN/$EXTMAX detection."""

    def test_tight_lv95(self) -> None:
        """Test tight extents score 0.9."""
        result = detect_from_header_extents((2600000, 1200000, 0), (2700000, 1250000, 0))
        assert result.system is CoordinateSystem.SWISS_LV95
        assert result.confidence == pytest.approx(0.9)
        assert result.method is DetectionMethod.HEADER_EXTENTS

    def test_expanded_lv95(self) -> None:
        """Test expanded extents score 0.7."""
        result = detect_from_header_extents((2100000, 1100000), (2200000, 1150000))
        assert result.confidence == pytest.approx(0.7)

    def test_wgs84_extents(self) -> None:
        """Test geographic extents score as a tight match."""
        result = detect_from_header_extents((7.0, 46.0), (8.0, 47.0))
        assert result.system is CoordinateSystem.WGS84
        assert result.confidence == pytest.approx(0.9)

    @pytest.mark.parametrize(
        "ext_min,ext_max",
        [
            (None, (1.0, 1.0)),
            ((1e20, 1e20, 1e20), (-1e20, -1e20, -1e20)),
            ((10.0, 10.0), (5.0, 5.0)),
            ((5000.0, 5000.0), (9000.0, 9000.0)),
        ],
    )
    def test_unusable_extents(self, ext_min, ext_max) -> None:
        """Test missing, unset, inverted and unmatched extents yield None."""
        assert detect_from_header_extents(ext_min, ext_max) is None


class TestDetectionResult:
    """Tests for DetectionResult invariants."""

    def test_confidence_range(self) -> None:
        """Test confidence outside [0, 1] is rejected."""
        with pytest.raises(ValueError):
            DetectionResult(CoordinateSystem.WGS84, 1.5, DetectionMethod.FALLBACK)

    def test_reasoning_required(self) -> None:
        """Test non-fallback methods need a reasoning string."""
        with pytest.raises(ValueError):
            DetectionResult(CoordinateSystem.WGS84, 0.8, DetectionMethod.BOUNDS_ANALYSIS)

    def test_no_system_requires_zero_confidence(self) -> None:
        """Test an undetected result cannot carry confidence."""
        with pytest.raises(ValueError):
            DetectionResult(None, 0.4, DetectionMethod.FALLBACK)

    def test_no_system_only_via_fallback(self) -> None:
        """Test range heuristics must name a system."""
        with pytest.raises(ValueError):
            DetectionResult(None, 0.0, DetectionMethod.BOUNDS_ANALYSIS, reasoning="x")

    def test_to_dict(self) -> None:
        """Test serialization uses system codes."""
        result = DetectionResult(
            CoordinateSystem.SWISS_LV95,
            0.9,
            DetectionMethod.BOUNDS_ANALYSIS,
            reasoning="r",
            alternatives=[CoordinateSystem.WGS84],
        )
        assert result.to_dict() == {
            "system": "EPSG:2056",
            "confidence": 0.9,
            "method": "BoundsAnalysis",
            "reasoning": "r",
            "alternatives": ["EPSG:4326"],
        }


def test_envelope_of() -> None:
    """Test the envelope helper."""
    bbox = envelope_of([(1, 2), (3, -4)])
    assert bbox.to_tuple() == (1.0, -4.0, 3.0, 2.0)
    assert envelope_of([]) is None
