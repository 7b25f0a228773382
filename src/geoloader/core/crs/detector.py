"""
Coordinate system detection heuristics.

All functions here are pure: they look at numbers (coordinate envelopes,
individual points, header extents) and compare them against the range
tables in :mod:`geoloader.core.crs.systems`. Swiss grids are checked before
WGS84; the ranges are disjoint today, but the order fixes precedence for
any future system whose range overlaps.
"""

import logging
import math
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from geoloader.core.crs.systems import DETECTION_PRIORITY, SYSTEMS
from geoloader.models.crs import CoordinateSystem, DetectionMethod, DetectionResult
from geoloader.models.geometry import BoundingBox

logger = logging.getLogger(__name__)

TIGHT_CONFIDENCE = 0.9
EXPANDED_CONFIDENCE = 0.7
WGS84_CONFIDENCE = 0.8
LATLON_FALLBACK_CONFIDENCE = 0.3

SWISS_PATTERN_WEIGHT = 0.95
WGS84_PATTERN_WEIGHT = 0.8

# ezdxf initializes $EXTMIN/$EXTMAX to +/-1e20 in drawings never zoomed
UNSET_EXTENT = 1e20


def iter_points(points_or_features: Iterable[Any]) -> Iterator[Tuple[float, ...]]:
    """
    Flatten mixed input into coordinate tuples.

    Accepts point sequences, ``Geometry`` values and any object exposing
    ``iter_points()`` (Shapefile records, DXF entities).
    """
    for item in points_or_features:
        if hasattr(item, "iter_points"):
            yield from item.iter_points()
        else:
            yield tuple(item)


def _finite_xy(points_or_features: Iterable[Any]) -> np.ndarray:
    if isinstance(points_or_features, np.ndarray):
        xy = np.asarray(points_or_features, dtype=float).reshape(-1, points_or_features.shape[-1])[:, :2]
    else:
        xy = np.array(
            [(point[0], point[1]) for point in iter_points(points_or_features)],
            dtype=float,
        ).reshape(-1, 2)
    return xy[np.isfinite(xy).all(axis=1)]


def _classify_envelope(
    min_x: float, min_y: float, max_x: float, max_y: float
) -> List[Tuple[CoordinateSystem, float, str]]:
    """Every system whose range holds both corners, in priority order."""
    matches = []
    for system in DETECTION_PRIORITY:
        definition = SYSTEMS[system]
        if definition.in_tight_range(min_x, min_y) and definition.in_tight_range(max_x, max_y):
            confidence = (
                WGS84_CONFIDENCE if system is CoordinateSystem.WGS84 else TIGHT_CONFIDENCE
            )
            matches.append((system, confidence, "tight"))
        elif definition.in_expanded_range(min_x, min_y) and definition.in_expanded_range(
            max_x, max_y
        ):
            matches.append((system, EXPANDED_CONFIDENCE, "expanded"))
    return matches


def detect(points_or_features: Iterable[Any]) -> DetectionResult:
    """
    Classify data by the envelope of all its coordinates.

    Evaluates Swiss LV95, Swiss LV03 and WGS84 ranges in that order; the
    first match wins and later matches are reported as alternatives. When
    nothing matches, lat/lon-shaped data falls back to WGS84 at low
    confidence and anything else is undetected.

    Args:
        points_or_features: Points, geometries, records or entities

    Returns:
        DetectionResult
    """
    xy = _finite_xy(points_or_features)
    if len(xy) == 0:
        return DetectionResult.undetected("no finite coordinates to analyze")

    min_x, min_y = xy.min(axis=0)
    max_x, max_y = xy.max(axis=0)
    envelope = f"[{min_x:.3f}, {min_y:.3f}, {max_x:.3f}, {max_y:.3f}]"

    matches = _classify_envelope(min_x, min_y, max_x, max_y)
    if matches:
        system, confidence, tier = matches[0]
        logger.debug(f"Envelope {envelope} matched {system} ({tier} range)")
        return DetectionResult(
            system=system,
            confidence=confidence,
            method=DetectionMethod.BOUNDS_ANALYSIS,
            reasoning=(
                f"envelope {envelope} of {len(xy)} points lies within the "
                f"{tier} {SYSTEMS[system].name} range"
            ),
            alternatives=tuple(match[0] for match in matches[1:]),
        )

    if abs(min_x) <= 360 and abs(max_x) <= 360 and abs(min_y) <= 90 and abs(max_y) <= 90:
        return DetectionResult(
            system=CoordinateSystem.WGS84,
            confidence=LATLON_FALLBACK_CONFIDENCE,
            method=DetectionMethod.FALLBACK,
            reasoning=f"envelope {envelope} is lat/lon-shaped but outside [-180, 180]",
        )

    logger.debug(f"Envelope {envelope} matched no known coordinate system")
    return DetectionResult.undetected(f"envelope {envelope} matches no known system")


def detect_from_point_pattern(
    points: Iterable[Any],
    min_points: int = 3,
    threshold: float = 0.5,
) -> Optional[DetectionResult]:
    """
    Classify data by the share of individual points inside each tight range.

    Unlike :func:`detect` this tolerates outliers (a stray origin point in a
    CAD drawing does not spoil the match).

    Args:
        points: Representative points
        min_points: Minimum number of finite points required
        threshold: Minimum confidence for a match

    Returns:
        DetectionResult, or None when there are too few points or no system
        reaches ``threshold``
    """
    xy = _finite_xy(points)
    if len(xy) < max(min_points, 1):
        return None

    x, y = xy[:, 0], xy[:, 1]
    scored = []
    for system in DETECTION_PRIORITY:
        definition = SYSTEMS[system]
        (x_lo, x_hi), (y_lo, y_hi) = definition.tight_x, definition.tight_y
        share = float(np.mean((x >= x_lo) & (x <= x_hi) & (y >= y_lo) & (y <= y_hi)))
        weight = WGS84_PATTERN_WEIGHT if system is CoordinateSystem.WGS84 else SWISS_PATTERN_WEIGHT
        scored.append((system, share * weight, share))

    matches = [entry for entry in scored if entry[1] >= threshold]
    if not matches:
        return None

    system, confidence, share = matches[0]
    return DetectionResult(
        system=system,
        confidence=confidence,
        method=DetectionMethod.POINT_PATTERN,
        reasoning=(
            f"{share:.0%} of {len(xy)} points lie within the {SYSTEMS[system].name} range"
        ),
        alternatives=tuple(entry[0] for entry in matches[1:]),
    )


def _is_unset_extent(point: Sequence[float]) -> bool:
    return any(not math.isfinite(value) or abs(value) >= UNSET_EXTENT for value in point[:2])


def detect_from_header_extents(
    ext_min: Optional[Sequence[float]],
    ext_max: Optional[Sequence[float]],
) -> Optional[DetectionResult]:
    """
    Classify a drawing by its ``$EXTMIN``/``$EXTMAX`` header variables.

    Tight range matches score 0.9, expanded range matches 0.7. Missing,
    unset (+/-1e20) or inverted extents yield None.
    """
    if ext_min is None or ext_max is None:
        return None
    if _is_unset_extent(ext_min) or _is_unset_extent(ext_max):
        return None
    if ext_min[0] > ext_max[0] or ext_min[1] > ext_max[1]:
        return None

    matches = _classify_envelope(ext_min[0], ext_min[1], ext_max[0], ext_max[1])
    if not matches:
        return None

    system, confidence, tier = matches[0]
    if system is CoordinateSystem.WGS84:
        confidence = TIGHT_CONFIDENCE if tier == "tight" else EXPANDED_CONFIDENCE
    return DetectionResult(
        system=system,
        confidence=confidence,
        method=DetectionMethod.HEADER_EXTENTS,
        reasoning=(
            f"header extents ({ext_min[0]:.3f}, {ext_min[1]:.3f}) - "
            f"({ext_max[0]:.3f}, {ext_max[1]:.3f}) lie within the {tier} "
            f"{SYSTEMS[system].name} range"
        ),
        alternatives=tuple(match[0] for match in matches[1:]),
    )


def envelope_of(points_or_features: Iterable[Any]) -> Optional[BoundingBox]:
    """Bounding box of all finite coordinates, or None when there are none."""
    xy = _finite_xy(points_or_features)
    if len(xy) == 0:
        return None
    return BoundingBox.from_points(xy.tolist())
