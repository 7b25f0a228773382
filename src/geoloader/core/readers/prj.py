"""
PRJ (WKT projection text) reader.

Classification first asks pyproj to identify the WKT against the EPSG
database; when that fails (ESRI dialects, truncated text) a table of known
names and parameters is matched against the raw text.
"""

import logging
import re
from typing import List, Optional, Pattern, Tuple, Union

from pyproj import CRS
from pyproj.exceptions import CRSError as PyProjCRSError

from geoloader.core.crs.systems import system_for_epsg
from geoloader.models.crs import CoordinateSystem, DetectionMethod, DetectionResult

logger = logging.getLogger(__name__)

EPSG_CONFIDENCE = 0.95
NAME_CONFIDENCE = 0.9
PARAMETER_CONFIDENCE = 0.85
DATUM_CONFIDENCE = 0.8

_EPSG_PATTERN = re.compile(r"EPSG\"?\s*[:,\[]\s*\"?(\d+)", re.IGNORECASE)

# (pattern, system, confidence, description), checked in order
_TEXT_RULES: List[Tuple[Pattern[str], CoordinateSystem, float, str]] = [
    (re.compile(r"CH1903\+|CH1903_plus|LV95", re.IGNORECASE),
     CoordinateSystem.SWISS_LV95, NAME_CONFIDENCE, "names CH1903+/LV95"),
    (re.compile(r"CH1903|LV03", re.IGNORECASE),
     CoordinateSystem.SWISS_LV03, NAME_CONFIDENCE, "names CH1903/LV03"),
    (re.compile(r"Pseudo[ _-]?Mercator|Web[ _-]?Mercator|Popular[ _]Visualisation",
                re.IGNORECASE),
     CoordinateSystem.WEB_MERCATOR, NAME_CONFIDENCE, "names Web Mercator"),
]

_FALSE_EASTING = re.compile(r"False_Easting\"?\s*,\s*([-+\d.eE]+)", re.IGNORECASE)
_FALSE_NORTHING = re.compile(r"False_Northing\"?\s*,\s*([-+\d.eE]+)", re.IGNORECASE)

_FALSE_ORIGINS = {
    (2_600_000.0, 1_200_000.0): CoordinateSystem.SWISS_LV95,
    (600_000.0, 200_000.0): CoordinateSystem.SWISS_LV03,
}

_WGS84_DATUM = re.compile(r"WGS[ _]?(19)?84|D_WGS_1984", re.IGNORECASE)

# ESRI and legacy codes for Web Mercator
_EPSG_ALIASES = {900913: 3857, 3785: 3857, 102100: 3857, 102113: 3857}


def decode_prj(data: Union[bytes, str]) -> str:
    """Decode PRJ bytes as UTF-8 (lossy) and strip BOM and whitespace."""
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    return data.lstrip("\ufeff").strip()


def _from_pyproj(text: str) -> Optional[DetectionResult]:
    try:
        crs = CRS.from_wkt(text)
    except PyProjCRSError as e:
        logger.debug(f"pyproj could not parse PRJ text: {e}")
        return None

    epsg = crs.to_epsg(min_confidence=70)
    system = system_for_epsg(_EPSG_ALIASES.get(epsg, epsg) if epsg else None)
    if system is None:
        return None
    return DetectionResult(
        system=system,
        confidence=EPSG_CONFIDENCE,
        method=DetectionMethod.PROJECTION_TEXT,
        reasoning=f"WKT identified as EPSG:{epsg} ({crs.name})",
    )


def _parameter(pattern: Pattern[str], text: str) -> Optional[float]:
    match = pattern.search(text)
    if match is None:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def _from_text_table(text: str) -> Optional[DetectionResult]:
    is_projected = bool(re.search(r"PROJCS|PROJCRS", text, re.IGNORECASE))

    for match in _EPSG_PATTERN.finditer(text):
        code = int(match.group(1))
        system = system_for_epsg(_EPSG_ALIASES.get(code, code))
        # A GEOGCS authority inside a PROJCS only names the base datum
        if system is CoordinateSystem.WGS84 and is_projected:
            continue
        if system is not None:
            return DetectionResult(
                system=system,
                confidence=EPSG_CONFIDENCE,
                method=DetectionMethod.PROJECTION_TEXT,
                reasoning=f"PRJ text carries authority code EPSG:{code}",
            )

    for pattern, system, confidence, description in _TEXT_RULES:
        if pattern.search(text):
            return DetectionResult(
                system=system,
                confidence=confidence,
                method=DetectionMethod.PROJECTION_TEXT,
                reasoning=f"PRJ text {description}",
            )

    false_easting = _parameter(_FALSE_EASTING, text)
    false_northing = _parameter(_FALSE_NORTHING, text)
    if false_easting is not None and false_northing is not None:
        system = _FALSE_ORIGINS.get((false_easting, false_northing))
        if system is not None:
            return DetectionResult(
                system=system,
                confidence=PARAMETER_CONFIDENCE,
                method=DetectionMethod.PROJECTION_TEXT,
                reasoning=(
                    f"false easting/northing {false_easting:.0f}/{false_northing:.0f} "
                    f"match {system.name}"
                ),
            )

    if not is_projected and re.search(r"GEOGCS|GEOGCRS", text, re.IGNORECASE):
        if _WGS84_DATUM.search(text):
            return DetectionResult(
                system=CoordinateSystem.WGS84,
                confidence=DATUM_CONFIDENCE,
                method=DetectionMethod.PROJECTION_TEXT,
                reasoning="geographic PRJ on the WGS 1984 datum",
            )

    return None


def read_prj(data: Union[bytes, str]) -> DetectionResult:
    """
    Classify PRJ projection text.

    Args:
        data: Raw .prj contents

    Returns:
        DetectionResult with method ProjectionText. Unrecognized text yields
        ``system=None`` with confidence 0.
    """
    text = decode_prj(data)
    if not text:
        return DetectionResult(
            system=None,
            confidence=0.0,
            method=DetectionMethod.PROJECTION_TEXT,
            reasoning="PRJ file is empty",
        )

    result = _from_pyproj(text) or _from_text_table(text)
    if result is not None:
        logger.debug(f"PRJ classified as {result.system}: {result.reasoning}")
        return result

    logger.info("PRJ text did not match any supported coordinate system")
    return DetectionResult(
        system=None,
        confidence=0.0,
        method=DetectionMethod.PROJECTION_TEXT,
        reasoning=f"PRJ text not recognized: {text[:60]}",
    )
