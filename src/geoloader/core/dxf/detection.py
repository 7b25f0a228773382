"""
Coordinate system inference for DXF drawings.

Point patterns from the expanded entities are preferred; the header
extents are the fallback. A drawing matching neither is reported as
undetected, never assumed to be WGS84.
"""

import logging
from typing import Optional, Sequence

from geoloader.core.config import Settings, settings as default_settings
from geoloader.core.crs.detector import detect_from_header_extents, detect_from_point_pattern
from geoloader.models.crs import DetectionResult
from geoloader.models.dxf import DxfDocument, DxfEntity
from geoloader.models.issues import IssueCode, IssueLog

logger = logging.getLogger(__name__)


def detect_dxf_system(
    entities: Sequence[DxfEntity],
    document: DxfDocument,
    issues: IssueLog,
    config: Optional[Settings] = None,
) -> DetectionResult:
    """
    Detect the coordinate system of an expanded drawing.

    Args:
        entities: World-space entities (after block expansion)
        document: Parsed document, for ``$EXTMIN``/``$EXTMAX``
        issues: Receives a NoCoordinateSystemDetected warning on failure
        config: Settings with the point count and confidence thresholds

    Returns:
        DetectionResult
    """
    config = config or default_settings

    points = [point for entity in entities for point in entity.points()]
    result = detect_from_point_pattern(
        points,
        min_points=config.min_detection_points,
        threshold=config.point_pattern_threshold,
    )
    if result is not None:
        return result
    logger.debug(f"Point pattern inconclusive for {len(points)} points, trying header extents")

    result = detect_from_header_extents(document.ext_min, document.ext_max)
    if result is not None:
        return result

    issues.warning(
        IssueCode.NO_COORDINATE_SYSTEM_DETECTED,
        "Coordinate system could not be determined from entity points or header extents",
        details={"point_count": len(points)},
    )
    return DetectionResult.undetected(
        f"{len(points)} points and header extents match no known system"
    )
