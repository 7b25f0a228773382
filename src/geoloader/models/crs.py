"""
Data models for coordinate system identification.

This module defines the closed set of coordinate systems the loader knows
about and the result type returned by every detection heuristic.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class CoordinateSystem(str, Enum):
    """Coordinate systems recognized by the detector and transform manager."""

    WGS84 = "EPSG:4326"
    SWISS_LV95 = "EPSG:2056"
    SWISS_LV03 = "EPSG:21781"
    WEB_MERCATOR = "EPSG:3857"
    NONE = "none"

    @property
    def epsg(self) -> Optional[int]:
        """EPSG code of the system, or None for ``NONE``."""
        if self is CoordinateSystem.NONE:
            return None
        return int(self.value.split(":", 1)[1])

    @property
    def is_swiss(self) -> bool:
        """True for the Swiss national grids."""
        return self in (CoordinateSystem.SWISS_LV95, CoordinateSystem.SWISS_LV03)

    @property
    def is_geographic(self) -> bool:
        """True when coordinates are longitude/latitude degrees."""
        return self is CoordinateSystem.WGS84

    @classmethod
    def from_code(cls, code: Any) -> "CoordinateSystem":
        """
        Resolve a system from an EPSG code, ``EPSG:nnnn`` string or member name.

        Args:
            code: ``2056``, ``"EPSG:2056"``, ``"2056"``, ``"SWISS_LV95"``,
                ``"SwissLV95"``, ``"lv95"``, ...

        Returns:
            Matching CoordinateSystem

        Raises:
            ValueError: If the code does not name a known system
        """
        if isinstance(code, cls):
            return code
        if code is None:
            return cls.NONE

        text = str(code).strip()
        if text.isdigit():
            text = f"EPSG:{text}"
        for member in cls:
            if text.upper() == member.value.upper():
                return member

        normalized = text.upper().replace("_", "").replace(" ", "")
        aliases = {
            "WGS84": cls.WGS84,
            "SWISSLV95": cls.SWISS_LV95,
            "LV95": cls.SWISS_LV95,
            "CH1903+": cls.SWISS_LV95,
            "SWISSLV03": cls.SWISS_LV03,
            "LV03": cls.SWISS_LV03,
            "CH1903": cls.SWISS_LV03,
            "WEBMERCATOR": cls.WEB_MERCATOR,
            "NONE": cls.NONE,
        }
        if normalized in aliases:
            return aliases[normalized]
        raise ValueError(f"Unknown coordinate system: {code!r}")

    def __str__(self) -> str:
        return self.value


class DetectionMethod(str, Enum):
    """Heuristic that produced a detection result."""

    BOUNDS_ANALYSIS = "BoundsAnalysis"
    PROJECTION_TEXT = "ProjectionText"
    HEADER_EXTENTS = "HeaderExtents"
    POINT_PATTERN = "PointPattern"
    FALLBACK = "Fallback"


@dataclass(frozen=True)
class DetectionResult:
    """
    Ranked guess of a dataset's coordinate system.

    Attributes:
        system: Detected system, or None when nothing matched
        confidence: Confidence in [0, 1]
        method: Heuristic that produced the guess
        reasoning: Human-readable explanation (required except for Fallback)
        alternatives: Other systems that also matched, in priority order
    """

    system: Optional[CoordinateSystem]
    confidence: float
    method: DetectionMethod
    reasoning: str = ""
    alternatives: Tuple[CoordinateSystem, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate confidence range and the reasoning requirement."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")
        if self.method is not DetectionMethod.FALLBACK and not self.reasoning:
            raise ValueError(f"{self.method.value} detection requires a reasoning string")
        if self.system is None and self.confidence != 0.0:
            raise ValueError("an undetected system must carry confidence 0")
        if self.system is None and self.method not in (
            DetectionMethod.FALLBACK,
            DetectionMethod.PROJECTION_TEXT,
        ):
            raise ValueError(
                f"{self.method.value} detection must name a system; use Fallback instead"
            )
        # Callers may pass a list
        object.__setattr__(self, "alternatives", tuple(self.alternatives))

    @classmethod
    def undetected(cls, reasoning: str = "") -> "DetectionResult":
        """Result for data whose coordinate system could not be determined."""
        return cls(
            system=None,
            confidence=0.0,
            method=DetectionMethod.FALLBACK,
            reasoning=reasoning,
        )

    @property
    def detected(self) -> bool:
        """True when a system was identified."""
        return self.system is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "system": self.system.value if self.system else None,
            "confidence": round(self.confidence, 4),
            "method": self.method.value,
            "reasoning": self.reasoning,
            "alternatives": [alt.value for alt in self.alternatives],
        }
