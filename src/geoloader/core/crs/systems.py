"""
Registry of supported coordinate systems.

Each entry carries the PROJ definition used for transformation and the
numeric ranges used for detection. Swiss ranges come in two tiers: a tight
range covering the Swiss territory and an expanded range that still only
fits Swiss grid coordinates (used at lower confidence).
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from geoloader.models.crs import CoordinateSystem

Range = Tuple[float, float]

SWISS_PROJ_TEMPLATE = (
    "+proj=somerc +lat_0=46.95240555555556 +lon_0=7.439583333333333 +k_0=1 "
    "+x_0={x_0} +y_0={y_0} +ellps=bessel "
    "+towgs84=674.374,15.056,405.346,0,0,0,0 +units=m +no_defs"
)

# LV95 = LV03 + (2,000,000, 1,000,000)
LV95_LV03_SHIFT: Tuple[float, float] = (2_000_000.0, 1_000_000.0)

# Spherical Web Mercator
WEB_MERCATOR_RADIUS = 6378137.0
WEB_MERCATOR_MAX_LATITUDE = 85.0511287798066


@dataclass(frozen=True)
class SystemDefinition:
    """
    Static description of one coordinate system.

    Attributes:
        system: Registry key
        name: Human-readable name
        proj4: PROJ definition string, when pyproj is used for it
        tight_x / tight_y: Ranges typical for real data (high confidence)
        expanded_x / expanded_y: Wider ranges still unique to the system
        units: Coordinate units
    """

    system: CoordinateSystem
    name: str
    proj4: Optional[str]
    tight_x: Optional[Range] = None
    tight_y: Optional[Range] = None
    expanded_x: Optional[Range] = None
    expanded_y: Optional[Range] = None
    units: str = "m"

    def in_tight_range(self, x: float, y: float) -> bool:
        return _within(self.tight_x, self.tight_y, x, y)

    def in_expanded_range(self, x: float, y: float) -> bool:
        if self.expanded_x is None:
            return self.in_tight_range(x, y)
        return _within(self.expanded_x, self.expanded_y, x, y)


def _within(x_range: Optional[Range], y_range: Optional[Range], x: float, y: float) -> bool:
    if x_range is None or y_range is None:
        return False
    return x_range[0] <= x <= x_range[1] and y_range[0] <= y <= y_range[1]


SYSTEMS: Dict[CoordinateSystem, SystemDefinition] = {
    CoordinateSystem.SWISS_LV95: SystemDefinition(
        system=CoordinateSystem.SWISS_LV95,
        name="CH1903+ / LV95",
        proj4=SWISS_PROJ_TEMPLATE.format(x_0=2600000, y_0=1200000),
        tight_x=(2_450_000.0, 2_850_000.0),
        tight_y=(1_050_000.0, 1_350_000.0),
        expanded_x=(2_000_000.0, 3_000_000.0),
        expanded_y=(1_000_000.0, 2_000_000.0),
    ),
    CoordinateSystem.SWISS_LV03: SystemDefinition(
        system=CoordinateSystem.SWISS_LV03,
        name="CH1903 / LV03",
        proj4=SWISS_PROJ_TEMPLATE.format(x_0=600000, y_0=200000),
        tight_x=(450_000.0, 850_000.0),
        tight_y=(50_000.0, 350_000.0),
        expanded_x=(400_000.0, 900_000.0),
        expanded_y=(0.0, 400_000.0),
    ),
    CoordinateSystem.WGS84: SystemDefinition(
        system=CoordinateSystem.WGS84,
        name="WGS 84",
        proj4="+proj=longlat +datum=WGS84 +no_defs",
        tight_x=(-180.0, 180.0),
        tight_y=(-90.0, 90.0),
        units="degree",
    ),
    CoordinateSystem.WEB_MERCATOR: SystemDefinition(
        system=CoordinateSystem.WEB_MERCATOR,
        name="WGS 84 / Pseudo-Mercator",
        proj4=None,
    ),
}

# Order in which range heuristics are evaluated; first match wins.
DETECTION_PRIORITY: Tuple[CoordinateSystem, ...] = (
    CoordinateSystem.SWISS_LV95,
    CoordinateSystem.SWISS_LV03,
    CoordinateSystem.WGS84,
)


def get_definition(system: CoordinateSystem) -> SystemDefinition:
    """
    Look up a registry entry.

    Raises:
        KeyError: For ``CoordinateSystem.NONE``
    """
    return SYSTEMS[system]


def system_for_epsg(epsg: Optional[int]) -> Optional[CoordinateSystem]:
    """Registry system with the given EPSG code, if any."""
    if epsg is None:
        return None
    for system in SYSTEMS:
        if system.epsg == epsg:
            return system
    return None
