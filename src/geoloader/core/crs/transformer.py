"""
Coordinate transformation between the supported systems.

A :class:`TransformManager` owns a cache of point functions keyed by
``(source, target)``. Swiss grids go through pyproj with the fixed oblique
Mercator definitions and 7-parameter datum shift; Web Mercator uses the
closed-form spherical formula; LV95 and LV03 differ by a constant offset.
Pairs with no defined route raise :class:`UnsupportedTransformError` unless
intermediate transforms through WGS84 are enabled.
"""

import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import ProjError
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform as shapely_transform

from geoloader.core.config import Settings, settings as default_settings
from geoloader.core.crs.systems import (
    LV95_LV03_SHIFT,
    SYSTEMS,
    WEB_MERCATOR_MAX_LATITUDE,
    WEB_MERCATOR_RADIUS,
)
from geoloader.core.errors import TransformationError, UnsupportedTransformError
from geoloader.models.crs import CoordinateSystem
from geoloader.models.geometry import BoundingBox, Geometry
from geoloader.models.shapefile import ShapefileRecord
from geoloader.utils.logging import log_performance

logger = logging.getLogger(__name__)

SLOW_TRANSFORM_MS = 250.0

Point = Tuple[float, ...]
ArrayTransform = Callable[[np.ndarray, np.ndarray], Tuple[np.ndarray, np.ndarray]]
TransformCacheKey = Tuple[CoordinateSystem, CoordinateSystem]


class PointTransform:
    """
    Pure point function for one system pair.

    Works on x/y arrays; Z ordinates pass through unchanged.
    """

    def __init__(self, source: CoordinateSystem, target: CoordinateSystem, func: ArrayTransform):
        self.source = source
        self.target = target
        self._func = func

    def transform_arrays(self, x: Any, y: Any) -> Tuple[np.ndarray, np.ndarray]:
        x_arr = np.asarray(x, dtype=float)
        y_arr = np.asarray(y, dtype=float)
        xx, yy = self._func(x_arr, y_arr)
        if not (np.all(np.isfinite(xx)) and np.all(np.isfinite(yy))):
            raise TransformationError(
                f"{self.source.value} -> {self.target.value} produced non-finite coordinates",
                details={"source": self.source.value, "target": self.target.value},
            )
        return xx, yy

    def __call__(self, point: Sequence[float]) -> Point:
        xx, yy = self.transform_arrays([point[0]], [point[1]])
        return (float(xx[0]), float(yy[0])) + tuple(float(v) for v in point[2:3])

    def __repr__(self) -> str:
        return f"PointTransform({self.source.value} -> {self.target.value})"


def _identity(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    return x, y


def _wgs84_to_web_mercator(lon: np.ndarray, lat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    lat = np.clip(lat, -WEB_MERCATOR_MAX_LATITUDE, WEB_MERCATOR_MAX_LATITUDE)
    x = WEB_MERCATOR_RADIUS * np.radians(lon)
    y = WEB_MERCATOR_RADIUS * np.log(np.tan(math.pi / 4 + np.radians(lat) / 2))
    return x, y


def _web_mercator_to_wgs84(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    lon = np.degrees(x / WEB_MERCATOR_RADIUS)
    lat = np.degrees(2 * np.arctan(np.exp(y / WEB_MERCATOR_RADIUS)) - math.pi / 2)
    return lon, lat


def _lv95_to_lv03(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    return x - LV95_LV03_SHIFT[0], y - LV95_LV03_SHIFT[1]


def _lv03_to_lv95(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    return x + LV95_LV03_SHIFT[0], y + LV95_LV03_SHIFT[1]


def _pyproj_transform(source: CoordinateSystem, target: CoordinateSystem) -> ArrayTransform:
    def to_crs(system: CoordinateSystem) -> CRS:
        if system is CoordinateSystem.WGS84:
            return CRS.from_epsg(4326)
        return CRS.from_proj4(SYSTEMS[system].proj4)

    try:
        transformer = Transformer.from_crs(to_crs(source), to_crs(target), always_xy=True)
    except ProjError as e:
        raise TransformationError(
            f"Failed to create transformer {source.value} -> {target.value}: {e}"
        ) from e

    def apply(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        try:
            xx, yy = transformer.transform(x, y, errcheck=True)
        except ProjError as e:
            raise TransformationError(
                f"{source.value} -> {target.value} failed: {e}",
                details={"source": source.value, "target": target.value},
            ) from e
        return np.asarray(xx, dtype=float), np.asarray(yy, dtype=float)

    return apply


def _direct_route(source: CoordinateSystem, target: CoordinateSystem) -> Optional[ArrayTransform]:
    """Build the transform for a supported pair, or None when unsupported."""
    pair = (source, target)
    if pair == (CoordinateSystem.WGS84, CoordinateSystem.WEB_MERCATOR):
        return _wgs84_to_web_mercator
    if pair == (CoordinateSystem.WEB_MERCATOR, CoordinateSystem.WGS84):
        return _web_mercator_to_wgs84
    if pair == (CoordinateSystem.SWISS_LV95, CoordinateSystem.SWISS_LV03):
        return _lv95_to_lv03
    if pair == (CoordinateSystem.SWISS_LV03, CoordinateSystem.SWISS_LV95):
        return _lv03_to_lv95
    if (source.is_swiss and target is CoordinateSystem.WGS84) or (
        source is CoordinateSystem.WGS84 and target.is_swiss
    ):
        return _pyproj_transform(source, target)
    return None


class TransformManager:
    """
    Caching coordinate transformer.

    The cache is append-only and only cleared by :meth:`reset`. Entries are
    pure functions of static definitions, so two threads populating the same
    key concurrently compute equivalent entries and either may win.

    Example:
        manager = TransformManager()
        lon, lat = manager.transform_point(
            (2600000, 1200000), CoordinateSystem.SWISS_LV95, CoordinateSystem.WGS84
        )
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        allow_intermediate: Optional[bool] = None,
    ):
        """
        Initialize TransformManager.

        Args:
            config: Settings instance (defaults to the global settings)
            allow_intermediate: Compose unsupported pairs through WGS84;
                overrides ``config.allow_intermediate_transforms``
        """
        config = config or default_settings
        self.allow_intermediate = (
            config.allow_intermediate_transforms
            if allow_intermediate is None
            else allow_intermediate
        )
        self._cache: Dict[TransformCacheKey, PointTransform] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def reset(self) -> None:
        """Drop every cached transform."""
        self._cache.clear()
        logger.debug("Transform cache cleared")

    def is_supported(self, source: Any, target: Any) -> bool:
        """Whether a direct (or, if enabled, intermediate) route exists."""
        try:
            self.get_transform(source, target)
        except UnsupportedTransformError:
            return False
        return True

    def get_transform(self, source: Any, target: Any) -> PointTransform:
        """
        Look up or build the point function for a system pair.

        Args:
            source: Source system (CoordinateSystem or code)
            target: Target system (CoordinateSystem or code)

        Returns:
            Cached PointTransform

        Raises:
            UnsupportedTransformError: If no route exists between the systems
            TransformationError: If pyproj cannot build the transformer
        """
        source = CoordinateSystem.from_code(source)
        target = CoordinateSystem.from_code(target)
        key = (source, target)

        cached = self._cache.get(key)
        if cached is not None:
            return cached

        entry = PointTransform(source, target, self._build(source, target))
        logger.debug(f"Cached transform {source.value} -> {target.value}")
        return self._cache.setdefault(key, entry)

    def _build(self, source: CoordinateSystem, target: CoordinateSystem) -> ArrayTransform:
        if source is target:
            return _identity
        if CoordinateSystem.NONE in (source, target):
            raise UnsupportedTransformError(source, target)

        route = _direct_route(source, target)
        if route is not None:
            return route

        if self.allow_intermediate:
            first = _direct_route(source, CoordinateSystem.WGS84)
            second = _direct_route(CoordinateSystem.WGS84, target)
            if first is not None and second is not None:
                logger.info(f"Routing {source.value} -> {target.value} through WGS84")

                def composed(x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
                    return second(*first(x, y))

                return composed

        raise UnsupportedTransformError(source, target)

    def transform_point(self, point: Sequence[float], source: Any, target: Any) -> Point:
        """Transform one (x, y[, z]) point; Z is returned unchanged."""
        return self.get_transform(source, target)(point)

    @log_performance(threshold_ms=SLOW_TRANSFORM_MS)
    def transform_points(
        self, points: Sequence[Sequence[float]], source: Any, target: Any
    ) -> List[Point]:
        """Transform a point list in one vectorized call."""
        if len(points) == 0:
            return []
        func = self.get_transform(source, target)
        xx, yy = func.transform_arrays([p[0] for p in points], [p[1] for p in points])
        return [
            (float(x), float(y)) + tuple(float(v) for v in point[2:3])
            for x, y, point in zip(xx, yy, points)
        ]

    def transform_geometry(self, geometry: Geometry, source: Any, target: Any) -> Geometry:
        """Transform every vertex, keeping type, ring structure and Z."""
        points = list(geometry.iter_points())
        if not points:
            return geometry
        transformed = iter(self.transform_points(points, source, target))
        return geometry.map_points(lambda _: next(transformed))

    def transform_bounds(self, bounds: BoundingBox, source: Any, target: Any) -> BoundingBox:
        """Envelope of the transformed box corners."""
        corners = self.transform_points(list(bounds.corners), source, target)
        return BoundingBox.from_points(corners)

    def transform_record(
        self, record: ShapefileRecord, source: Any, target: Any
    ) -> ShapefileRecord:
        """Transform a record's geometry and recompute its bounding box."""
        if record.geometry is None:
            return record
        return record.with_geometry(self.transform_geometry(record.geometry, source, target))

    def transform(
        self,
        geometry_or_points: Union[
            Geometry, BaseGeometry, ShapefileRecord, Sequence[Sequence[float]], Sequence[float]
        ],
        source: Any,
        target: Any,
    ) -> Any:
        """
        Transform any supported input, returning the same shape.

        Accepts a Geometry, a shapely geometry, a ShapefileRecord, a list of
        points or a single point. Same-system calls return the input as is.

        Raises:
            UnsupportedTransformError: If no route exists between the systems
            TransformationError: If a coordinate cannot be projected
            TypeError: For unsupported input types
        """
        func = self.get_transform(source, target)
        if func.source is func.target:
            return geometry_or_points

        if isinstance(geometry_or_points, Geometry):
            return self.transform_geometry(geometry_or_points, source, target)
        if isinstance(geometry_or_points, ShapefileRecord):
            return self.transform_record(geometry_or_points, source, target)
        if isinstance(geometry_or_points, BaseGeometry):
            return shapely_transform(
                lambda x, y, z=None: _with_z(func.transform_arrays(x, y), z),
                geometry_or_points,
            )
        if isinstance(geometry_or_points, np.ndarray):
            if geometry_or_points.size == 0:
                return geometry_or_points.copy()
            if geometry_or_points.ndim == 1:
                return np.asarray(self.transform_point(geometry_or_points, source, target))
            return np.asarray(self.transform_points(geometry_or_points, source, target))
        if isinstance(geometry_or_points, (list, tuple)):
            if len(geometry_or_points) == 0:
                return []
            first = geometry_or_points[0]
            if isinstance(first, (int, float, np.number)):
                return self.transform_point(geometry_or_points, source, target)
            return self.transform_points(geometry_or_points, source, target)

        raise TypeError(f"Cannot transform object of type {type(geometry_or_points).__name__}")


def _with_z(xy: Tuple[np.ndarray, np.ndarray], z: Any) -> Tuple[Any, ...]:
    if z is None:
        return xy
    return xy[0], xy[1], z
