"""
Custom exception hierarchy for GeoLoader.

Fatal failures (bad magic numbers, missing companions, oversized files,
unreadable documents, impossible transforms) are raised as exceptions from
this module. Record-level problems are never raised to the caller; they are
collected as issues alongside the partial result (see models.issues).
"""

from typing import Any, Dict, List, Optional


class GeoLoaderException(Exception):
    """
    Base exception for all GeoLoader errors.

    Attributes:
        error_code: String identifier for the error type
        message: User-friendly error message
        details: Technical details for logging/debugging
        suggestions: Optional list of resolution suggestions
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize GeoLoaderException.

        Args:
            message: User-friendly error message
            error_code: String identifier for the error type
            details: Technical details for logging
            suggestions: List of suggestions for resolution
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a serializable dictionary.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}')"
        )


# ---------------------------------------------------------------------------
# Shapefile
# ---------------------------------------------------------------------------


class ShapefileError(GeoLoaderException):
    """Base class for Shapefile component set failures."""


class ShapefileHeaderError(ShapefileError):
    """
    Raised when a .shp or .shx main header is unusable.

    The file code at byte 0 must be 9994 (big-endian) and the buffer must
    hold the full 100-byte header.
    """

    def __init__(
        self,
        message: str,
        file_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if file_code is not None:
            error_details["file_code"] = file_code

        super().__init__(
            message=message,
            error_code="INVALID_HEADER",
            details=error_details,
            suggestions=[
                "Verify the file is an ESRI Shapefile component",
                "Re-export the layer from the source GIS application",
            ],
        )


InvalidHeaderError = ShapefileHeaderError


class ShapefileComponentError(ShapefileError):
    """
    Raised when a companion file is missing or cannot be joined.

    Geometry and attributes are paired by index, so a missing .shx/.dbf or a
    record count mismatch makes the whole file unusable.
    """

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        error_details = details or {}
        if component:
            error_details["component"] = component

        super().__init__(
            message=message,
            error_code="COMPONENT_ERROR",
            details=error_details,
            suggestions=suggestions
            or ["Provide the complete .shp/.shx/.dbf set exported together"],
        )


class DbfFormatError(ShapefileComponentError):
    """Raised when a .dbf buffer is too short or its header is inconsistent."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            component="dbf",
            details=details,
            suggestions=["Verify the .dbf file is a dBase III/IV table"],
        )


class ShapefileGeometryError(ShapefileError):
    """
    Raised when one record's coordinate block cannot be decoded.

    The record parser catches this per record, records an issue and moves on.
    """

    def __init__(
        self,
        message: str,
        record_number: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if record_number is not None:
            error_details["record_number"] = record_number
        self.record_number = record_number

        super().__init__(
            message=message,
            error_code="GEOMETRY_ERROR",
            details=error_details,
        )


class ShapefileSizeError(ShapefileError):
    """Raised when a .shp file exceeds the configured memory ceiling."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            message=(
                f"Shapefile is {size_bytes} bytes, exceeding the limit of "
                f"{limit_bytes} bytes"
            ),
            error_code="FILE_TOO_LARGE",
            details={"size_bytes": size_bytes, "limit_bytes": limit_bytes},
            suggestions=[
                "Split the layer into smaller files",
                "Raise GEOLOADER_MAX_SHAPEFILE_SIZE_MB",
            ],
        )


class IndexOutOfBoundsError(ShapefileError, IndexError):
    """Raised when an SHX lookup addresses an entry past the end of the index."""

    def __init__(self, index: int, record_count: int):
        self.index = index
        self.record_count = record_count
        super().__init__(
            message=f"Record index {index} is out of range (0..{record_count - 1})",
            error_code="INDEX_OUT_OF_BOUNDS",
            details={"index": index, "record_count": record_count},
        )


# ---------------------------------------------------------------------------
# DXF
# ---------------------------------------------------------------------------


class DxfError(GeoLoaderException):
    """Base class for DXF document failures."""


class DxfParseError(DxfError):
    """Raised when a DXF document is structurally unreadable."""

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if line_number:
            error_details["line_number"] = line_number

        super().__init__(
            message=message,
            error_code="DXF_PARSE_ERROR",
            details=error_details,
            suggestions=[
                "Verify the file is an ASCII DXF document",
                "Re-save the drawing from the CAD application",
            ],
        )


class MissingEntitiesError(DxfError):
    """Raised when a DXF document has no ENTITIES section at all."""

    def __init__(self, message: str = "DXF document has no ENTITIES section"):
        super().__init__(
            message=message,
            error_code="MISSING_ENTITIES",
            suggestions=["Check that the drawing was not exported as a template"],
        )


# ---------------------------------------------------------------------------
# Coordinate systems
# ---------------------------------------------------------------------------


class CRSError(GeoLoaderException):
    """Base class for coordinate system failures."""

    def __init__(
        self,
        message: str,
        error_code: str = "CRS_ERROR",
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            suggestions=suggestions,
        )


class TransformationError(CRSError):
    """Raised when a projection primitive fails on a coordinate."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TRANSFORMATION_FAILED",
            details=details,
        )


class UnsupportedTransformError(CRSError):
    """
    Raised when no transform is defined between two coordinate systems.

    Callers that want a best-effort route may enable intermediate transforms,
    which compose the pair through WGS84.
    """

    def __init__(self, source: Any, target: Any):
        self.source = source
        self.target = target
        source_code = getattr(source, "value", source)
        target_code = getattr(target, "value", target)
        super().__init__(
            message=f"No transform defined from {source_code} to {target_code}",
            error_code="UNSUPPORTED_TRANSFORM",
            details={"source": source_code, "target": target_code},
            suggestions=[
                "Transform to WGS84 first and then to the target system",
                "Enable GEOLOADER_ALLOW_INTERMEDIATE_TRANSFORMS",
            ],
        )
