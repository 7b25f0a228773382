"""
Configuration settings for GeoLoader.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Loader settings with environment variable support.

    Attributes:
        max_shapefile_size_mb: Memory ceiling for a .shp buffer in megabytes
        include_deleted_records: Keep DBF rows flagged as deleted
        dbf_encoding: Forced DBF text encoding (None = .cpg, then UTF-8/Latin-1)
        min_detection_points: Minimum points for point-pattern detection
        point_pattern_threshold: Minimum confidence for a point-pattern match
        max_block_depth: Maximum INSERT nesting depth during block expansion
        allow_intermediate_transforms: Route unsupported pairs through WGS84
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="GEOLOADER_",
        extra="ignore",
    )

    # Shapefile settings
    max_shapefile_size_mb: int = 512
    include_deleted_records: bool = False
    dbf_encoding: Optional[str] = None

    # Detection settings
    min_detection_points: int = 3
    point_pattern_threshold: float = 0.5

    # DXF settings
    max_block_depth: int = 32

    # Transform settings
    allow_intermediate_transforms: bool = False

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Optional[str] = None

    @property
    def max_shapefile_size_bytes(self) -> int:
        """Get the Shapefile memory ceiling in bytes."""
        return self.max_shapefile_size_mb * 1024 * 1024


# Global settings instance
settings = Settings()
