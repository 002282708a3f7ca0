"""Application configuration management using Pydantic Settings.

This module provides centralized configuration for the dental imaging backend,
supporting environment variables and .env files for different deployment environments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (parent of the dental_imaging/ package)
PROJECT_DIR = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_DIR / ".env"

# Load environment variables from .env file
load_dotenv(ENV_FILE)


class ReconstructionSettings(BaseSettings):
    """Default reconstruction and display parameters.

    These are the values a new reconstruction session starts from. Requests may
    override each of them within the ranges enforced by ``ReconstructionParams``.
    """

    model_config = SettingsConfigDict(env_prefix="RECON_")

    # Projection parameters
    projection_mode: Literal["mip", "average", "curved", "orthogonal"] = Field(
        default="mip", description="Default projection mode"
    )
    curve_radius: float = Field(default=80, ge=40, le=120, description="Arch radius (percent)")
    curve_angle: float = Field(default=180, ge=90, le=270, description="Arch sweep (degrees)")
    curve_offset: float = Field(default=0, ge=-50, le=50, description="Radial offset (pixels)")
    slice_thickness: int = Field(default=10, ge=1, le=30, description="Radial sweep thickness")
    slice_index: float = Field(
        default=50, ge=0, le=100, description="Orthogonal slice position (percent of depth)"
    )

    # Display parameters
    brightness: float = Field(default=100, ge=50, le=200, description="Brightness (percent)")
    contrast: float = Field(default=100, ge=50, le=200, description="Contrast (percent)")
    window_level: float = Field(default=500, ge=0, le=2000, description="Window center")
    window_width: float = Field(default=2000, ge=200, le=4000, description="Window width")

    # Input limits
    max_slices: int = Field(default=2000, ge=1, description="Maximum slices per volume")
    max_upload_mb: float = Field(default=512.0, gt=0, description="Maximum upload size in MB")


class DICOMSettings(BaseSettings):
    """Configuration for Secondary Capture DICOM export."""

    model_config = SettingsConfigDict(env_prefix="DICOM_")

    uid_root: str = Field(
        default="1.2.826.0.1.3680043.8.498",
        max_length=40,
        pattern=r"^[0-9]+(\.[0-9]+)*$",
        description="Organizational root for generated UIDs",
    )
    implementation_class_uid: str = Field(
        default="1.2.826.0.1.3680043.8.498.1", description="Implementation Class UID"
    )
    implementation_version_name: str = Field(
        default="DENTAL_RECON_1.0", max_length=16, description="Implementation Version Name"
    )
    model_name: str = Field(
        default="Dental Panoramic Generator", description="Manufacturer's Model Name"
    )

    # Fallbacks for metadata the patient record does not provide
    default_study_description: str = Field(default="Dental Panoramic")
    default_series_description: str = Field(default="Panoramic from CBCT")
    default_institution_name: str = Field(default="Dental Clinic")
    default_modality: str = Field(default="OT", max_length=16)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Dental Imaging", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    log_file: str | None = Field(default=None, description="Optional log file path")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    workers: int = Field(default=2, ge=1, le=32, description="Number of workers")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )
    cors_allow_credentials: bool = Field(default=True, description="Allow CORS credentials")

    # Nested settings
    reconstruction: ReconstructionSettings = Field(default_factory=ReconstructionSettings)
    dicom: DICOMSettings = Field(default_factory=DICOMSettings)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings after initialization."""
        if self.environment == "production" and self.debug:
            raise ValueError("Debug mode must be disabled in production (DEBUG=false)")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
