"""Tests for configuration module."""

import pytest
from pydantic import ValidationError

from dental_imaging.core.config import DICOMSettings, ReconstructionSettings, Settings, get_settings


class TestSettings:
    """Test Settings configuration."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = Settings()
        assert settings.app_name == "Dental Imaging"
        assert settings.app_version == "1.0.0"

    def test_reconstruction_defaults(self):
        """Test reconstruction defaults."""
        recon = ReconstructionSettings()
        assert recon.projection_mode == "mip"
        assert recon.curve_radius == 80
        assert recon.curve_angle == 180
        assert recon.slice_thickness == 10
        assert recon.window_level == 500
        assert recon.window_width == 2000

    def test_dicom_settings(self):
        """Test DICOM export settings."""
        dicom = DICOMSettings()
        assert dicom.uid_root == "1.2.826.0.1.3680043.8.498"
        assert dicom.implementation_version_name == "DENTAL_RECON_1.0"
        assert dicom.default_modality == "OT"

    def test_env_override(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("RECON_CURVE_ANGLE", "220")
        monkeypatch.setenv("DICOM_DEFAULT_INSTITUTION_NAME", "Smile Clinic")
        assert ReconstructionSettings().curve_angle == 220
        assert DICOMSettings().default_institution_name == "Smile Clinic"

    def test_out_of_range_rejected(self):
        """Test reconstruction ranges are enforced."""
        with pytest.raises(ValidationError):
            ReconstructionSettings(curve_angle=300)

    def test_invalid_uid_root_rejected(self):
        """Test UID roots must be dotted digits."""
        with pytest.raises(ValidationError):
            DICOMSettings(uid_root="1.2.abc")

    def test_debug_rejected_in_production(self):
        """Test debug mode cannot be enabled in production."""
        with pytest.raises(ValidationError):
            Settings(environment="production", debug=True)

    def test_get_settings_cached(self):
        """Test settings are cached."""
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2
