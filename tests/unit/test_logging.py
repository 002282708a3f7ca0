"""Tests for structured logging helpers."""

import structlog
from structlog.testing import capture_logs

from dental_imaging.core.logging import AuditLogger, add_app_context, get_logger, setup_logging


class TestLogging:
    """Test logging configuration."""

    def test_add_app_context(self):
        """Test app name is added to every event."""
        event = add_app_context(None, "info", {"event": "x"})
        assert event["app"] == "dental-imaging"

    def test_setup_logging_json(self):
        """Test JSON logging configuration."""
        setup_logging(log_level="DEBUG", json_logs=True)
        assert structlog.is_configured()
        assert get_logger("test") is not None


class TestAuditLogger:
    """Test audit events."""

    def test_log_data_export(self):
        """Test export events carry the resource IDs and patient."""
        audit = AuditLogger()
        with capture_logs() as logs:
            audit.log_data_export(
                export_type="panoramic",
                resource_ids=["1.2.3"],
                format="DICOM",
                patient_id="P1",
            )
        assert logs[0]["event"] == "data_export"
        assert logs[0]["resource_ids"] == ["1.2.3"]
        assert logs[0]["patient_id"] == "P1"
        assert logs[0]["audit_type"] == "export"

    def test_failed_reconstruction_logged_as_error(self):
        """Test failures are logged at error level."""
        audit = AuditLogger()
        with capture_logs() as logs:
            audit.log_reconstruction(
                mode="mip",
                slice_count=0,
                output_shape=(0, 0),
                duration_ms=1.0,
                success=False,
                error="No slice images supplied",
            )
        assert logs[0]["log_level"] == "error"
        assert logs[0]["error"] == "No slice images supplied"
