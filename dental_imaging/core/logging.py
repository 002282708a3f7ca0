"""
Structured logging configuration for the dental imaging backend.

Provides consistent, structured logging with support for different
output formats and log levels based on environment.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to log entries."""
    event_dict["app"] = "dental-imaging"
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output logs as JSON (for production)
        log_file: Optional file path for log output
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Shared processors for all outputs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_app_context,
    ]

    if json_logs:
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        if json_logs:
            file_handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class AuditLogger:
    """
    Specialized logger for the audit trail of patient imaging data.

    Every export of a reconstruction that carries patient identifiers goes
    through here so exports can be traced back to a session.
    """

    def __init__(self):
        """Initialize audit logger."""
        self.logger = get_logger("audit")

    def log_reconstruction(
        self,
        mode: str,
        slice_count: int,
        output_shape: tuple[int, int],
        duration_ms: float,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        """
        Log a reconstruction request.

        Args:
            mode: Projection mode or MPR plane
            slice_count: Number of slices in the source stack
            output_shape: (height, width) of the produced image
            duration_ms: Computation time in milliseconds
            success: Whether the reconstruction succeeded
            error: Error message if failed
        """
        log_method = self.logger.info if success else self.logger.error
        log_method(
            "reconstruction",
            mode=mode,
            slice_count=slice_count,
            output_shape=list(output_shape),
            duration_ms=duration_ms,
            success=success,
            error=error,
            audit_type="reconstruction",
        )

    def log_data_export(
        self,
        export_type: str,
        resource_ids: list[str],
        format: str,
        patient_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Log a data export event.

        Args:
            export_type: Type of export (e.g., "panoramic")
            resource_ids: IDs of exported resources (SOP Instance UIDs)
            format: Export format (e.g., "DICOM", "PNG")
            patient_id: Patient the export belongs to
            details: Additional details
        """
        self.logger.info(
            "data_export",
            export_type=export_type,
            resource_count=len(resource_ids),
            resource_ids=resource_ids[:10],  # Limit logged IDs
            format=format,
            patient_id=patient_id,
            details=details or {},
            audit_type="export",
        )


# Global audit logger instance
audit_logger = AuditLogger()
