"""Core configuration and utilities for the dental imaging backend."""

from dental_imaging.core.config import settings
from dental_imaging.core.logging import get_logger, setup_logging

__all__ = ["settings", "setup_logging", "get_logger"]
