"""API v1 endpoints."""

from dental_imaging.api.v1.endpoints import reconstruction

__all__ = ["reconstruction"]
