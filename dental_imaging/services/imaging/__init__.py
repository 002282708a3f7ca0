"""Volume reconstruction module."""

from dental_imaging.services.imaging.image import ProjectionResult
from dental_imaging.services.imaging.mpr import MultiPlanarReslicer, Plane, Slice
from dental_imaging.services.imaging.projection import (
    CurveParameters,
    ProjectionEngine,
    ProjectionMode,
)
from dental_imaging.services.imaging.radiometric import RadiometricParams, apply_radiometric
from dental_imaging.services.imaging.volume import VolumeBuffer

__all__ = [
    "ProjectionResult",
    "VolumeBuffer",
    "ProjectionEngine",
    "ProjectionMode",
    "CurveParameters",
    "RadiometricParams",
    "apply_radiometric",
    "MultiPlanarReslicer",
    "Plane",
    "Slice",
]
