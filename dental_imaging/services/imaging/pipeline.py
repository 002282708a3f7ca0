"""Reconstruction pipeline.

Orchestrates one study session: slice images are assembled into a volume, the
selected projection is computed, and the radiometric transform produces the
display image that can be handed to the DICOM encoder.

Recomputation is explicit. Callers invoke ``recompute`` / ``render`` when
parameters change; nothing is tracked implicitly.
"""

import asyncio
import math
from collections.abc import Sequence
from datetime import datetime

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from dental_imaging.core.config import ReconstructionSettings, get_settings
from dental_imaging.core.exceptions import EmptyInputError
from dental_imaging.core.logging import get_logger
from dental_imaging.services.dicom.encoder import DicomEncoder, DicomExport, DicomMetadata
from dental_imaging.services.imaging.image import ProjectionResult
from dental_imaging.services.imaging.projection import (
    CurveParameters,
    ProjectionEngine,
    ProjectionMode,
)
from dental_imaging.services.imaging.radiometric import RadiometricParams, apply_radiometric
from dental_imaging.services.imaging.volume import ProgressCallback, VolumeBuffer

logger = get_logger(__name__)


class ReconstructionParams(BaseModel):
    """Projection and display parameters accepted at the pipeline entry point."""

    model_config = ConfigDict(frozen=True)

    projection_mode: ProjectionMode = Field(ProjectionMode.MIP, description="Projection mode")
    curve_radius: float = Field(80, ge=40, le=120, description="Arch radius (percent)")
    curve_angle: float = Field(180, ge=90, le=270, description="Arch sweep (degrees)")
    curve_offset: float = Field(0, ge=-50, le=50, description="Radial offset")
    slice_thickness: int = Field(10, ge=1, le=30, description="Radial sweep thickness")
    brightness: float = Field(100, ge=50, le=200, description="Brightness (percent)")
    contrast: float = Field(100, ge=50, le=200, description="Contrast (percent)")
    window_level: float = Field(500, ge=0, le=2000, description="Window center")
    window_width: float = Field(2000, ge=200, le=4000, description="Window width")
    slice_index: float = Field(50, ge=0, le=100, description="Orthogonal slice (percent of depth)")

    @classmethod
    def from_settings(cls, defaults: ReconstructionSettings | None = None, **overrides):
        """Start from configured defaults and apply ``overrides``."""
        defaults = defaults or get_settings().reconstruction
        values = {
            "projection_mode": defaults.projection_mode,
            "curve_radius": defaults.curve_radius,
            "curve_angle": defaults.curve_angle,
            "curve_offset": defaults.curve_offset,
            "slice_thickness": defaults.slice_thickness,
            "brightness": defaults.brightness,
            "contrast": defaults.contrast,
            "window_level": defaults.window_level,
            "window_width": defaults.window_width,
            "slice_index": defaults.slice_index,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def curve(self) -> CurveParameters:
        return CurveParameters(
            radius=self.curve_radius,
            angle=self.curve_angle,
            offset=self.curve_offset,
            slice_thickness=self.slice_thickness,
        )

    @property
    def radiometric(self) -> RadiometricParams:
        return RadiometricParams(
            window_center=self.window_level,
            window_width=self.window_width,
            brightness=self.brightness,
            contrast=self.contrast,
        )

    def slice_position(self, depth: int) -> int:
        """Map the slice percentage onto a slice index."""
        return math.floor(self.slice_index / 100 * depth + 0.5)


class ReconstructionPipeline:
    """
    One reconstruction session.

    The pipeline owns the current volume and the last raw projection. Loading a
    new stack discards both; a failed load leaves them untouched.
    """

    def __init__(
        self,
        engine: ProjectionEngine | None = None,
        encoder: DicomEncoder | None = None,
    ):
        self.engine = engine or ProjectionEngine()
        self.encoder = encoder or DicomEncoder()
        self._volume: VolumeBuffer | None = None
        self._projection: ProjectionResult | None = None
        self._projection_params: ReconstructionParams | None = None

    @property
    def volume(self) -> VolumeBuffer | None:
        return self._volume

    @property
    def projection(self) -> ProjectionResult | None:
        """Last raw projection (before the radiometric transform)."""
        return self._projection

    @property
    def has_volume(self) -> bool:
        return self._volume is not None

    def load(
        self,
        images: Sequence[np.ndarray],
        spacing: tuple[float, float, float] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> VolumeBuffer:
        """
        Build the session volume from decoded slice images.

        Args:
            images: Slice images in stack order
            spacing: Voxel spacing, if known
            progress_callback: Optional callback(fraction of slices consumed)

        Returns:
            The new volume
        """
        volume = VolumeBuffer.from_images(images, spacing, progress_callback)

        self._volume = volume
        self._projection = None
        self._projection_params = None
        logger.info(
            "volume_loaded",
            width=volume.width,
            height=volume.height,
            depth=volume.depth,
        )
        return volume

    def _require_volume(self) -> VolumeBuffer:
        if self._volume is None:
            raise EmptyInputError("No volume loaded")
        return self._volume

    def recompute(
        self,
        params: ReconstructionParams,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """Compute and cache the raw projection for ``params``."""
        volume = self._require_volume()
        projection = self.engine.project(
            volume,
            params.projection_mode,
            curve=params.curve,
            slice_index=params.slice_position(volume.depth),
            progress_callback=progress_callback,
        )
        self._projection = projection
        self._projection_params = params
        return projection

    def render(self, params: ReconstructionParams) -> ProjectionResult:
        """Apply the display transform to the cached projection.

        The projection is recomputed first when none is cached.
        """
        if self._projection is None:
            self.recompute(params)
        return apply_radiometric(self._projection, params.radiometric)

    def run(
        self,
        params: ReconstructionParams,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """Recompute the projection and return the display image."""
        self.recompute(params, progress_callback)
        return self.render(params)

    async def arun(
        self,
        params: ReconstructionParams,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """Yield to the event loop once, then run the blocking computation."""
        await asyncio.sleep(0)
        return self.run(params, progress_callback)

    def export_png(self, params: ReconstructionParams) -> bytes:
        """Display image for ``params`` as PNG."""
        return self._current_display(params).to_png()

    def export_dicom(
        self,
        metadata: DicomMetadata,
        params: ReconstructionParams,
        now: datetime | None = None,
    ) -> DicomExport:
        """Display image for ``params`` as a Secondary Capture DICOM file."""
        return self.encoder.export(self._current_display(params), metadata, now=now)

    def _current_display(self, params: ReconstructionParams) -> ProjectionResult:
        if self._projection is None or self._projection_params is None or (
            self._projection_params.model_dump(exclude=_DISPLAY_FIELDS)
            != params.model_dump(exclude=_DISPLAY_FIELDS)
        ):
            self.recompute(params)
        return self.render(params)


# Parameters that only affect the radiometric transform
_DISPLAY_FIELDS = {"brightness", "contrast", "window_level", "window_width"}
