"""Volume-to-image projections.

Implements the four reductions used by the panoramic generator:

- maximum intensity projection along y
- average projection along y, ignoring background samples
- curved panoramic unwrap along a circular dental arch
- orthogonal (axial) re-slice at a single z

Every projection produces an image with one row per slice (except the
orthogonal slice, which keeps the slice geometry) and reports progress once
per z.
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from dental_imaging.core.logging import get_logger
from dental_imaging.services.imaging.image import ProjectionResult
from dental_imaging.services.imaging.volume import ProgressCallback, VolumeBuffer

logger = get_logger(__name__)

# Samples at or below this value are background for the average projection
AVERAGE_THRESHOLD = 0.1

# Output columns per degree of arch sweep
PIXELS_PER_DEGREE = 4

# The arch radius is a percentage of half the volume width
RADIUS_SCALE = 200.0


class ProjectionMode(str, Enum):
    """Available projection modes."""

    MIP = "mip"
    AVERAGE = "average"
    CURVED = "curved"
    ORTHOGONAL = "orthogonal"


@dataclass(frozen=True)
class CurveParameters:
    """Dental arch used by the curved panoramic.

    Attributes:
        radius: Arch radius as a percentage (80 = 0.8 * width / 2)
        angle: Arch sweep in degrees
        offset: Radial offset in voxels
        slice_thickness: Radial sweep thickness in voxels
    """

    radius: float = 80.0
    angle: float = 180.0
    offset: float = 0.0
    slice_thickness: float = 10.0

    @property
    def output_width(self) -> int:
        return math.floor(self.angle * PIXELS_PER_DEGREE + 0.5)

    def radial_steps(self) -> np.ndarray:
        """Radial offsets -t/2, -t/2 + 1, ... up to t/2 inclusive."""
        half = self.slice_thickness / 2
        count = math.floor(self.slice_thickness) + 1
        steps = -half + np.arange(count, dtype=np.float64)
        return steps[steps <= half]


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5).astype(np.int64)


def _scale(values: np.ndarray) -> np.ndarray:
    """Normalized [0, 1] samples to display values."""
    return np.asarray(values, dtype=np.float64) * 255


class ProjectionEngine:
    """
    Computes 2-D projections of a VolumeBuffer.

    The engine holds no state between calls; identical inputs always give
    identical outputs. Computation is synchronous and runs to completion.
    """

    def project(
        self,
        volume: VolumeBuffer,
        mode: ProjectionMode | str,
        curve: CurveParameters | None = None,
        slice_index: int = 0,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """
        Run the projection selected by ``mode``.

        Args:
            volume: Source volume
            mode: Projection mode
            curve: Arch parameters for the curved mode
            slice_index: Slice for the orthogonal mode (clamped into range)
            progress_callback: Optional callback(percent), once per z

        Returns:
            Raw projection, values already scaled to 0-255
        """
        mode = ProjectionMode(mode)

        if mode == ProjectionMode.MIP:
            result = self.maximum_intensity(volume, progress_callback)
        elif mode == ProjectionMode.AVERAGE:
            result = self.average(volume, progress_callback)
        elif mode == ProjectionMode.CURVED:
            result = self.curved_panoramic(volume, curve or CurveParameters(), progress_callback)
        else:
            result = self.orthogonal_slice(volume, slice_index)

        logger.debug(
            "projection_computed",
            mode=mode.value,
            volume_shape=list(volume.shape),
            output_shape=list(result.shape),
        )
        return result

    def maximum_intensity(
        self,
        volume: VolumeBuffer,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """Maximum along y for every (x, z). Output is width x depth."""
        output = np.zeros((volume.depth, volume.width), dtype=np.float64)

        for z in range(volume.depth):
            plane = volume.plane(z)
            output[z] = np.maximum(plane.max(axis=0), 0)
            _report(progress_callback, z, volume.depth)

        return ProjectionResult.from_intensity(_scale(output))

    def average(
        self,
        volume: VolumeBuffer,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """Mean along y of the samples above the background threshold.

        Columns with no sample above the threshold are 0. Output is width x depth.
        """
        output = np.zeros((volume.depth, volume.width), dtype=np.float64)

        for z in range(volume.depth):
            plane = volume.plane(z).astype(np.float64)
            foreground = plane > AVERAGE_THRESHOLD
            sums = np.where(foreground, plane, 0.0).sum(axis=0)
            counts = foreground.sum(axis=0)
            np.divide(sums, counts, out=output[z], where=counts > 0)
            _report(progress_callback, z, volume.depth)

        return ProjectionResult.from_intensity(_scale(output))

    def curved_panoramic(
        self,
        volume: VolumeBuffer,
        curve: CurveParameters,
        progress_callback: ProgressCallback | None = None,
    ) -> ProjectionResult:
        """
        Unwrap a circular arch centred on the slice into a panoramic strip.

        Column ``px`` maps to the arch angle
        ``(px / W * angle - angle / 2)`` degrees; along that ray the maximum
        sample over the radial sweep is kept. Output is round(angle * 4) x depth.

        Args:
            volume: Source volume
            curve: Arch parameters
            progress_callback: Optional callback(percent), once per z

        Returns:
            Panoramic projection
        """
        output_width = curve.output_width
        output = np.zeros((volume.depth, output_width), dtype=np.float64)

        center_x = volume.width / 2
        center_y = volume.height / 2
        radius_pixels = curve.radius * (volume.width / RADIUS_SCALE)

        columns = np.arange(output_width, dtype=np.float64)
        angles = np.radians((columns / output_width) * curve.angle - curve.angle / 2)

        # (steps, columns) sampling grid, identical for every slice
        sample_radius = radius_pixels + curve.radial_steps()[:, np.newaxis] + curve.offset
        xs = _round_half_up(center_x + sample_radius * np.sin(angles))
        ys = _round_half_up(center_y + sample_radius * np.cos(angles))

        for z in range(volume.depth):
            samples = volume.gather(xs, ys, z)
            if samples.size:
                output[z] = np.maximum(samples.max(axis=0), 0)
            _report(progress_callback, z, volume.depth)

        return ProjectionResult.from_intensity(_scale(output))

    def orthogonal_slice(self, volume: VolumeBuffer, slice_index: int) -> ProjectionResult:
        """Slice ``slice_index`` (clamped to [0, depth - 1]) as a width x height image."""
        z = min(max(0, int(slice_index)), volume.depth - 1)
        return ProjectionResult.from_intensity(_scale(volume.plane(z)))


def _report(progress_callback: ProgressCallback | None, z: int, depth: int) -> None:
    if progress_callback is not None:
        progress_callback(round(z / depth * 100))
