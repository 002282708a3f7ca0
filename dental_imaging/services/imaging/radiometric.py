"""Radiometric display transforms.

Window/level, brightness and contrast mappings from raw intensities to 8-bit
display values. Every function here is pure: it returns new arrays and never
edits its input.
"""

from dataclasses import dataclass

import numpy as np

from dental_imaging.core.exceptions import EncodingPreconditionError
from dental_imaging.services.imaging.image import ProjectionResult, to_display_bytes

# Raw 8-bit intensities are spread over this range before windowing
DISPLAY_RANGE = 2000.0

# Upper bound on the number of samples used to derive a default window
DEFAULT_WINDOW_SAMPLES = 10000


@dataclass(frozen=True)
class RadiometricParams:
    """Display parameters.

    Attributes:
        window_center: Window center on the 0-2000 display scale
        window_width: Window width, must be positive
        brightness: Multiplicative brightness in percent (100 = identity)
        contrast: Contrast around mid-gray in percent (100 = identity)
    """

    window_center: float = 500.0
    window_width: float = 2000.0
    brightness: float = 100.0
    contrast: float = 100.0

    def validate(self) -> None:
        if not self.window_width > 0:
            raise EncodingPreconditionError(
                f"Window width must be positive, got {self.window_width}"
            )


def _radiometric(raw: np.ndarray | float, params: RadiometricParams) -> np.ndarray | float:
    window_min = params.window_center - params.window_width / 2
    value = ((raw / 255) * DISPLAY_RANGE - window_min) / params.window_width * 255
    return ((value - 128) * (params.contrast / 100) + 128) * (params.brightness / 100)


def transform_sample(raw: float, params: RadiometricParams) -> float:
    """Map one raw 0-255 intensity to a display value in [0, 255].

    The result is clamped but not rounded.
    """
    params.validate()
    return float(min(255.0, max(0.0, _radiometric(float(raw), params))))


def apply_radiometric(image: ProjectionResult, params: RadiometricParams) -> ProjectionResult:
    """
    Apply window/level, contrast and brightness to a grayscale image.

    Args:
        image: Raw projection (R channel is used, R=G=B)
        params: Display parameters

    Returns:
        A new ProjectionResult; the input is left untouched
    """
    params.validate()
    raw = image.intensity.astype(np.float64)
    return ProjectionResult.from_intensity(to_display_bytes(_radiometric(raw, params)))


def apply_window_level(
    values: np.ndarray,
    window_center: float,
    window_width: float,
    invert: bool = False,
) -> np.ndarray:
    """
    Linear window/level of modality values to 0-255.

    Values at or below the window minimum map to 0, at or above the maximum to 255.

    Args:
        values: Modality values (after rescale slope/intercept)
        window_center: Window center
        window_width: Window width, must be positive
        invert: Invert the output (MONOCHROME1)

    Returns:
        float64 array of display values, not yet rounded
    """
    if not window_width > 0:
        raise EncodingPreconditionError(f"Window width must be positive, got {window_width}")

    min_value = window_center - window_width / 2
    max_value = window_center + window_width / 2
    values = np.asarray(values, dtype=np.float64)

    normalized = (values - min_value) / window_width * 255
    normalized = np.where(values <= min_value, 0.0, normalized)
    normalized = np.where(values >= max_value, 255.0, normalized)

    if invert:
        normalized = 255.0 - normalized
    return normalized


def default_window(
    pixels: np.ndarray,
    rescale_slope: float = 1.0,
    rescale_intercept: float = 0.0,
) -> tuple[float, float]:
    """
    Derive a (center, width) window from the pixel data itself.

    At most 10,000 evenly strided samples are used. The center is the sample
    mean, the width 80% of the sampled range. A flat slice gets a width of 1
    whose lower edge is the flat value.

    Args:
        pixels: Flat stored pixel values
        rescale_slope: Modality rescale slope
        rescale_intercept: Modality rescale intercept

    Returns:
        (window_center, window_width)
    """
    flat = np.asarray(pixels).ravel()
    if flat.size == 0:
        raise EncodingPreconditionError("Cannot derive a window from an empty slice")

    sample_size = min(flat.size, DEFAULT_WINDOW_SAMPLES)
    step = max(1, flat.size // sample_size)
    sampled = flat[::step].astype(np.float64) * rescale_slope + rescale_intercept

    center = float(sampled.sum() / (flat.size / step))
    width = float((sampled.max() - sampled.min()) * 0.8)
    if width <= 0:
        # Flat slice: the window starts at the flat value, which renders black
        return float(sampled.min()) + 0.5, 1.0
    return center, width
