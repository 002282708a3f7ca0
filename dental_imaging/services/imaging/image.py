"""Owned 2-D raster buffers produced by the reconstruction engine."""

from dataclasses import dataclass
from io import BytesIO

import numpy as np

from dental_imaging.core.exceptions import RenderTargetError


def to_display_bytes(values: np.ndarray) -> np.ndarray:
    """Clamp to [0, 255] and round half to even into uint8."""
    return np.rint(np.clip(values, 0, 255)).astype(np.uint8)


@dataclass(frozen=True)
class ProjectionResult:
    """A grayscale image stored as RGBA8 with R=G=B and A=255.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        pixels: uint8 array of shape (height, width, 4)
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Pixel buffer shape {self.pixels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )
        self.pixels.flags.writeable = False

    @classmethod
    def from_intensity(cls, intensity: np.ndarray) -> "ProjectionResult":
        """Build an RGBA image from a (height, width) array of display values."""
        gray = to_display_bytes(intensity) if intensity.dtype != np.uint8 else intensity
        height, width = gray.shape
        rgba = np.empty((height, width, 4), dtype=np.uint8)
        rgba[..., 0] = gray
        rgba[..., 1] = gray
        rgba[..., 2] = gray
        rgba[..., 3] = 255
        return cls(width=width, height=height, pixels=rgba)

    @property
    def intensity(self) -> np.ndarray:
        """Grayscale channel as a (height, width) uint8 view."""
        return self.pixels[..., 0]

    @property
    def shape(self) -> tuple[int, int]:
        """(height, width), matching the pixel array."""
        return (self.height, self.width)

    def tobytes(self) -> bytes:
        """Flat RGBA byte string, row-major."""
        return self.pixels.tobytes()

    def to_png(self) -> bytes:
        """Encode the image as PNG for display handoff."""
        from PIL import Image

        if self.width == 0 or self.height == 0:
            raise RenderTargetError("Cannot render an empty image")

        try:
            # A 2-D uint8 array maps to mode "L"
            img = Image.fromarray(np.ascontiguousarray(self.intensity))
            buffer = BytesIO()
            img.save(buffer, format="PNG")
        except (OSError, ValueError) as exc:
            raise RenderTargetError(f"PNG encoding failed: {exc}") from exc
        return buffer.getvalue()
