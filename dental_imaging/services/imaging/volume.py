"""
CBCT Volume Data Structure

Defines the voxel grid assembled from an ordered stack of slice images.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np

from dental_imaging.core.exceptions import (
    EmptyInputError,
    InputMismatchError,
    UnsupportedSliceError,
)
from dental_imaging.core.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]


def _check_image(image: np.ndarray, index: int) -> None:
    if image.dtype != np.uint8:
        raise UnsupportedSliceError(f"Slice {index} has dtype {image.dtype}, expected uint8")
    if not (image.ndim == 2 or (image.ndim == 3 and image.shape[2] in (3, 4))):
        raise UnsupportedSliceError(f"Slice {index} has unsupported shape {image.shape}")


def _as_rgb(image: np.ndarray) -> np.ndarray:
    """Return an (h, w, 3) view of a decoded slice image."""
    if image.ndim == 2:
        return np.repeat(image[:, :, np.newaxis], 3, axis=2)
    return image[:, :, :3]


@dataclass(frozen=True)
class VolumeBuffer:
    """
    Voxel volume built from a slice stack.

    Attributes:
        width: Number of voxels along x
        height: Number of voxels along y
        depth: Number of slices (z)
        data: Flat float32 samples in [0, 1], index z*width*height + y*width + x
        spacing: Physical size of a voxel along (x, y, z)
    """

    width: int
    height: int
    depth: int
    data: np.ndarray
    spacing: tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0 or self.depth <= 0:
            raise ValueError(
                f"Volume dimensions must be positive, got {self.width}x{self.height}x{self.depth}"
            )
        if self.data.size != self.width * self.height * self.depth:
            raise ValueError(
                f"Volume data has {self.data.size} samples, "
                f"expected {self.width * self.height * self.depth}"
            )
        self.data.flags.writeable = False

    @classmethod
    def from_images(
        cls,
        images: Sequence[np.ndarray],
        spacing: tuple[float, float, float] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> "VolumeBuffer":
        """
        Assemble a volume from decoded slice images in stack order.

        Each pixel becomes (R + G + B) / (3 * 255). All images are checked
        before any voxel is written.

        Args:
            images: (h, w, 3|4) RGB(A) or (h, w) grayscale uint8 arrays
            spacing: Voxel spacing, (1, 1, 1) when unknown
            progress_callback: Optional callback(fraction of slices consumed)

        Returns:
            The assembled VolumeBuffer

        Raises:
            EmptyInputError: If no images are given
            UnsupportedSliceError: If an image is not 8-bit gray, RGB or RGBA
            InputMismatchError: If an image differs in size from the first
        """
        if len(images) == 0:
            raise EmptyInputError("No slice images supplied")

        for index, image in enumerate(images):
            _check_image(image, index)

        height, width = images[0].shape[:2]
        for index, image in enumerate(images):
            actual_height, actual_width = image.shape[:2]
            if (actual_width, actual_height) != (width, height):
                raise InputMismatchError((width, height), (actual_width, actual_height), index)

        depth = len(images)
        data = np.empty(depth * height * width, dtype=np.float32)
        plane_size = width * height

        for z, image in enumerate(images):
            rgb = _as_rgb(image).astype(np.float32)
            gray = rgb.sum(axis=2) / (3 * 255)
            data[z * plane_size:(z + 1) * plane_size] = gray.ravel()

            if progress_callback is not None:
                progress_callback((z + 1) / depth)

        logger.debug("volume_built", width=width, height=height, depth=depth)
        return cls(
            width=width,
            height=height,
            depth=depth,
            data=data,
            spacing=spacing or (1.0, 1.0, 1.0),
        )

    @property
    def shape(self) -> tuple[int, int, int]:
        """(depth, height, width)."""
        return (self.depth, self.height, self.width)

    @property
    def array(self) -> np.ndarray:
        """Read-only (depth, height, width) view of the samples."""
        return self.data.reshape(self.shape)

    def plane(self, z: int) -> np.ndarray:
        """Read-only (height, width) view of slice z. z must be in range."""
        return self.array[z]

    def contains(self, x: int, y: int, z: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height and 0 <= z < self.depth

    def sample(self, x: int, y: int, z: int) -> float:
        """Sample one voxel; coordinates outside the grid read as 0."""
        if not self.contains(x, y, z):
            return 0.0
        return float(self.data[z * self.width * self.height + y * self.width + x])

    def gather(self, xs: np.ndarray, ys: np.ndarray, z: int) -> np.ndarray:
        """
        Sample many (x, y) positions of slice z at once.

        Positions outside the grid, or a z outside the volume, read as 0.

        Args:
            xs: Integer x coordinates
            ys: Integer y coordinates, same shape as xs
            z: Slice index

        Returns:
            float32 array shaped like xs
        """
        xs = np.asarray(xs, dtype=np.int64)
        ys = np.asarray(ys, dtype=np.int64)
        if not 0 <= z < self.depth:
            return np.zeros(xs.shape, dtype=np.float32)

        valid = (xs >= 0) & (xs < self.width) & (ys >= 0) & (ys < self.height)
        plane = self.plane(z)
        values = plane[np.where(valid, ys, 0), np.where(valid, xs, 0)]
        return np.where(valid, values, np.float32(0)).astype(np.float32)
