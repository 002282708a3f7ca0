"""Slice file loading.

Selects the usable files of an upload or directory, decodes raster slices with
Pillow and DICOM slices with pydicom, and hands back arrays in stack order.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path, PurePath

import numpy as np
from PIL import Image, UnidentifiedImageError

from dental_imaging.core.exceptions import EmptyInputError, UnsupportedSliceError
from dental_imaging.core.logging import get_logger
from dental_imaging.services.dicom.parser import DicomSliceParser
from dental_imaging.services.imaging.image import to_display_bytes
from dental_imaging.services.imaging.mpr import Slice, sort_slices
from dental_imaging.services.imaging.radiometric import apply_window_level, default_window
from dental_imaging.services.imaging.volume import ProgressCallback

logger = get_logger(__name__)

RASTER_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tif", ".tiff", ".webp"})
DICOM_EXTENSIONS = frozenset({".dcm"})


@dataclass(frozen=True)
class SliceFile:
    """One uploaded or on-disk slice file."""

    name: str
    content: bytes

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower()

    @property
    def is_dicom(self) -> bool:
        return self.extension in DICOM_EXTENSIONS

    @property
    def is_raster(self) -> bool:
        return self.extension in RASTER_EXTENSIONS

    @classmethod
    def from_path(cls, path: Path | str) -> "SliceFile":
        path = Path(path)
        return cls(name=path.name, content=path.read_bytes())


def select_slice_files(files: Iterable[SliceFile]) -> list[SliceFile]:
    """Keep raster and DICOM files, ordered by file name."""
    selected = [item for item in files if item.is_raster or item.is_dicom]
    return sorted(selected, key=lambda item: item.name)


def read_directory(directory: Path | str) -> list[SliceFile]:
    """Slice files found directly inside ``directory``, ordered by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise EmptyInputError(f"{directory} is not a directory")
    return select_slice_files(
        SliceFile.from_path(path) for path in directory.iterdir() if path.is_file()
    )


def decode_raster(content: bytes) -> np.ndarray:
    """Decode one raster image into an (h, w, 4) RGBA uint8 array."""
    try:
        with Image.open(BytesIO(content)) as img:
            img.load()
            return np.asarray(img.convert("RGBA"), dtype=np.uint8)
    except (UnidentifiedImageError, OSError) as exc:
        raise UnsupportedSliceError(f"Cannot decode image: {exc}") from exc


def render_slice(item: Slice) -> np.ndarray:
    """Window a DICOM slice with its own window into an (h, w) uint8 array."""
    values = item.grid().astype(np.float64) * item.rescale_slope + item.rescale_intercept
    center, width = item.tagged_window() or default_window(
        item.pixels, item.rescale_slope, item.rescale_intercept
    )
    return to_display_bytes(apply_window_level(values, center, width, invert=item.is_inverted))


def raster_to_slice(content: bytes) -> Slice:
    """Grayscale Slice from a raster image, windowed to pass 0-255 through unchanged."""
    rgb = decode_raster(content)[..., :3].astype(np.float64)
    gray = to_display_bytes(rgb.mean(axis=2))
    height, width = gray.shape
    return Slice(
        width=width,
        height=height,
        pixels=gray.ravel(),
        window_center=127.5,
        window_width=255.0,
    )


def load_slice_images(
    files: Sequence[SliceFile],
    progress_callback: ProgressCallback | None = None,
) -> list[np.ndarray]:
    """
    Decode the selected slice files in stack order.

    Args:
        files: Candidate files; unsupported names are skipped
        progress_callback: Optional callback(fraction of files decoded)

    Returns:
        One array per slice, ready for ``VolumeBuffer.from_images``

    Raises:
        EmptyInputError: If no file has a supported extension
    """
    selected = select_slice_files(files)
    if not selected:
        raise EmptyInputError("No image or DICOM files found")

    parser = DicomSliceParser()
    images = []
    for index, item in enumerate(selected):
        if item.is_dicom:
            images.append(render_slice(parser.parse_bytes(item.content)))
        else:
            images.append(decode_raster(item.content))
        if progress_callback is not None:
            progress_callback((index + 1) / len(selected))

    logger.info("slice_images_loaded", count=len(images), skipped=len(files) - len(selected))
    return images


def load_dicom_series(files: Sequence[SliceFile]) -> list[Slice]:
    """Parse the DICOM files of ``files`` into slices ordered along the scan axis."""
    parser = DicomSliceParser()
    slices = [
        parser.parse_bytes(item.content) for item in select_slice_files(files) if item.is_dicom
    ]
    if not slices:
        raise EmptyInputError("No DICOM files found")
    return sort_slices(slices)


def load_slice_series(files: Sequence[SliceFile]) -> list[Slice]:
    """
    Slices for multi-planar reslicing from DICOM and raster files.

    DICOM slices are ordered along the scan axis; raster slices carry no
    position and keep their file name order.
    """
    selected = select_slice_files(files)
    if not selected:
        raise EmptyInputError("No image or DICOM files found")
    if all(item.is_dicom for item in selected):
        return load_dicom_series(selected)

    parser = DicomSliceParser()
    slices = [
        parser.parse_bytes(item.content) if item.is_dicom else raster_to_slice(item.content)
        for item in selected
    ]
    return sort_slices(slices)
