"""Pytest configuration and shared fixtures for dental imaging tests.

This module provides slice image factories, encoded slice files and
DICOM datasets shared by the service and API tests.
"""

from collections.abc import Callable
from io import BytesIO

import numpy as np
import pytest
from PIL import Image
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.uid import CTImageStorage, ExplicitVRLittleEndian

from dental_imaging.core.config import DICOMSettings, ReconstructionSettings


def make_rgba(width: int, height: int, value: int = 255) -> np.ndarray:
    """Uniform gray RGBA slice image."""
    image = np.full((height, width, 4), value, dtype=np.uint8)
    image[..., 3] = 255
    return image


def encode_png(image: np.ndarray) -> bytes:
    buffer = BytesIO()
    Image.fromarray(image).save(buffer, format="PNG")
    return buffer.getvalue()


def make_dicom(
    pixels: np.ndarray,
    instance_number: int | None = None,
    slice_location: float | None = None,
    window: tuple[float, float] | None = None,
    rescale: tuple[float, float] | None = None,
    photometric: str = "MONOCHROME2",
) -> bytes:
    """Encode a 2-D uint16/uint8 array as a single-frame DICOM file."""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = CTImageStorage
    file_meta.MediaStorageSOPInstanceUID = "1.2.3.4.5.6.7.8.9.10"
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = FileDataset("slice.dcm", {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.SOPClassUID = CTImageStorage
    ds.SOPInstanceUID = "1.2.3.4.5.6.7.8.9.10"
    ds.PatientID = "TEST001"
    ds.PatientName = "Test^Patient"
    ds.Modality = "CT"

    ds.Rows, ds.Columns = pixels.shape
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = photometric
    bits = 8 if pixels.dtype == np.uint8 else 16
    ds.BitsAllocated = bits
    ds.BitsStored = bits
    ds.HighBit = bits - 1
    ds.PixelRepresentation = 0
    ds.PixelData = np.ascontiguousarray(pixels).tobytes()

    if instance_number is not None:
        ds.InstanceNumber = instance_number
    if slice_location is not None:
        ds.SliceLocation = slice_location
    if window is not None:
        ds.WindowCenter, ds.WindowWidth = window
    if rescale is not None:
        ds.RescaleSlope, ds.RescaleIntercept = rescale

    buffer = BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    return buffer.getvalue()


@pytest.fixture
def rgba_factory() -> Callable[..., np.ndarray]:
    """Factory for uniform RGBA slice images."""
    return make_rgba


@pytest.fixture
def png_factory() -> Callable[[np.ndarray], bytes]:
    """Factory turning arrays into PNG bytes."""
    return encode_png


@pytest.fixture
def dicom_factory() -> Callable[..., bytes]:
    """Factory for single-frame grayscale DICOM files."""
    return make_dicom


@pytest.fixture
def gradient_stack() -> list[np.ndarray]:
    """Three 6x4 slices with a horizontal gradient that brightens per slice."""
    stack = []
    for z in range(3):
        gray = (np.arange(6, dtype=np.uint16)[np.newaxis, :] * 40 + z * 10).repeat(4, axis=0)
        image = np.empty((4, 6, 4), dtype=np.uint8)
        image[..., :3] = gray[..., np.newaxis].astype(np.uint8)
        image[..., 3] = 255
        stack.append(image)
    return stack


@pytest.fixture
def dicom_settings() -> DICOMSettings:
    """DICOM export settings with default values."""
    return DICOMSettings()


@pytest.fixture
def reconstruction_settings() -> ReconstructionSettings:
    """Reconstruction defaults."""
    return ReconstructionSettings()
