"""DICOM slice parser.

Turns single-frame grayscale DICOM files into ``Slice`` records for the
multi-planar reslicer: stored pixel values plus the display and ordering
attributes needed to window and sort a series.
"""

from io import BytesIO
from pathlib import Path
from typing import Any

import numpy as np
import pydicom
from pydicom.errors import InvalidDicomError

from dental_imaging.core.exceptions import UnsupportedSliceError
from dental_imaging.core.logging import get_logger
from dental_imaging.services.imaging.mpr import Slice

logger = get_logger(__name__)


def _first(value: Any) -> float | None:
    """First value of a possibly multi-valued numeric attribute."""
    if value is None:
        return None
    if hasattr(value, "__iter__") and not isinstance(value, str):
        values = list(value)
        return float(values[0]) if values else None
    return float(value)


class DicomSliceParser:
    """Parser for the slices of an axial DICOM series."""

    def parse_file(self, file_path: Path | str) -> Slice:
        """Parse a DICOM file into a Slice.

        Args:
            file_path: Path to DICOM file

        Returns:
            Parsed Slice

        """
        try:
            ds = pydicom.dcmread(str(file_path))
        except (InvalidDicomError, OSError) as exc:
            raise UnsupportedSliceError(f"Cannot read {file_path}: {exc}") from exc
        return self._to_slice(ds)

    def parse_bytes(self, data: bytes) -> Slice:
        """Parse DICOM data from bytes.

        Args:
            data: DICOM file bytes

        Returns:
            Parsed Slice

        """
        try:
            ds = pydicom.dcmread(BytesIO(data))
        except (InvalidDicomError, OSError) as exc:
            raise UnsupportedSliceError(f"Cannot read DICOM data: {exc}") from exc
        return self._to_slice(ds)

    def _to_slice(self, ds: Any) -> Slice:
        """Extract pixels and display attributes from a pydicom Dataset."""

        def get_value(tag: str, default: Any = None) -> Any:
            if hasattr(ds, tag):
                val = getattr(ds, tag)
                if val is not None and str(val).strip():
                    return val
            return default

        if "PixelData" not in ds:
            raise UnsupportedSliceError("DICOM file has no pixel data")

        samples_per_pixel = int(get_value("SamplesPerPixel", 1))
        if samples_per_pixel != 1:
            raise UnsupportedSliceError(
                f"Only grayscale slices are supported (SamplesPerPixel={samples_per_pixel})"
            )
        bits_allocated = int(get_value("BitsAllocated", 16))
        if bits_allocated not in (8, 16):
            raise UnsupportedSliceError(f"Unsupported BitsAllocated={bits_allocated}")
        if int(get_value("NumberOfFrames", 1)) != 1:
            raise UnsupportedSliceError("Multi-frame images are not supported")

        try:
            pixels = np.asarray(ds.pixel_array)
        except (AttributeError, NotImplementedError, RuntimeError, ValueError) as exc:
            raise UnsupportedSliceError(f"Cannot decode pixel data: {exc}") from exc
        if pixels.ndim != 2:
            raise UnsupportedSliceError(f"Unexpected pixel array shape {pixels.shape}")

        rows, columns = pixels.shape

        image_position = None
        if hasattr(ds, "ImagePositionPatient") and ds.ImagePositionPatient:
            ipp = ds.ImagePositionPatient
            image_position = (float(ipp[0]), float(ipp[1]), float(ipp[2]))

        instance_number = get_value("InstanceNumber")
        slice_location = get_value("SliceLocation")

        item = Slice(
            width=int(columns),
            height=int(rows),
            pixels=pixels.ravel(),
            window_center=_first(get_value("WindowCenter")),
            window_width=_first(get_value("WindowWidth")),
            rescale_slope=float(get_value("RescaleSlope", 1.0)),
            rescale_intercept=float(get_value("RescaleIntercept", 0.0)),
            photometric_interpretation=str(get_value("PhotometricInterpretation", "MONOCHROME2")),
            instance_number=int(instance_number) if instance_number is not None else None,
            slice_location=float(slice_location) if slice_location is not None else None,
            image_position=image_position,
        )
        logger.debug(
            "dicom_slice_parsed",
            rows=item.height,
            columns=item.width,
            instance_number=item.instance_number,
        )
        return item
