"""Secondary Capture DICOM encoder.

Serializes a grayscale display image and patient/study metadata into a
DICOM Part 10 file (Explicit VR Little Endian, Secondary Capture Image
Storage). Elements are written in a fixed order:

    preamble, "DICM", File Meta, Patient, Study, Series, Equipment,
    Image, SOP Common, Pixel Data

The writer emits bytes directly instead of going through a pydicom Dataset so
that the element order and padding of the output are exactly as listed above.
"""

import re
import struct
from dataclasses import dataclass
from datetime import datetime

import numpy as np
from pydantic import BaseModel, Field, field_validator
from pydicom.tag import BaseTag, Tag
from pydicom.uid import ExplicitVRLittleEndian, SecondaryCaptureImageStorage, generate_uid

from dental_imaging.core.config import DICOMSettings, get_settings
from dental_imaging.core.exceptions import EncodingPreconditionError
from dental_imaging.core.logging import get_logger
from dental_imaging.services.imaging.image import ProjectionResult

logger = get_logger(__name__)

# VRs whose length field is 4 bytes, preceded by 2 reserved bytes
LONG_LENGTH_VRS = frozenset({"OB", "OW", "OF", "SQ", "UC", "UN", "UR", "UT"})

PREAMBLE_LENGTH = 128
MAGIC = b"DICM"

FILE_META_INFORMATION_VERSION = b"\x00\x01"

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

# Maps 8-bit luma onto the full 16-bit range (255 * 257 == 65535)
LUMA_TO_16BIT = 257


# ============================================================================
# Helpers
# ============================================================================

def _normalize_date(value: str | None) -> str | None:
    """Normalize date to DICOM YYYYMMDD format when possible."""
    if not value:
        return None
    digits = "".join(ch for ch in value if ch.isdigit())
    return digits[:8] if len(digits) >= 8 else None


def format_dicom_date(moment: datetime) -> str:
    """YYYYMMDD."""
    return moment.strftime("%Y%m%d")


def format_dicom_time(moment: datetime) -> str:
    """HHMMSS.FFFFFF with millisecond precision (HHMMSS.mmm000)."""
    return f"{moment.strftime('%H%M%S')}.{moment.microsecond // 1000:03d}000"


def format_person_name(name: str) -> str:
    """
    Convert "First Middle Last" to the DICOM PN form "Last^First Middle".

    Names that already contain a component separator, or consist of a single
    word, are returned unchanged.
    """
    if "^" in name:
        return name
    parts = name.strip().split(" ")
    if len(parts) >= 2:
        return f"{parts[-1]}^{' '.join(parts[:-1])}"
    return name


def luma_to_gray16(pixels: np.ndarray) -> np.ndarray:
    """RGBA8 (h, w, 4) to 16-bit luma: round((R*0.299 + G*0.587 + B*0.114) * 257)."""
    rgb = pixels[..., :3].astype(np.float64)
    luma = rgb @ np.array(LUMA_WEIGHTS)
    gray = np.floor(luma * LUMA_TO_16BIT + 0.5)
    return np.clip(gray, 0, 0xFFFF).astype("<u2")


# ============================================================================
# Data Models
# ============================================================================

class DicomMetadata(BaseModel):
    """Patient and study information written into an export."""

    patient_id: str = Field(..., description="Patient ID")
    patient_name: str = Field(..., description="Patient name, 'First Last' or 'Last^First'")
    patient_birth_date: str | None = Field(None, description="Birth date (YYYYMMDD)")
    patient_sex: str | None = Field(None, description="M, F or O")
    study_description: str | None = None
    series_description: str | None = None
    institution_name: str | None = None
    modality: str | None = None

    @field_validator("patient_birth_date")
    @classmethod
    def _validate_birth_date(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        normalized = _normalize_date(value)
        if normalized is None or not re.fullmatch(r"\d{8}", normalized):
            raise ValueError(f"Birth date must be YYYYMMDD, got {value!r}")
        datetime.strptime(normalized, "%Y%m%d")
        return normalized

    @field_validator("patient_sex")
    @classmethod
    def _validate_sex(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        value = value.strip().upper()
        if value not in {"M", "F", "O"}:
            raise ValueError(f"Patient sex must be M, F or O, got {value!r}")
        return value

    @field_validator("modality")
    @classmethod
    def _validate_modality(cls, value: str | None) -> str | None:
        if value is None or value.strip() == "":
            return None
        value = value.strip().upper()
        if not re.fullmatch(r"[A-Z0-9_ ]{1,16}", value):
            raise ValueError(f"Modality must be a code of up to 16 characters, got {value!r}")
        return value


@dataclass(frozen=True)
class DicomExport:
    """An encoded file and the UIDs generated for it."""

    content: bytes
    sop_instance_uid: str
    study_instance_uid: str
    series_instance_uid: str


# ============================================================================
# Element writer
# ============================================================================

class DicomWriter:
    """Append-only Explicit VR Little Endian element writer."""

    def __init__(self):
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def write_preamble(self) -> None:
        self._buffer += bytes(PREAMBLE_LENGTH)
        self._buffer += MAGIC

    def _write_header(self, tag: BaseTag, vr: str, length: int) -> None:
        self._buffer += struct.pack("<HH", tag.group, tag.element)
        self._buffer += vr.encode("ascii")
        if vr in LONG_LENGTH_VRS:
            if length > 0xFFFFFFFF:
                raise EncodingPreconditionError(f"{tag} value of {length} bytes is too long")
            self._buffer += struct.pack("<HI", 0, length)
        else:
            if length > 0xFFFF:
                raise EncodingPreconditionError(
                    f"{tag} value of {length} bytes exceeds the 2-byte length of VR {vr}"
                )
            self._buffer += struct.pack("<H", length)

    def write_string(self, keyword: str, vr: str, value: str) -> None:
        """UTF-8 value padded with one trailing space to even length."""
        encoded = value.encode("utf-8")
        if len(encoded) % 2:
            encoded += b" "
        self._write_header(Tag(keyword), vr, len(encoded))
        self._buffer += encoded

    def write_us(self, keyword: str, value: int) -> None:
        if not 0 <= value <= 0xFFFF:
            raise EncodingPreconditionError(f"{keyword}={value} does not fit in US")
        self._write_header(Tag(keyword), "US", 2)
        self._buffer += struct.pack("<H", value)

    def write_ul(self, keyword: str, value: int) -> None:
        if not 0 <= value <= 0xFFFFFFFF:
            raise EncodingPreconditionError(f"{keyword}={value} does not fit in UL")
        self._write_header(Tag(keyword), "UL", 4)
        self._buffer += struct.pack("<I", value)

    def write_ss(self, keyword: str, value: int) -> None:
        if not -0x8000 <= value <= 0x7FFF:
            raise EncodingPreconditionError(f"{keyword}={value} does not fit in SS")
        self._write_header(Tag(keyword), "SS", 2)
        self._buffer += struct.pack("<h", value)

    def write_bytes(self, keyword: str, vr: str, value: bytes) -> None:
        """Raw bytes, zero padded to even length."""
        padded = value + b"\x00" if len(value) % 2 else value
        self._write_header(Tag(keyword), vr, len(padded))
        self._buffer += padded

    def write_words(self, keyword: str, values: np.ndarray) -> None:
        """16-bit little-endian words (OW)."""
        data = np.ascontiguousarray(values, dtype="<u2").tobytes()
        self._write_header(Tag(keyword), "OW", len(data))
        self._buffer += data


# ============================================================================
# Encoder
# ============================================================================

class DicomEncoder:
    """
    Encodes display images as Secondary Capture DICOM files.

    Each call generates fresh SOP Instance, Study Instance and Series Instance
    UIDs under the configured root; nothing is shared between exports.
    """

    def __init__(self, settings: DICOMSettings | None = None):
        """Initialize encoder.

        Args:
            settings: DICOM export settings (defaults to the application settings)

        """
        self.settings = settings or get_settings().dicom

    def generate_uid(self) -> str:
        """A new UID under the configured organizational root."""
        return generate_uid(prefix=f"{self.settings.uid_root}.")

    def suggest_filename(self, metadata: DicomMetadata) -> str:
        """Download file name for an export of ``metadata``."""
        stem = re.sub(r"\s+", "_", metadata.patient_name)
        return f"{stem}_panoramic.dcm"

    def _check_image(self, image: ProjectionResult) -> None:
        if image.width <= 0 or image.height <= 0:
            raise EncodingPreconditionError(
                f"Cannot encode an empty image ({image.width}x{image.height})"
            )
        if image.pixels.size != image.width * image.height * 4:
            raise EncodingPreconditionError(
                f"Pixel buffer has {image.pixels.size} bytes, "
                f"expected {image.width * image.height * 4}"
            )
        if image.width > 0xFFFF or image.height > 0xFFFF:
            raise EncodingPreconditionError(
                f"Image {image.width}x{image.height} exceeds the DICOM row/column limit"
            )

    def encode(
        self,
        image: ProjectionResult,
        metadata: DicomMetadata,
        now: datetime | None = None,
    ) -> bytes:
        """Encode ``image`` with ``metadata`` and return the file bytes."""
        return self.export(image, metadata, now=now).content

    def export(
        self,
        image: ProjectionResult,
        metadata: DicomMetadata,
        now: datetime | None = None,
    ) -> DicomExport:
        """
        Encode ``image`` with ``metadata`` as a DICOM file.

        Args:
            image: Display image (RGBA8, converted to 16-bit luma)
            metadata: Patient and study information
            now: Study date/time, defaults to the current local time

        Returns:
            The complete DICOM file with its SOP Instance, Study and Series UIDs
        """
        self._check_image(image)
        pixel_data = luma_to_gray16(image.pixels)

        now = now or datetime.now()
        sop_instance_uid = self.generate_uid()
        study_instance_uid = self.generate_uid()
        series_instance_uid = self.generate_uid()
        cfg = self.settings

        writer = DicomWriter()
        writer.write_preamble()

        # File Meta Information
        writer.write_bytes("FileMetaInformationVersion", "OB", FILE_META_INFORMATION_VERSION)
        writer.write_string("MediaStorageSOPClassUID", "UI", SecondaryCaptureImageStorage)
        writer.write_string("MediaStorageSOPInstanceUID", "UI", sop_instance_uid)
        writer.write_string("TransferSyntaxUID", "UI", ExplicitVRLittleEndian)
        writer.write_string("ImplementationClassUID", "UI", cfg.implementation_class_uid)
        writer.write_string("ImplementationVersionName", "SH", cfg.implementation_version_name)

        # Patient Module
        writer.write_string("PatientName", "PN", format_person_name(metadata.patient_name))
        writer.write_string("PatientID", "LO", metadata.patient_id)
        writer.write_string("PatientBirthDate", "DA", metadata.patient_birth_date or "")
        writer.write_string("PatientSex", "CS", metadata.patient_sex or "O")

        # General Study Module
        writer.write_string("StudyInstanceUID", "UI", study_instance_uid)
        writer.write_string("StudyDate", "DA", format_dicom_date(now))
        writer.write_string("StudyTime", "TM", format_dicom_time(now))
        writer.write_string(
            "StudyDescription", "LO", metadata.study_description or cfg.default_study_description
        )

        # General Series Module
        writer.write_string("SeriesInstanceUID", "UI", series_instance_uid)
        writer.write_string("Modality", "CS", metadata.modality or cfg.default_modality)
        writer.write_string(
            "SeriesDescription",
            "LO",
            metadata.series_description or cfg.default_series_description,
        )

        # General Equipment Module
        writer.write_string(
            "InstitutionName", "LO", metadata.institution_name or cfg.default_institution_name
        )
        writer.write_string("ManufacturerModelName", "LO", cfg.model_name)

        # Image Pixel Module
        writer.write_us("SamplesPerPixel", 1)
        writer.write_string("PhotometricInterpretation", "CS", "MONOCHROME2")
        writer.write_us("Rows", image.height)
        writer.write_us("Columns", image.width)
        writer.write_us("BitsAllocated", 16)
        writer.write_us("BitsStored", 16)
        writer.write_us("HighBit", 15)
        writer.write_us("PixelRepresentation", 0)

        # SOP Common Module
        writer.write_string("SOPClassUID", "UI", SecondaryCaptureImageStorage)
        writer.write_string("SOPInstanceUID", "UI", sop_instance_uid)

        # Pixel Data
        writer.write_words("PixelData", pixel_data)

        logger.info(
            "dicom_encoded",
            rows=image.height,
            columns=image.width,
            size_bytes=len(writer),
            sop_instance_uid=sop_instance_uid,
        )
        return DicomExport(
            content=writer.getvalue(),
            sop_instance_uid=sop_instance_uid,
            study_instance_uid=study_instance_uid,
            series_instance_uid=series_instance_uid,
        )
