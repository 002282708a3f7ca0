"""DICOM services module."""

from dental_imaging.services.dicom.encoder import DicomEncoder, DicomExport, DicomMetadata
from dental_imaging.services.dicom.parser import DicomSliceParser
from dental_imaging.services.dicom.reader import DicomElement, iter_elements

__all__ = [
    "DicomEncoder",
    "DicomExport",
    "DicomMetadata",
    "DicomSliceParser",
    "DicomElement",
    "iter_elements",
]
