"""Explicit VR Little Endian element reader.

Walks the element stream of a Part 10 file in file order without building a
dataset, so exports can be inspected exactly as they were written.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from io import BytesIO

from pydicom.datadict import keyword_for_tag
from pydicom.dataelem import RawDataElement, convert_raw_data_element
from pydicom.filereader import data_element_generator
from pydicom.tag import BaseTag, Tag

from dental_imaging.services.dicom.encoder import MAGIC, PREAMBLE_LENGTH

INTEGER_VRS = frozenset({"US", "UL", "SS", "SL"})


@dataclass(frozen=True)
class DicomElement:
    """One data element as it appears in the file."""

    group: int
    element: int
    vr: str
    length: int
    value: bytes

    @classmethod
    def from_raw(cls, raw: RawDataElement) -> "DicomElement":
        return cls(raw.tag.group, raw.tag.element, raw.VR, raw.length, raw.value or b"")

    @property
    def tag(self) -> BaseTag:
        return Tag(self.group, self.element)

    @property
    def keyword(self) -> str:
        return keyword_for_tag(self.tag)

    def as_text(self) -> str:
        """Value decoded as UTF-8 with trailing padding removed."""
        return self.value.decode("utf-8").rstrip(" \x00")

    def as_int(self) -> int:
        if self.vr not in INTEGER_VRS:
            raise ValueError(f"VR {self.vr} is not an integer type")
        raw = RawDataElement(self.tag, self.vr, self.length, self.value, 0, False, True)
        return int(convert_raw_data_element(raw).value)


def iter_elements(data: bytes) -> Iterator[DicomElement]:
    """
    Yield the elements following the preamble and "DICM" prefix.

    Args:
        data: Complete Part 10 file

    Raises:
        ValueError: If the prefix is missing or an element is truncated
    """
    header_end = PREAMBLE_LENGTH + len(MAGIC)
    if len(data) < header_end or data[PREAMBLE_LENGTH:header_end] != MAGIC:
        raise ValueError("Missing DICM prefix")

    fp = BytesIO(data)
    fp.seek(header_end)
    for raw in data_element_generator(fp, is_implicit_VR=False, is_little_endian=True):
        element = DicomElement.from_raw(raw)
        if len(element.value) != element.length:
            raise ValueError(f"Element {element.tag} runs past end of data")
        yield element


def read_elements(data: bytes) -> dict[str, DicomElement]:
    """Elements of ``data`` keyed by DICOM keyword."""
    return {item.keyword: item for item in iter_elements(data)}
