"""Multi-planar reconstruction from an ordered slice series.

Synthesizes coronal and sagittal cut planes directly from the axial slices by
gathering one row (coronal) or one column (sagittal) per slice. No dense
normalized volume is needed, so stored 8/16-bit values and their rescale
parameters are used as-is.
"""

import functools
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import numpy as np

from dental_imaging.core.exceptions import EmptyInputError, InputMismatchError
from dental_imaging.core.logging import get_logger
from dental_imaging.services.imaging.image import ProjectionResult
from dental_imaging.services.imaging.radiometric import apply_window_level, default_window

logger = get_logger(__name__)


class Plane(str, Enum):
    """Anatomical planes."""

    AXIAL = "axial"
    CORONAL = "coronal"
    SAGITTAL = "sagittal"


@dataclass
class Slice:
    """One axial image of a series."""

    width: int
    height: int
    pixels: np.ndarray  # flat, length width * height
    window_center: float | None = None
    window_width: float | None = None
    rescale_slope: float = 1.0
    rescale_intercept: float = 0.0
    photometric_interpretation: str = "MONOCHROME2"
    instance_number: int | None = None
    slice_location: float | None = None
    image_position: tuple[float, float, float] | None = None

    @property
    def is_inverted(self) -> bool:
        return self.photometric_interpretation == "MONOCHROME1"

    def grid(self) -> np.ndarray:
        """Pixels as a (height, width) array."""
        return np.asarray(self.pixels).reshape(self.height, self.width)

    def tagged_window(self) -> tuple[float, float] | None:
        """The slice's own (center, width), or None when absent or not positive."""
        if self.window_center is None or self.window_width is None or self.window_width <= 0:
            return None
        return self.window_center, self.window_width


def _compare_slices(a: Slice, b: Slice) -> float:
    if a.slice_location is not None and b.slice_location is not None:
        return a.slice_location - b.slice_location
    if a.instance_number is not None and b.instance_number is not None:
        return a.instance_number - b.instance_number
    if a.image_position is not None and b.image_position is not None:
        return a.image_position[2] - b.image_position[2]
    return 0


def sort_slices(slices: Sequence[Slice]) -> list[Slice]:
    """
    Order slices along the scan axis.

    Pairs are compared by slice location, then instance number, then the z
    component of the image position. Slices lacking all three keep their
    relative order.
    """
    return sorted(slices, key=functools.cmp_to_key(_compare_slices))


class MultiPlanarReslicer:
    """
    Axial, coronal and sagittal views of a slice series.

    The index of a slice in the series is its axial position. Coronal and
    sagittal views are only available when the series has more than one slice.
    """

    def __init__(
        self,
        slices: Sequence[Slice],
        window_center: float | None = None,
        window_width: float | None = None,
    ):
        """Validate the series.

        Args:
            slices: Ordered axial slices, all the same size
            window_center: Window center applied to every view (optional)
            window_width: Window width applied to every view (optional)

        """
        if len(slices) == 0:
            raise EmptyInputError("Slice series is empty")

        first = slices[0]
        for index, item in enumerate(slices):
            if (item.width, item.height) != (first.width, first.height):
                raise InputMismatchError(
                    (first.width, first.height), (item.width, item.height), index
                )
            if np.asarray(item.pixels).size != item.width * item.height:
                raise InputMismatchError(
                    (first.width, first.height),
                    (item.width, np.asarray(item.pixels).size // max(item.width, 1)),
                    index,
                )

        self.slices = list(slices)
        self.width = first.width
        self.height = first.height
        self.window_center = window_center
        self.window_width = window_width

    @property
    def slice_count(self) -> int:
        return len(self.slices)

    @property
    def has_orthogonal_views(self) -> bool:
        """Coronal and sagittal views need at least two slices."""
        return self.slice_count > 1

    def _window_for(self, item: Slice) -> tuple[float, float]:
        tagged_center, tagged_width = item.tagged_window() or (None, None)
        center = self.window_center if self.window_center is not None else tagged_center
        width = self.window_width if self.window_width is not None else tagged_width
        if center is None or width is None:
            derived_center, derived_width = default_window(
                item.pixels, item.rescale_slope, item.rescale_intercept
            )
            center = derived_center if center is None else center
            width = derived_width if width is None else width
        return center, width

    def _render(self, stored: np.ndarray, reference: Slice) -> ProjectionResult:
        center, width = self._window_for(reference)
        values = stored.astype(np.float64) * reference.rescale_slope + reference.rescale_intercept
        display = apply_window_level(values, center, width, invert=reference.is_inverted)
        return ProjectionResult.from_intensity(display)

    def axial(self, index: int) -> ProjectionResult:
        """Slice ``index`` (clamped) rendered with its own window."""
        index = min(max(0, index), self.slice_count - 1)
        item = self.slices[index]
        return self._render(item.grid(), item)

    def coronal(self, row: int) -> ProjectionResult | None:
        """
        Coronal plane at image row ``row`` (clamped).

        Output row z, column x is pixel (x, row) of slice z; the image is
        width x slice_count. Returns None for single-slice series.
        """
        if not self.has_orthogonal_views:
            logger.debug("coronal_unavailable", slice_count=self.slice_count)
            return None

        row = min(max(0, row), self.height - 1)
        stored = np.stack([item.grid()[row, :] for item in self.slices])
        return self._render(stored, self.slices[0])

    def sagittal(self, column: int) -> ProjectionResult | None:
        """
        Sagittal plane at image column ``column`` (clamped).

        Output row z, column y is pixel (column, y) of slice z; the image is
        height x slice_count. Returns None for single-slice series.
        """
        if not self.has_orthogonal_views:
            logger.debug("sagittal_unavailable", slice_count=self.slice_count)
            return None

        column = min(max(0, column), self.width - 1)
        stored = np.stack([item.grid()[:, column] for item in self.slices])
        return self._render(stored, self.slices[0])

    def view(self, plane: Plane | str, index: int) -> ProjectionResult | None:
        """Dispatch to the view for ``plane``."""
        plane = Plane(plane)
        if plane == Plane.AXIAL:
            return self.axial(index)
        if plane == Plane.CORONAL:
            return self.coronal(index)
        return self.sagittal(index)

    def plane_size(self, plane: Plane | str) -> int:
        """Number of distinct positions along ``plane``."""
        plane = Plane(plane)
        if plane == Plane.AXIAL:
            return self.slice_count
        if plane == Plane.CORONAL:
            return self.height
        return self.width

    def coronal_stack(self) -> list[ProjectionResult]:
        """Every coronal view, one per image row."""
        if not self.has_orthogonal_views:
            return []
        return [self.coronal(row) for row in range(self.height)]

    def sagittal_stack(self) -> list[ProjectionResult]:
        """Every sagittal view, one per image column."""
        if not self.has_orthogonal_views:
            return []
        return [self.sagittal(column) for column in range(self.width)]
