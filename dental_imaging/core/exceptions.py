"""Error taxonomy for the reconstruction engine.

All errors are raised synchronously to the immediate caller. Nothing in the
engine retries or falls back; the surrounding application decides how to
present the failure.
"""


class ReconstructionError(Exception):
    """Base class for reconstruction and export failures."""


class InputMismatchError(ReconstructionError):
    """Raised when slices of differing dimensions are combined."""

    def __init__(self, expected: tuple[int, int], actual: tuple[int, int], index: int):
        self.expected = expected
        self.actual = actual
        self.index = index
        super().__init__(
            f"Slice {index} is {actual[0]}x{actual[1]}, "
            f"expected {expected[0]}x{expected[1]} like the first slice"
        )


class EmptyInputError(ReconstructionError):
    """Raised when no usable slice images were supplied."""


class RenderTargetError(ReconstructionError):
    """Raised when a display or export target cannot be produced."""


class EncodingPreconditionError(ReconstructionError):
    """Raised when parameters or images are invalid before any bytes are written."""


class UnsupportedSliceError(ReconstructionError):
    """Raised when a slice cannot be decoded into an 8-bit or DICOM pixel grid."""
