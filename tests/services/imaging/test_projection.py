"""Tests for the projection engine."""

import numpy as np
import pytest

from dental_imaging.services.imaging.projection import (
    CurveParameters,
    ProjectionEngine,
    ProjectionMode,
)
from dental_imaging.services.imaging.volume import VolumeBuffer


def _uniform_volume(width: int, height: int, depth: int, value: float) -> VolumeBuffer:
    data = np.full(width * height * depth, value, dtype=np.float32)
    return VolumeBuffer(width=width, height=height, depth=depth, data=data)


def _column_image(values: list[int], width: int = 2) -> np.ndarray:
    """Slice whose every column holds ``values`` top to bottom."""
    gray = np.array(values, dtype=np.uint8)[:, np.newaxis].repeat(width, axis=1)
    image = np.empty((len(values), width, 4), dtype=np.uint8)
    image[..., :3] = gray[..., np.newaxis]
    image[..., 3] = 255
    return image


@pytest.fixture
def engine() -> ProjectionEngine:
    return ProjectionEngine()


class TestUniformVolume:
    """A 4x4x2 volume of ones."""

    @pytest.fixture
    def volume(self) -> VolumeBuffer:
        return _uniform_volume(4, 4, 2, 1.0)

    def test_mip(self, engine, volume):
        """Test MIP output size."""
        result = engine.project(volume, ProjectionMode.MIP)
        assert result.shape == (2, 4)
        assert np.all(result.intensity == 255)

    def test_average(self, engine, volume):
        """Test average output size."""
        result = engine.project(volume, "average")
        assert result.shape == (2, 4)
        assert np.all(result.intensity == 255)

    def test_orthogonal(self, engine, volume):
        """Test orthogonal output size."""
        result = engine.project(volume, ProjectionMode.ORTHOGONAL, slice_index=0)
        assert result.shape == (4, 4)
        assert np.all(result.intensity == 255)

    def test_rgba_layout(self, engine, volume):
        """Test the RGBA layout."""
        result = engine.project(volume, ProjectionMode.MIP)
        assert result.pixels.shape == (2, 4, 4)
        assert np.all(result.pixels[..., 3] == 255)
        assert np.array_equal(result.pixels[..., 0], result.pixels[..., 2])


class TestMaximumAndAverage:
    """Test the y-axis reductions."""

    def test_mip_values(self, engine, gradient_stack):
        """Test MIP takes the column maximum of each slice."""
        volume = VolumeBuffer.from_images(gradient_stack)
        result = engine.maximum_intensity(volume)
        expected = np.array([[x * 40 + z * 10 for x in range(6)] for z in range(3)])
        assert np.array_equal(result.intensity, expected)

    def test_mip_not_below_average(self, engine, gradient_stack):
        """Test MIP is never below the average."""
        noisy = [image.copy() for image in gradient_stack]
        noisy[1][0, :, :3] = 250
        noisy[2][3, 2, :3] = 0
        volume = VolumeBuffer.from_images(noisy)
        mip = engine.maximum_intensity(volume).intensity.astype(int)
        average = engine.average(volume).intensity.astype(int)
        assert np.all(mip >= average)

    def test_average_ignores_background(self, engine):
        """Test the average skips background samples."""
        volume = VolumeBuffer.from_images([_column_image([200, 200, 0, 0])])
        assert np.all(engine.average(volume).intensity == 200)

    def test_average_threshold_is_strict(self, engine):
        """Test the background threshold is strict."""
        # 25/255 is below 0.1, 26/255 is above
        below = VolumeBuffer.from_images([_column_image([25, 0, 0])])
        above = VolumeBuffer.from_images([_column_image([26, 0, 0])])
        assert np.all(engine.average(below).intensity == 0)
        assert np.all(engine.average(above).intensity == 26)

    def test_progress_per_slice(self, engine):
        """Test progress is reported once per slice."""
        progress = []
        engine.maximum_intensity(_uniform_volume(2, 2, 4, 0.5), progress.append)
        assert progress == [0, 25, 50, 75]


class TestCurvedPanoramic:
    """Test the arch unwrap."""

    def test_all_zero_volume(self, engine):
        """Test an empty volume unwraps to black."""
        volume = _uniform_volume(64, 64, 10, 0.0)
        curve = CurveParameters(radius=80, angle=180, offset=0, slice_thickness=10)
        result = engine.project(volume, ProjectionMode.CURVED, curve=curve)
        assert result.shape == (10, 720)
        assert np.all(result.intensity == 0)

    @pytest.mark.parametrize(
        ("angle", "width"),
        [(90, 360), (180, 720), (270, 1080), (135.1, 540), (90.125, 361)],
    )
    def test_output_width(self, engine, angle, width):
        """Test the output width follows the arch angle."""
        volume = _uniform_volume(16, 16, 3, 0.5)
        result = engine.curved_panoramic(volume, CurveParameters(angle=angle))
        assert result.shape == (3, width)

    def test_arch_inside_volume(self, engine):
        """Test an arch inside the volume."""
        volume = _uniform_volume(200, 200, 2, 1.0)
        result = engine.curved_panoramic(volume, CurveParameters(radius=80, angle=180))
        assert np.all(result.intensity == 255)

    def test_arch_outside_volume_reads_zero(self, engine):
        """Test an arch outside the volume reads zero."""
        volume = _uniform_volume(4, 4, 2, 1.0)
        curve = CurveParameters(radius=120, angle=90, offset=50, slice_thickness=1)
        result = engine.curved_panoramic(volume, curve)
        assert result.shape == (2, 360)
        assert np.all(result.intensity == 0)

    @pytest.mark.parametrize(
        ("thickness", "steps"),
        [(10, [-5, -4, -3, -2, -1, 0, 1, 2, 3, 4, 5]), (1, [-0.5, 0.5]), (3, [-1.5, -0.5, 0.5, 1.5])],
    )
    def test_radial_steps(self, thickness, steps):
        """Test radial sweep steps."""
        assert CurveParameters(slice_thickness=thickness).radial_steps().tolist() == steps


class TestOrthogonalSlice:
    """Test the axial re-slice."""

    def test_idempotent(self, engine, gradient_stack):
        """Test repeated slicing gives the same result."""
        volume = VolumeBuffer.from_images(gradient_stack)
        first = engine.orthogonal_slice(volume, 1)
        second = engine.orthogonal_slice(volume, 1)
        assert np.array_equal(first.pixels, second.pixels)

    def test_matches_source_slice(self, engine, gradient_stack):
        """Test the slice matches its source image."""
        volume = VolumeBuffer.from_images(gradient_stack)
        result = engine.orthogonal_slice(volume, 2)
        assert result.shape == (4, 6)
        assert np.array_equal(result.intensity, gradient_stack[2][..., 0])

    @pytest.mark.parametrize(("index", "expected"), [(-5, 0), (99, 2)])
    def test_index_clamped(self, engine, gradient_stack, index, expected):
        """Test the slice index is clamped."""
        volume = VolumeBuffer.from_images(gradient_stack)
        result = engine.orthogonal_slice(volume, index)
        assert np.array_equal(result.intensity, gradient_stack[expected][..., 0])

    def test_unknown_mode(self, engine):
        """Test unknown modes are rejected."""
        with pytest.raises(ValueError):
            engine.project(_uniform_volume(2, 2, 1, 0.0), "volume")
