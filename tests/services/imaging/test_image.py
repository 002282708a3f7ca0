"""Tests for ProjectionResult rasters."""

from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from dental_imaging.core.exceptions import RenderTargetError
from dental_imaging.services.imaging.image import ProjectionResult, to_display_bytes


class TestProjectionResult:
    """Test raster buffers."""

    def test_from_intensity(self):
        """Test RGBA buffers from intensity values."""
        result = ProjectionResult.from_intensity(np.array([[0.4, 254.6, 300.0]]))
        assert result.shape == (1, 3)
        assert result.pixels[0].tolist() == [[0, 0, 0, 255], [255, 255, 255, 255], [255, 255, 255, 255]]

    def test_to_display_bytes_clamps(self):
        """Test display bytes are clamped and rounded."""
        assert to_display_bytes(np.array([-3.0, 0.5, 1.5, 999.0])).tolist() == [0, 0, 2, 255]

    def test_pixels_read_only(self):
        """Test pixel buffers are read-only."""
        result = ProjectionResult.from_intensity(np.zeros((2, 2)))
        with pytest.raises(ValueError):
            result.pixels[0, 0, 0] = 1

    def test_shape_matches_pixel_array(self):
        """Test shape is (height, width) like the pixel array."""
        result = ProjectionResult.from_intensity(np.zeros((2, 5)))
        assert result.shape == (2, 5)
        assert result.shape == result.pixels.shape[:2]
        assert (result.height, result.width) == result.shape

    def test_shape_validated(self):
        """Test pixel buffer shape is validated."""
        with pytest.raises(ValueError):
            ProjectionResult(width=2, height=2, pixels=np.zeros((2, 3, 4), dtype=np.uint8))

    def test_tobytes_rgba(self):
        """Test flat RGBA bytes."""
        result = ProjectionResult.from_intensity(np.full((1, 2), 7, dtype=np.uint8))
        assert result.tobytes() == bytes([7, 7, 7, 255, 7, 7, 7, 255])

    def test_to_png(self):
        """Test PNG encoding."""
        intensity = np.arange(12, dtype=np.uint8).reshape(3, 4)
        png = ProjectionResult.from_intensity(intensity).to_png()
        assert png.startswith(b"\x89PNG")
        with Image.open(BytesIO(png)) as img:
            assert img.size == (4, 3)
            assert np.array_equal(np.asarray(img), intensity)

    def test_empty_png_rejected(self):
        """Test empty images cannot be rendered."""
        with pytest.raises(RenderTargetError):
            ProjectionResult.from_intensity(np.zeros((0, 5))).to_png()
