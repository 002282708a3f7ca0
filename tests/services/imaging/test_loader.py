"""Tests for slice file loading."""

import numpy as np
import pytest

from dental_imaging.core.exceptions import EmptyInputError, UnsupportedSliceError
from dental_imaging.services.imaging.loader import (
    SliceFile,
    decode_raster,
    load_dicom_series,
    load_slice_images,
    load_slice_series,
    read_directory,
    render_slice,
    select_slice_files,
)
from dental_imaging.services.imaging.mpr import MultiPlanarReslicer, Slice


class TestSelectSliceFiles:
    """Test file filtering and ordering."""

    def test_filters_and_sorts(self):
        """Test unsupported names are dropped and the rest sorted."""
        files = [
            SliceFile("slice_010.png", b""),
            SliceFile("notes.txt", b""),
            SliceFile("slice_002.JPG", b""),
            SliceFile("series/0001.dcm", b""),
            SliceFile("archive.zip", b""),
        ]
        names = [item.name for item in select_slice_files(files)]
        assert names == ["series/0001.dcm", "slice_002.JPG", "slice_010.png"]

    def test_read_directory(self, tmp_path, rgba_factory, png_factory):
        """Test reading a directory."""
        (tmp_path / "b.png").write_bytes(png_factory(rgba_factory(2, 2)))
        (tmp_path / "a.png").write_bytes(png_factory(rgba_factory(2, 2)))
        (tmp_path / "readme.md").write_text("skip")
        (tmp_path / "nested").mkdir()
        assert [item.name for item in read_directory(tmp_path)] == ["a.png", "b.png"]

    def test_read_missing_directory(self, tmp_path):
        """Test reading a missing directory."""
        with pytest.raises(EmptyInputError):
            read_directory(tmp_path / "missing")


class TestDecodeRaster:
    """Test raster decoding."""

    def test_rgba(self, rgba_factory, png_factory):
        """Test RGBA decoding."""
        decoded = decode_raster(png_factory(rgba_factory(3, 2, 90)))
        assert decoded.shape == (2, 3, 4)
        assert decoded.dtype == np.uint8
        assert np.all(decoded[..., :3] == 90)

    def test_grayscale_promoted(self, png_factory):
        """Test grayscale images are promoted to RGBA."""
        decoded = decode_raster(png_factory(np.full((2, 2), 40, dtype=np.uint8)))
        assert decoded.shape == (2, 2, 4)
        assert decoded[0, 0].tolist() == [40, 40, 40, 255]

    def test_invalid(self):
        """Test undecodable bytes."""
        with pytest.raises(UnsupportedSliceError):
            decode_raster(b"not an image")


class TestRenderSlice:
    """Test windowing of DICOM slices for projection stacks."""

    def test_own_window(self):
        """Test the slice window is applied."""
        item = Slice(width=2, height=1, pixels=np.array([0, 200]), window_center=100, window_width=200)
        assert render_slice(item).tolist() == [[0, 255]]

    def test_zero_width_matches_mpr(self):
        """Test a zero-width window tag falls back the same way as MPR views."""
        item = Slice(
            width=3,
            height=1,
            pixels=np.array([0, 500, 1000], dtype=np.uint16),
            window_center=40,
            window_width=0,
        )
        rendered = render_slice(item)
        assert rendered.tolist() == [[0, 128, 255]]
        assert np.array_equal(rendered, MultiPlanarReslicer([item]).axial(0).intensity)


class TestLoadSliceImages:
    """Test stack decoding."""

    def test_mixed_stack(self, rgba_factory, png_factory, dicom_factory):
        """Test DICOM and raster slices in one stack."""
        pixels = np.array([[0, 1000], [500, 250]], dtype=np.uint16)
        files = [
            SliceFile("b.png", png_factory(rgba_factory(2, 2, 100))),
            SliceFile("a.dcm", dicom_factory(pixels, window=(500, 1000))),
            SliceFile("c.txt", b"ignored"),
        ]
        progress = []
        images = load_slice_images(files, progress.append)
        assert len(images) == 2
        assert images[0].tolist() == [[0, 255], [128, 64]]
        assert images[1].shape == (2, 2, 4)
        assert progress == [0.5, 1.0]

    def test_nothing_selected(self):
        """Test stacks without supported files."""
        with pytest.raises(EmptyInputError):
            load_slice_images([SliceFile("a.txt", b"")])


class TestLoadSeries:
    """Test DICOM series loading."""

    def test_ordered_by_instance_number(self, dicom_factory):
        """Test DICOM slices are ordered by instance number."""
        files = [
            SliceFile(f"{name}.dcm", dicom_factory(np.full((2, 2), n, dtype=np.uint16), instance_number=n))
            for name, n in [("a", 3), ("b", 1), ("c", 2)]
        ]
        series = load_dicom_series(files)
        assert [item.instance_number for item in series] == [1, 2, 3]

    def test_no_dicom(self, rgba_factory, png_factory):
        """Test series without DICOM files."""
        with pytest.raises(EmptyInputError):
            load_dicom_series([SliceFile("a.png", png_factory(rgba_factory(2, 2)))])

    def test_raster_series(self, rgba_factory, png_factory):
        """Test raster slices as a reslicing series."""
        files = [SliceFile(f"{i}.png", png_factory(rgba_factory(3, 2, 10 * i))) for i in range(3)]
        series = load_slice_series(files)
        assert len(series) == 3
        assert series[2].pixels.tolist() == [20] * 6
        assert (series[0].window_center, series[0].window_width) == (127.5, 255.0)
