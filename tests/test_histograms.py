"""Tests for chromaticity and RGB color histograms."""

import numpy as np
import pytest

from image_retrieval.errors import EmptyInput
from image_retrieval.histograms import (
    extract_rg_chromaticity, extract_rgb_chromaticity, extract_spatial_color,
    rgb_color_histogram, hue_histogram, SPATIAL_HIST_DIM, COLOR_HIST_DIM,
)
from tests.conftest import solid_image


class TestRgChromaticity:
    """Tests for the 2D rg-chromaticity histogram."""

    def test_output_shape(self, red_square_image):
        hist = extract_rg_chromaticity(red_square_image, bins=16)
        assert hist.shape == (256,)

    def test_output_dtype(self, red_square_image):
        hist = extract_rg_chromaticity(red_square_image)
        assert hist.dtype == np.float32

    def test_counts_sum_to_pixel_count(self, noise_image):
        hist = extract_rg_chromaticity(noise_image, bins=16)
        assert hist.sum() == noise_image.shape[0] * noise_image.shape[1]

    def test_custom_bins(self, noise_image):
        hist = extract_rg_chromaticity(noise_image, bins=4)
        assert hist.shape == (16,)

    def test_gray_pixels_land_in_one_bin(self):
        img = solid_image([100, 100, 100], rows=10, cols=12)
        hist = extract_rg_chromaticity(img, bins=16)
        # r = g = 1/3 -> round(1/3 * 15) = 5
        assert hist[5 * 16 + 5] == 120

    def test_pure_red_uses_red_channel(self):
        img = solid_image([0, 0, 255], rows=5, cols=5)
        hist = extract_rg_chromaticity(img, bins=16)
        # r = 1, g = 0 -> row 15, column 0
        assert hist[15 * 16] == 25

    def test_half_way_values_round_up(self):
        img = solid_image([0, 100, 100], rows=4, cols=5)
        hist = extract_rg_chromaticity(img, bins=4)
        # r = g = 0.5 -> 0.5 * 3 = 1.5 -> bin 2
        assert hist[2 * 4 + 2] == 20
        assert hist.sum() == 20

    def test_black_pixels_do_not_divide_by_zero(self):
        img = solid_image([0, 0, 0], rows=5, cols=5)
        hist = extract_rg_chromaticity(img)
        assert hist[0] == 25
        assert not np.any(np.isnan(hist))

    def test_empty_image_gives_zero_histogram(self):
        hist = extract_rg_chromaticity(np.zeros((0, 0, 3), dtype=np.uint8), bins=16)
        assert hist.shape == (256,)
        assert hist.sum() == 0

    def test_invalid_bins(self, noise_image):
        with pytest.raises(ValueError):
            extract_rg_chromaticity(noise_image, bins=0)

    def test_output_is_read_only(self, noise_image):
        hist = extract_rg_chromaticity(noise_image)
        with pytest.raises(ValueError):
            hist[0] = 1.0

    def test_input_not_modified(self, noise_image):
        original = noise_image.copy()
        extract_rg_chromaticity(noise_image)
        assert np.array_equal(noise_image, original)


class TestRgbChromaticity:
    """Tests for the 3D rgb-chromaticity histogram."""

    def test_default_shape(self, red_square_image):
        hist = extract_rgb_chromaticity(red_square_image)
        assert hist.shape == (512,)

    def test_counts_sum_to_pixel_count(self, noise_image):
        hist = extract_rgb_chromaticity(noise_image, bins=8)
        assert hist.sum() == noise_image.shape[0] * noise_image.shape[1]

    def test_gray_pixels_index(self):
        img = solid_image([100, 100, 100], rows=4, cols=4)
        hist = extract_rgb_chromaticity(img, bins=8)
        # r = g = b = 1/3 -> round(7/3) = 2 on every axis
        assert hist[2 * 64 + 2 * 8 + 2] == 16

    def test_black_pixels_have_full_blue_chromaticity(self):
        img = solid_image([0, 0, 0], rows=3, cols=3)
        hist = extract_rgb_chromaticity(img, bins=8)
        # r = g = 0 -> b = 1
        assert hist[7] == 9


class TestRgbColorHistogram:
    """Tests for the 8x8x8 color histogram."""

    def test_bin_boundaries(self):
        img = np.array([[[31, 32, 255]]], dtype=np.uint8)
        hist = rgb_color_histogram(img)
        # R=255 -> 7, G=32 -> 1, B=31 -> 0
        assert hist[7 * 64 + 1 * 8 + 0] == 1
        assert hist.sum() == 1

    def test_length(self, noise_image):
        assert rgb_color_histogram(noise_image).shape == (COLOR_HIST_DIM,)


class TestSpatialColor:
    """Tests for the two-region color histogram."""

    def test_output_shape(self, red_square_image):
        hist = extract_spatial_color(red_square_image)
        assert hist.shape == (SPATIAL_HIST_DIM,)

    def test_odd_rows_extra_row_goes_to_bottom(self):
        img = solid_image([10, 10, 10], rows=5, cols=4)
        hist = extract_spatial_color(img)
        assert hist[:512].sum() == 8
        assert hist[512:].sum() == 12
        assert hist.sum() == 20

    def test_halves_are_independent(self):
        img = np.zeros((4, 4, 3), dtype=np.uint8)
        img[:2] = [255, 0, 0]  # blue on top
        img[2:] = [0, 0, 255]  # red on bottom
        hist = extract_spatial_color(img)
        assert hist[7] == 8
        assert hist[512 + 7 * 64] == 8

    def test_empty_raises(self):
        with pytest.raises(EmptyInput):
            extract_spatial_color(np.zeros((0, 5, 3), dtype=np.uint8))

    def test_single_row_is_all_bottom(self):
        img = solid_image([0, 0, 0], rows=1, cols=3)
        hist = extract_spatial_color(img)
        assert hist[:512].sum() == 0
        assert hist[512:].sum() == 3


class TestHueHistogram:
    """Tests for the masked hue histogram."""

    def test_masked_counts(self):
        hue = np.array([[0, 12, 179], [90, 12, 12]], dtype=np.uint8)
        mask = np.array([[True, True, True], [False, True, False]])
        hist = hue_histogram(hue, mask, bins=16)
        assert hist[0] == 1
        assert hist[1] == 2
        assert hist[15] == 1
        assert hist.sum() == 4
