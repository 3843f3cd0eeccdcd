"""
Color histogram feature extraction.

All histograms hold raw pixel counts; normalization happens in the distance
metrics so that an image's total pixel count is still recoverable from its
features. Bin layouts are row-major flattenings of the multi-dimensional
histogram:

    rg chromaticity     bins x bins              index r*bins + g
    rgb chromaticity    bins x bins x bins       index r*bins^2 + g*bins + b
    rgb color           8 x 8 x 8                index r*64 + g*8 + b
    spatial color       top-half rgb ++ bottom-half rgb (1024)

Chromaticity bin counts are configurable via environment variables
(RG_CHROM_BINS, RGB_CHROM_BINS) or per call.
"""

import os
import numpy as np
import logging

from .preprocessing import (
    BLUE, GREEN, RED, normalize_image, require_pixels, as_feature_vector,
)

logger = logging.getLogger(__name__)

DEFAULT_RG_BINS = int(os.environ.get("RG_CHROM_BINS", "16"))
DEFAULT_RGB_BINS = int(os.environ.get("RGB_CHROM_BINS", "8"))

# RGB color histogram: 8 bins per channel
COLOR_BINS = 8
COLOR_HIST_DIM = COLOR_BINS ** 3
SPATIAL_HIST_DIM = 2 * COLOR_HIST_DIM


def _check_bins(bins: int) -> int:
    bins = int(bins)
    if bins < 1:
        raise ValueError(f"Histogram needs at least one bin per axis, got {bins}")
    return bins


def _chromaticity(image_np: np.ndarray):
    """
    Per-pixel r, g chromaticity for a BGR image.

    The divisor R+G+B is floored to 1 so pure black pixels map to (0, 0)
    instead of dividing by zero.
    """
    pixels = image_np.reshape(-1, 3).astype(np.float32)
    total = np.maximum(pixels[:, RED] + pixels[:, GREEN] + pixels[:, BLUE], 1.0)
    return pixels[:, RED] / total, pixels[:, GREEN] / total


def _chroma_bin(values: np.ndarray, bins: int) -> np.ndarray:
    # Round half up by +0.5 truncation
    idx = (values * (bins - 1) + 0.5).astype(np.int64)
    return np.clip(idx, 0, bins - 1)


def extract_rg_chromaticity(image_np: np.ndarray,
                            bins: int = DEFAULT_RG_BINS) -> np.ndarray:
    """
    Extract a 2D rg-chromaticity histogram.

    Each pixel contributes one count at (round(r*(bins-1)), round(g*(bins-1)))
    where r = R/(R+G+B) and g = G/(R+G+B). Chromaticity discards overall
    intensity, so the same surface under brighter light lands in the same bin.

    Args:
        image_np: BGR uint8 image.
        bins: Bins per axis.

    Returns:
        Float32 vector of bins*bins raw counts summing to rows*cols.
    """
    bins = _check_bins(bins)
    image_np = normalize_image(image_np)

    r, g = _chromaticity(image_np)
    index = _chroma_bin(r, bins) * bins + _chroma_bin(g, bins)
    hist = np.bincount(index, minlength=bins * bins)

    return as_feature_vector(hist)


def extract_rgb_chromaticity(image_np: np.ndarray,
                             bins: int = DEFAULT_RGB_BINS) -> np.ndarray:
    """
    Extract a 3D rgb-chromaticity histogram.

    Like the rg histogram with a third axis b = 1 - (r + g). The b axis is
    redundant in exact arithmetic but its rounding splits some rg cells,
    which slightly sharpens the histogram.

    Args:
        image_np: BGR uint8 image.
        bins: Bins per axis.

    Returns:
        Float32 vector of bins**3 raw counts, index r*bins^2 + g*bins + b.
    """
    bins = _check_bins(bins)
    image_np = normalize_image(image_np)

    r, g = _chromaticity(image_np)
    b = 1.0 - (r + g)
    index = (_chroma_bin(r, bins) * bins * bins
             + _chroma_bin(g, bins) * bins
             + _chroma_bin(b, bins))
    hist = np.bincount(index, minlength=bins ** 3)

    return as_feature_vector(hist)


def rgb_color_histogram(image_np: np.ndarray) -> np.ndarray:
    """
    Compute an 8x8x8 RGB histogram of raw counts.

    Channel values map to bins by value*8/256, clamped to [0, 7].

    Returns:
        512-element float32 array (writeable; callers combine it further).
    """
    pixels = image_np.reshape(-1, 3).astype(np.int64)
    binned = np.clip(pixels * COLOR_BINS // 256, 0, COLOR_BINS - 1)
    index = (binned[:, RED] * COLOR_BINS * COLOR_BINS
             + binned[:, GREEN] * COLOR_BINS
             + binned[:, BLUE])
    return np.bincount(index, minlength=COLOR_HIST_DIM).astype(np.float32)


def extract_spatial_color(image_np: np.ndarray) -> np.ndarray:
    """
    Extract a two-region RGB histogram.

    The image is split at row rows//2: the top half gets rows [0, rows//2)
    and the bottom half the rest, so an odd row count puts the extra row in
    the bottom half.

    Args:
        image_np: BGR uint8 image.

    Returns:
        1024-element float32 vector: top-half histogram then bottom-half.

    Raises:
        EmptyInput: If the image has no pixels.
    """
    image_np = require_pixels(image_np)
    split = image_np.shape[0] // 2

    top = rgb_color_histogram(image_np[:split])
    bottom = rgb_color_histogram(image_np[split:])

    return as_feature_vector(np.concatenate([top, bottom]))


def hue_histogram(hue: np.ndarray, mask: np.ndarray, bins: int = 16) -> np.ndarray:
    """
    Histogram of OpenCV hue values (0-179) over the masked pixels.

    Returns:
        Float32 array of raw counts, length bins.
    """
    selected = hue[mask].astype(np.int64)
    index = np.clip(selected * bins // 180, 0, bins - 1)
    return np.bincount(index, minlength=bins).astype(np.float32)
