"""
Distance metrics paired with each feature scheme.

Every metric returns a dissimilarity (lower = more similar) and is total:
mismatched lengths, empty vectors and degenerate histograms fall back to the
metric's maximum distance instead of raising, so one bad candidate never
aborts a ranking.

    sum_squared_difference            baseline              max inf
    histogram_intersection_distance   rg / rgb chromaticity max 1.0
    spatial_histogram_distance        spatial color         max 1.0
    texture_color_distance            texture + color       max 1.0
    cosine_distance                   embedding             max 1.0
    composite_distance                composite             max 1.0

Composite weights are loaded from the environment to allow tuning without
code changes. See DEFAULT_COMPOSITE_WEIGHTS for the expected structure.
"""

import os
import numpy as np
import logging

from .histograms import COLOR_HIST_DIM, SPATIAL_HIST_DIM
from .features import TEXTURE_BINS, TEXTURE_COLOR_DIM, SKIN_BINS, COMPOSITE_EXTRA_DIM

logger = logging.getLogger(__name__)

MAX_DISTANCE = 1.0
MAX_SSD = float("inf")

# Empirically tuned weights, not derived. Should sum to 1.0.
DEFAULT_COMPOSITE_WEIGHTS = {
    "dnn":        float(os.environ.get("COMPOSITE_DNN_W", "0.70")),
    "skin":       float(os.environ.get("COMPOSITE_SKIN_W", "0.20")),
    "brightness": float(os.environ.get("COMPOSITE_BRIGHTNESS_W", "0.10")),
}

# Brightness is a gray level in [0, 255]
BRIGHTNESS_RANGE = 255.0


def _as_array(vector) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64).ravel()


def sum_squared_difference(features_a, features_b) -> float:
    """
    Sum of squared differences between two vectors.

    Monotonic in Euclidean distance, so the square root is skipped.
    Unbounded above; returns inf when the lengths differ.
    """
    a, b = _as_array(features_a), _as_array(features_b)
    if a.shape != b.shape:
        return MAX_SSD

    diff = a - b
    return float(np.dot(diff, diff))


def _intersection(hist_a: np.ndarray, hist_b: np.ndarray) -> float:
    """
    Histogram intersection of two L1-normalized histograms, in [0, 1].

    Returns 0.0 (no overlap) when lengths differ, either histogram is
    empty, or either raw sum is below 1. The sum < 1 guard also treats
    nearly empty histograms as noise.
    """
    if hist_a.shape != hist_b.shape or hist_a.size == 0:
        return 0.0

    sum_a = hist_a.sum()
    sum_b = hist_b.sum()
    if sum_a < 1.0 or sum_b < 1.0:
        return 0.0

    overlap = np.minimum(hist_a / sum_a, hist_b / sum_b).sum()
    return float(min(max(overlap, 0.0), 1.0))


def histogram_intersection_distance(features_a, features_b) -> float:
    """
    1 - histogram intersection of the L1-normalized histograms.

    Args:
        features_a: Raw-count histogram.
        features_b: Raw-count histogram of the same layout.

    Returns:
        Distance in [0, 1]; 0 for identical distributions. 1.0 when the
        lengths differ, either vector is empty, or either sums below 1.
    """
    return 1.0 - _intersection(_as_array(features_a), _as_array(features_b))


def _split_intersection_distance(a: np.ndarray, b: np.ndarray, split: int) -> float:
    """Average the intersections of [:split] and [split:], as a distance."""
    first = _intersection(a[:split], b[:split])
    second = _intersection(a[split:], b[split:])
    return 1.0 - (first + second) / 2.0


def spatial_histogram_distance(features_a, features_b) -> float:
    """
    Distance between two top/bottom spatial color histograms.

    Each 512-bin half is normalized and intersected on its own, so a
    match in the top half cannot make up for a mismatch in the bottom
    beyond its half of the weight.

    Returns:
        1 - mean(top intersection, bottom intersection). 1.0 unless both
        vectors have 1024 values.
    """
    a, b = _as_array(features_a), _as_array(features_b)
    if a.size != SPATIAL_HIST_DIM or b.size != SPATIAL_HIST_DIM:
        return MAX_DISTANCE

    return _split_intersection_distance(a, b, COLOR_HIST_DIM)


def texture_color_distance(features_a, features_b) -> float:
    """
    Equal-weight distance over the texture (16) and color (512) parts.

    Returns 1.0 unless both vectors have 528 values.
    """
    a, b = _as_array(features_a), _as_array(features_b)
    if a.size != TEXTURE_COLOR_DIM or b.size != TEXTURE_COLOR_DIM:
        return MAX_DISTANCE

    return _split_intersection_distance(a, b, TEXTURE_BINS)


def cosine_distance(features_a, features_b) -> float:
    """
    1 - cosine similarity.

    The similarity is clamped to at most 1 so floating point overshoot on
    near-identical vectors cannot produce a negative distance.

    Returns:
        Distance in [0, 2]. 1.0 when lengths differ, a vector is empty,
        or either squared norm is below 1.
    """
    a, b = _as_array(features_a), _as_array(features_b)
    if a.shape != b.shape or a.size == 0:
        return MAX_DISTANCE

    norm_a = np.dot(a, a)
    norm_b = np.dot(b, b)
    if norm_a < 1.0 or norm_b < 1.0:
        return MAX_DISTANCE

    similarity = np.dot(a, b) / (np.sqrt(norm_a) * np.sqrt(norm_b))
    return float(1.0 - min(similarity, 1.0))


def composite_distance(features_a, features_b, weights: dict = None) -> float:
    """
    Weighted distance over embedding, skin histogram and brightness.

    Layout (from the end, so any embedding width works):
        [:-17]    embedding       cosine distance
        [-17:-1]  skin histogram  histogram intersection distance
        [-1]      brightness      |a - b| / 255

    Args:
        features_a: Composite feature vector.
        features_b: Composite feature vector of the same length.
        weights: Optional override for DEFAULT_COMPOSITE_WEIGHTS. Missing keys
            keep their default weight.

    Returns:
        Weighted sum of the three part distances. 1.0 when lengths differ
        or the vectors are too short to hold an embedding.
    """
    weights = {**DEFAULT_COMPOSITE_WEIGHTS, **(weights or {})}

    a, b = _as_array(features_a), _as_array(features_b)
    if a.shape != b.shape or a.size <= COMPOSITE_EXTRA_DIM:
        return MAX_DISTANCE

    split = a.size - COMPOSITE_EXTRA_DIM
    dnn = cosine_distance(a[:split], b[:split])
    skin = histogram_intersection_distance(a[split:split + SKIN_BINS],
                                           b[split:split + SKIN_BINS])
    brightness = abs(a[-1] - b[-1]) / BRIGHTNESS_RANGE

    return float(
        weights["dnn"] * dnn
        + weights["skin"] * skin
        + weights["brightness"] * brightness
    )
