"""
Pixel-block, texture and embedding feature extractors.

Complements histograms.py with the schemes that are not pure color counts:

    baseline        7x7 center block of raw channel values (147)
    texture_color   16-bin gradient magnitude ++ 512-bin RGB histogram (528)
    embedding       precomputed vector looked up by image identifier
    composite       embedding ++ 16-bin skin hue histogram ++ brightness

The skin-tone thresholds are empirically tuned defaults. Override them via
environment variables (SKIN_HUE_MAX, SKIN_SAT_MIN, SKIN_SAT_MAX,
SKIN_VAL_MIN) rather than treating them as fixed properties of skin.
"""

import os
import cv2
import numpy as np
import logging

from .errors import InputTooSmall, LookupMiss
from .histograms import rgb_color_histogram, hue_histogram
from .preprocessing import (
    normalize_image, require_pixels, to_grayscale, to_hsv,
    extract_center_region, as_feature_vector,
)

logger = logging.getLogger(__name__)

BASELINE_SIZE = 7
BASELINE_DIM = BASELINE_SIZE * BASELINE_SIZE * 3

TEXTURE_BINS = 16
TEXTURE_COLOR_DIM = TEXTURE_BINS + 512

SKIN_BINS = 16
SKIN_HUE_MAX = int(os.environ.get("SKIN_HUE_MAX", "50"))
SKIN_SAT_MIN = int(os.environ.get("SKIN_SAT_MIN", "20"))
SKIN_SAT_MAX = int(os.environ.get("SKIN_SAT_MAX", "150"))
SKIN_VAL_MIN = int(os.environ.get("SKIN_VAL_MIN", "50"))

# Skin histogram + brightness appended after the embedding
COMPOSITE_EXTRA_DIM = SKIN_BINS + 1


def extract_baseline(image_np: np.ndarray) -> np.ndarray:
    """
    Extract the 7x7 block of pixels around the image center.

    The block is centered on (rows//2, cols//2) and read row-major, each
    pixel contributing its three channel values in storage (BGR) order.

    Args:
        image_np: BGR uint8 image.

    Returns:
        147-element float32 vector.

    Raises:
        InputTooSmall: If either dimension is below 7 pixels.
    """
    image_np = normalize_image(image_np)
    h, w = image_np.shape[:2]
    if h < BASELINE_SIZE or w < BASELINE_SIZE:
        raise InputTooSmall(
            f"Baseline features need at least {BASELINE_SIZE}x{BASELINE_SIZE} "
            f"pixels, got {h}x{w}"
        )

    half = BASELINE_SIZE // 2
    cy, cx = h // 2, w // 2
    block = image_np[cy - half:cy + half + 1, cx - half:cx + half + 1]

    return as_feature_vector(block)


def gradient_magnitude(gray: np.ndarray) -> np.ndarray:
    """
    Sobel gradient magnitude as the mean of |Gx| and |Gy|.

    Both responses are saturated to 8 bits before averaging, so the result
    is a uint8 image in [0, 255].
    """
    gx = cv2.Sobel(gray, cv2.CV_16S, 1, 0, ksize=3)
    gy = cv2.Sobel(gray, cv2.CV_16S, 0, 1, ksize=3)
    return cv2.addWeighted(cv2.convertScaleAbs(gx), 0.5,
                           cv2.convertScaleAbs(gy), 0.5, 0)


def extract_texture_color(image_np: np.ndarray) -> np.ndarray:
    """
    Extract a gradient magnitude histogram followed by a color histogram.

    Process:
        1. Convert to grayscale
        2. Sobel X/Y, average of absolute responses
        3. Bin magnitudes into 16 bins (value*16/256)
        4. Append the whole-image 8x8x8 RGB histogram

    Args:
        image_np: BGR uint8 image.

    Returns:
        528-element float32 vector of raw counts (16 texture + 512 color).

    Raises:
        EmptyInput: If the image has no pixels.
    """
    image_np = require_pixels(image_np)

    magnitude = gradient_magnitude(to_grayscale(image_np)).astype(np.int64)
    texture_idx = np.clip(magnitude.ravel() * TEXTURE_BINS // 256, 0, TEXTURE_BINS - 1)
    texture = np.bincount(texture_idx, minlength=TEXTURE_BINS).astype(np.float32)

    color = rgb_color_histogram(image_np)

    return as_feature_vector(np.concatenate([texture, color]))


def extract_embedding(identifier: str, embeddings) -> np.ndarray:
    """
    Look up a precomputed embedding for an image.

    Args:
        identifier: Image identifier (file name) used as the table key.
        embeddings: EmbeddingTable or any mapping-like object with lookup().

    Returns:
        The stored vector, unchanged.

    Raises:
        LookupMiss: If the table has no entry for identifier.
    """
    if embeddings is None or identifier is None:
        raise LookupMiss(identifier)
    vector = embeddings.lookup(identifier)
    if vector is None:
        raise LookupMiss(identifier)
    return as_feature_vector(vector)


def skin_mask(hsv: np.ndarray) -> np.ndarray:
    """Boolean mask of pixels whose HSV values fall in the skin-tone range."""
    h, s, v = hsv[:, :, 0], hsv[:, :, 1], hsv[:, :, 2]
    return ((h <= SKIN_HUE_MAX)
            & (s >= SKIN_SAT_MIN) & (s <= SKIN_SAT_MAX)
            & (v >= SKIN_VAL_MIN))


def extract_skin_brightness(image_np: np.ndarray) -> np.ndarray:
    """
    Extract the local skin-tone hue histogram and mean brightness.

    Both are computed over the center square region (half-side
    min(cx, cy) // 2) where the subject of a photo usually sits.

    Returns:
        17-element float32 vector: 16 hue bins then mean gray level.

    Raises:
        EmptyInput: If the image has no pixels.
        InputTooSmall: If the center region is empty.
    """
    image_np = require_pixels(image_np)
    region = extract_center_region(image_np)
    if region.size == 0:
        raise InputTooSmall(
            f"Center region is empty for {image_np.shape[0]}x{image_np.shape[1]} image"
        )

    hsv = to_hsv(region)
    skin = hue_histogram(hsv[:, :, 0], skin_mask(hsv), bins=SKIN_BINS)
    brightness = float(np.mean(to_grayscale(region)))

    return np.append(skin, np.float32(brightness)).astype(np.float32)


def extract_composite(image_np: np.ndarray, identifier: str, embeddings) -> np.ndarray:
    """
    Extract embedding ++ skin hue histogram ++ brightness.

    Args:
        image_np: BGR uint8 image.
        identifier: Key into the embedding table.
        embeddings: EmbeddingTable holding the precomputed vectors.

    Returns:
        Float32 vector of length embedding_dim + 17.

    Raises:
        LookupMiss: If identifier has no embedding.
        EmptyInput, InputTooSmall: If the image cannot supply the local part.
    """
    embedding = extract_embedding(identifier, embeddings)
    local = extract_skin_brightness(image_np)

    logger.debug(f"Composite features for {identifier}: "
                 f"{int(local[:SKIN_BINS].sum())} skin pixels, "
                 f"brightness {local[-1]:.1f}")

    return as_feature_vector(np.concatenate([embedding, local]))
