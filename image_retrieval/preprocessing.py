"""
Pixel source helpers shared by the feature extractors.

Images are numpy uint8 arrays of shape (rows, cols, 3) in OpenCV's native
channel order: channel 0 is blue, channel 1 green, channel 2 red. Any decoder
wired up in front of this package must hand pixels over in that order, since
the chromaticity and RGB histogram formulas read "R", "G" and "B" by position.

None of these helpers write into the array they are given.
"""

import cv2
import numpy as np
import logging

from .errors import EmptyInput

logger = logging.getLogger(__name__)

# Channel positions in a BGR pixel
BLUE, GREEN, RED = 0, 1, 2


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is a uint8 three-channel BGR array."""
    if image_np is None:
        raise EmptyInput("No pixel data supplied")

    image_np = np.asarray(image_np)

    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        image_np = np.repeat(image_np[:, :, np.newaxis], 3, axis=2)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = image_np[:, :, :3]

    if image_np.ndim != 3 or image_np.shape[2] != 3:
        raise ValueError(f"Expected a (rows, cols, 3) image, got shape {image_np.shape}")

    return image_np


def require_pixels(image_np: np.ndarray) -> np.ndarray:
    """Normalize the image and reject zero-sized input."""
    image_np = normalize_image(image_np)
    if image_np.shape[0] == 0 or image_np.shape[1] == 0:
        raise EmptyInput(f"Image has no pixels (shape {image_np.shape})")
    return image_np


def to_grayscale(image_np: np.ndarray) -> np.ndarray:
    """Convert a BGR image to single-channel uint8 luma."""
    return cv2.cvtColor(np.ascontiguousarray(image_np), cv2.COLOR_BGR2GRAY)


def to_hsv(image_np: np.ndarray) -> np.ndarray:
    """
    Convert a BGR image to OpenCV 8-bit HSV.

    Hue is in [0, 180), saturation and value in [0, 255].
    """
    return cv2.cvtColor(np.ascontiguousarray(image_np), cv2.COLOR_BGR2HSV)


def extract_center_region(image_np: np.ndarray) -> np.ndarray:
    """
    Extract the square region centered on the image center.

    The half-side is min(center_x, center_y) // 2, so the region covers
    roughly the middle half of the shorter dimension. Small images can
    yield an empty region.

    Args:
        image_np: BGR uint8 image.

    Returns:
        View into the image covering the center square.
    """
    h, w = image_np.shape[:2]
    center_x = w // 2
    center_y = h // 2
    half = min(center_x, center_y) // 2

    return image_np[center_y - half:center_y + half,
                    center_x - half:center_x + half]


def as_feature_vector(values) -> np.ndarray:
    """Return values as a flat, read-only float32 feature vector."""
    vector = np.array(values, dtype=np.float32).ravel()
    vector.setflags(write=False)
    return vector
