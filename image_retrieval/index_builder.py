"""
Image directory loading and precomputed feature indexes.

Scans a directory of images, decodes them with OpenCV (BGR channel order,
as the extractors expect) and either yields them as search candidates or
extracts one scheme's features for all of them up front:

    - features.npz — per-image feature vectors keyed by file name
    - filenames.npy — ordered file name list (candidate order)
    - scheme.json — scheme the features were built with

A stored index lets repeated searches skip candidate extraction entirely.
"""

import os
import json
import logging
from typing import Iterator, List, Optional, Tuple

import cv2
import numpy as np

from .embeddings import EmbeddingTable
from .engine import CandidateRecord
from .errors import FeatureExtractionError, SchemeMismatch
from .schemes import Scheme, extract_features

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.ppm', '.tif', '.tiff', '.bmp'}

FEATURES_FILE = "features.npz"
FILENAMES_FILE = "filenames.npy"
SCHEME_FILE = "scheme.json"


def is_image_file(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in IMAGE_EXTENSIONS


def iter_image_files(image_dir: str) -> List[str]:
    """Sorted image file names (not paths) directly inside image_dir."""
    return sorted(
        f for f in os.listdir(image_dir)
        if is_image_file(f) and os.path.isfile(os.path.join(image_dir, f))
    )


def load_image(path: str) -> Optional[np.ndarray]:
    """Decode an image as BGR uint8, or None if it cannot be read."""
    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        logger.warning(f"Could not read: {path}")
    return image


def load_candidates(image_dir: str) -> Iterator[Tuple[str, np.ndarray]]:
    """
    Yield (file name, image) pairs for every readable image in a directory.

    Images are decoded lazily, one at a time, in sorted file name order.
    Unreadable files are logged and skipped.
    """
    for filename in iter_image_files(image_dir):
        image = load_image(os.path.join(image_dir, filename))
        if image is None:
            continue
        yield filename, image


def build_feature_index(image_dir: str,
                        output_dir: str,
                        scheme: Scheme,
                        embeddings: EmbeddingTable = None) -> dict:
    """
    Extract one scheme's features for a directory and save them to disk.

    Args:
        image_dir: Directory containing images.
        output_dir: Directory to write index files.
        scheme: Scheme to extract.
        embeddings: Embedding table, required for embedding schemes.

    Returns:
        Dict with 'success', 'processed', 'errors', 'dimensions' and
        'index_path'.
    """
    os.makedirs(output_dir, exist_ok=True)

    if scheme.needs_pixels:
        candidates = load_candidates(image_dir)
    else:
        candidates = ((f, None) for f in iter_image_files(image_dir))

    vectors = {}
    valid_filenames = []
    processed = 0
    errors = 0

    logger.info(f"Building {scheme.label} index from {image_dir}")

    for i, (filename, image) in enumerate(candidates):
        try:
            vectors[filename] = extract_features(scheme, image=image,
                                                 identifier=filename,
                                                 embeddings=embeddings)
        except FeatureExtractionError as e:
            logger.warning(f"Failed to process {filename}: {e}")
            errors += 1
            continue

        valid_filenames.append(filename)
        processed += 1

        if (i + 1) % 500 == 0:
            logger.info(f"Processed {i + 1} images")

    if not vectors:
        return {"success": False, "error": "No valid images processed"}

    features_path = os.path.join(output_dir, FEATURES_FILE)
    np.savez_compressed(features_path, **vectors)

    filenames_path = os.path.join(output_dir, FILENAMES_FILE)
    np.save(filenames_path, np.array(valid_filenames))

    dim = int(next(iter(vectors.values())).size)
    with open(os.path.join(output_dir, SCHEME_FILE), 'w', encoding='utf-8') as f:
        json.dump({"kind": scheme.kind.value, "bins": scheme.bins, "dimensions": dim}, f)

    logger.info(
        f"Index built: {processed} images, {dim}d {scheme.label} vectors, "
        f"{errors} errors"
    )

    return {
        "success": True,
        "processed": processed,
        "errors": errors,
        "dimensions": dim,
        "index_path": features_path,
    }


def load_feature_index(index_dir: str,
                       expected: Scheme = None) -> Tuple[Scheme, List[CandidateRecord]]:
    """
    Load a feature index written by build_feature_index().

    Args:
        index_dir: Directory containing the index files.
        expected: If given, the scheme the index must have been built with.

    Returns:
        Tuple of (scheme, records) with records in stored candidate order.

    Raises:
        SchemeMismatch: If expected differs from the stored scheme.
        ValueError: If the index metadata or feature entries are malformed.
    """
    try:
        with open(os.path.join(index_dir, SCHEME_FILE), 'r', encoding='utf-8') as f:
            meta = json.load(f)
        kind, bins = meta["kind"], meta.get("bins")
        scheme = Scheme.parse(kind if bins is None else f"{kind}:{bins}")
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed {SCHEME_FILE} in {index_dir}: {e!r}") from e

    if expected is not None and expected != scheme:
        raise SchemeMismatch(
            f"Index in {index_dir} was built with {scheme.label}, "
            f"not {expected.label}"
        )

    filenames = list(np.load(os.path.join(index_dir, FILENAMES_FILE), allow_pickle=False))
    records = []
    with np.load(os.path.join(index_dir, FEATURES_FILE)) as data:
        for filename in filenames:
            filename = str(filename)
            if filename not in data.files:
                raise ValueError(f"Index in {index_dir} has no features for {filename}")
            vector = data[filename].astype(np.float32)
            vector.setflags(write=False)
            records.append(CandidateRecord(filename, vector))

    logger.info(f"Loaded {len(records)} {scheme.label} vectors from {index_dir}")
    return scheme, records
