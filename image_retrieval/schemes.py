"""
Feature schemes and their extractor/metric pairing.

A Scheme is a (kind, bins) value. SCHEME_TABLE maps every kind to exactly
one extractor and the distance metric built for that extractor's layout, so
features are always compared with the metric that understands them.

Textual selectors (CLI, config) use the form "kind" or "kind:bins", e.g.
"baseline", "rg:16", "rgb:8", "spatial", "texture", "embedding", "composite".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import numpy as np

from .errors import EmptyInput
from . import distances, features, histograms

logger = logging.getLogger(__name__)


class SchemeKind(Enum):
    BASELINE = "baseline"
    RG_CHROMATICITY = "rg"
    RGB_CHROMATICITY = "rgb"
    SPATIAL_COLOR = "spatial"
    TEXTURE_COLOR = "texture"
    EMBEDDING = "embedding"
    COMPOSITE = "composite"


_BINNED_KINDS = {
    SchemeKind.RG_CHROMATICITY: histograms.DEFAULT_RG_BINS,
    SchemeKind.RGB_CHROMATICITY: histograms.DEFAULT_RGB_BINS,
}

_ALIASES = {
    "rg_chromaticity": SchemeKind.RG_CHROMATICITY,
    "rgb_chromaticity": SchemeKind.RGB_CHROMATICITY,
    "multi": SchemeKind.SPATIAL_COLOR,
    "spatial_color": SchemeKind.SPATIAL_COLOR,
    "texture_color": SchemeKind.TEXTURE_COLOR,
    "dnn": SchemeKind.EMBEDDING,
    "custom": SchemeKind.COMPOSITE,
}


@dataclass(frozen=True)
class Scheme:
    """A feature scheme plus its parameters."""

    kind: SchemeKind
    bins: Optional[int] = None

    def __post_init__(self):
        if self.kind in _BINNED_KINDS:
            bins = _BINNED_KINDS[self.kind] if self.bins is None else int(self.bins)
            if bins < 1:
                raise ValueError(f"{self.kind.value} scheme needs bins >= 1, got {bins}")
            object.__setattr__(self, "bins", bins)
        elif self.bins is not None:
            raise ValueError(f"{self.kind.value} scheme takes no bins parameter")

    @classmethod
    def baseline(cls) -> "Scheme":
        return cls(SchemeKind.BASELINE)

    @classmethod
    def rg_chromaticity(cls, bins: int = None) -> "Scheme":
        return cls(SchemeKind.RG_CHROMATICITY, bins)

    @classmethod
    def rgb_chromaticity(cls, bins: int = None) -> "Scheme":
        return cls(SchemeKind.RGB_CHROMATICITY, bins)

    @classmethod
    def spatial_color(cls) -> "Scheme":
        return cls(SchemeKind.SPATIAL_COLOR)

    @classmethod
    def texture_color(cls) -> "Scheme":
        return cls(SchemeKind.TEXTURE_COLOR)

    @classmethod
    def embedding(cls) -> "Scheme":
        return cls(SchemeKind.EMBEDDING)

    @classmethod
    def composite(cls) -> "Scheme":
        return cls(SchemeKind.COMPOSITE)

    @classmethod
    def parse(cls, text: str) -> "Scheme":
        """
        Parse a selector such as "rg:16" or "texture".

        Raises:
            ValueError: For unknown kinds or a malformed bin count.
        """
        name, _, bins_text = text.strip().lower().partition(":")
        kind = _ALIASES.get(name)
        if kind is None:
            try:
                kind = SchemeKind(name)
            except ValueError:
                known = ", ".join(k.value for k in SchemeKind)
                raise ValueError(f"Unknown scheme '{text}' (expected one of: {known})") from None

        bins = None
        if bins_text:
            try:
                bins = int(bins_text)
            except ValueError:
                raise ValueError(f"Invalid bin count in scheme '{text}'") from None
        return cls(kind, bins)

    @property
    def key(self) -> tuple:
        """Hashable identity used for caching and stored indexes."""
        return (self.kind.value, self.bins)

    @property
    def label(self) -> str:
        if self.bins is None:
            return self.kind.value
        return f"{self.kind.value}:{self.bins}"

    @property
    def needs_pixels(self) -> bool:
        return SCHEME_TABLE[self.kind].needs_pixels

    @property
    def needs_embeddings(self) -> bool:
        return SCHEME_TABLE[self.kind].needs_embeddings

    def output_dim(self, embedding_dim: int = None) -> Optional[int]:
        """
        Length of the vectors this scheme produces.

        Embedding-based schemes depend on the table width; returns None for
        them when embedding_dim is not given.
        """
        if self.kind is SchemeKind.BASELINE:
            return features.BASELINE_DIM
        if self.kind is SchemeKind.RG_CHROMATICITY:
            return self.bins ** 2
        if self.kind is SchemeKind.RGB_CHROMATICITY:
            return self.bins ** 3
        if self.kind is SchemeKind.SPATIAL_COLOR:
            return histograms.SPATIAL_HIST_DIM
        if self.kind is SchemeKind.TEXTURE_COLOR:
            return features.TEXTURE_COLOR_DIM
        if embedding_dim is None:
            return None
        if self.kind is SchemeKind.EMBEDDING:
            return embedding_dim
        return embedding_dim + features.COMPOSITE_EXTRA_DIM

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class SchemeEntry:
    """Extractor and metric for one scheme kind."""

    extract: Callable
    distance: Callable
    needs_pixels: bool = True
    needs_embeddings: bool = False


# Extractors share the signature (image, identifier, embeddings, bins)
SCHEME_TABLE: Dict[SchemeKind, SchemeEntry] = {
    SchemeKind.BASELINE: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: features.extract_baseline(image),
        distance=distances.sum_squared_difference,
    ),
    SchemeKind.RG_CHROMATICITY: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: histograms.extract_rg_chromaticity(image, bins),
        distance=distances.histogram_intersection_distance,
    ),
    SchemeKind.RGB_CHROMATICITY: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: histograms.extract_rgb_chromaticity(image, bins),
        distance=distances.histogram_intersection_distance,
    ),
    SchemeKind.SPATIAL_COLOR: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: histograms.extract_spatial_color(image),
        distance=distances.spatial_histogram_distance,
    ),
    SchemeKind.TEXTURE_COLOR: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: features.extract_texture_color(image),
        distance=distances.texture_color_distance,
    ),
    SchemeKind.EMBEDDING: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: features.extract_embedding(identifier, embeddings),
        distance=distances.cosine_distance,
        needs_pixels=False,
        needs_embeddings=True,
    ),
    SchemeKind.COMPOSITE: SchemeEntry(
        extract=lambda image, identifier, embeddings, bins: features.extract_composite(image, identifier, embeddings),
        distance=distances.composite_distance,
        needs_embeddings=True,
    ),
}


def extract_features(scheme: Scheme,
                     image: np.ndarray = None,
                     identifier: str = None,
                     embeddings=None) -> np.ndarray:
    """
    Extract the feature vector for one image under a scheme.

    Args:
        scheme: Scheme to extract.
        image: BGR uint8 image; required unless the scheme is embedding-only.
        identifier: Image identifier; required for embedding schemes.
        embeddings: EmbeddingTable for embedding schemes.

    Returns:
        Read-only float32 feature vector.

    Raises:
        FeatureExtractionError: InputTooSmall, EmptyInput or LookupMiss.
    """
    entry = SCHEME_TABLE[scheme.kind]
    if entry.needs_pixels and image is None:
        raise EmptyInput(f"Scheme {scheme.label} needs pixel data for '{identifier}'")
    return entry.extract(image, identifier, embeddings, scheme.bins)


def compute_distance(scheme: Scheme, features_a, features_b) -> float:
    """Distance between two vectors using the metric paired with scheme."""
    return SCHEME_TABLE[scheme.kind].distance(features_a, features_b)
