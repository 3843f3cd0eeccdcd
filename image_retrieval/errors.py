"""
Exception types raised by feature extraction and search.

Extraction failures on a candidate are non-fatal: the engine logs them and
leaves the candidate out of the ranking. The same failure on the query is
re-raised as QueryExtractionError since no ranking is possible without it.
Distance metrics never raise; they fall back to their maximum distance.
"""


class RetrievalError(Exception):
    """Base class for all image retrieval errors."""


class FeatureExtractionError(RetrievalError, ValueError):
    """A feature vector could not be produced for an image."""


class InputTooSmall(FeatureExtractionError):
    """Image is below the minimum size a scheme needs."""


class EmptyInput(FeatureExtractionError):
    """Image has no pixels (or no pixel data was supplied)."""


class LookupMiss(FeatureExtractionError, LookupError):
    """Identifier is not present in the embedding table."""

    def __init__(self, identifier: str):
        super().__init__(f"No embedding for '{identifier}'")
        self.identifier = identifier


class QueryExtractionError(RetrievalError):
    """Features could not be extracted from the query image."""


class SchemeMismatch(RetrievalError):
    """A stored feature index was built with a different scheme."""
