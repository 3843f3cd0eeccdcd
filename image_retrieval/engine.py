"""
Image retrieval engine.

Runs an exhaustive linear scan over a candidate set:
    1. Extract the query's feature vector once
    2. Extract each candidate's vector under the same scheme
    3. Compare with the scheme's paired distance metric
    4. Stable-sort ascending, optionally drop the self-match, keep top k

Candidate extraction failures are logged and skipped. A query that cannot
be extracted aborts the search with QueryExtractionError.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np

from .embeddings import EmbeddingTable
from .errors import FeatureExtractionError, QueryExtractionError
from .schemes import Scheme, extract_features, compute_distance

logger = logging.getLogger(__name__)

# A leading result closer than this is taken to be the query image itself.
DEFAULT_SELF_MATCH_EPSILON = float(os.environ.get("SELF_MATCH_EPSILON", "1e-4"))


class CandidateRecord(NamedTuple):
    identifier: str
    features: np.ndarray


class Match(NamedTuple):
    identifier: str
    distance: float


@dataclass
class SearchResult:
    """Ranked matches plus bookkeeping for one search."""

    matches: List[Match] = field(default_factory=list)
    found: int = 0
    skipped: List[str] = field(default_factory=list)
    self_match: Optional[str] = None

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self):
        return iter(self.matches)

    def __getitem__(self, index):
        return self.matches[index]


class SearchSession:
    """
    State shared across searches, owned by the caller.

    Holds the embedding table (read-only once the session exists) and an
    optional feature cache keyed by (identifier, scheme key). The cache
    assumes an identifier always names the same image within a session.
    """

    def __init__(self, embeddings: EmbeddingTable = None, cache_features: bool = False):
        self.embeddings = embeddings
        self.cache_features = cache_features
        self._cache: Dict[Tuple[str, tuple], np.ndarray] = {}

    def cached(self, identifier: str, scheme: Scheme) -> Optional[np.ndarray]:
        if not self.cache_features or identifier is None:
            return None
        return self._cache.get((identifier, scheme.key))

    def store(self, identifier: str, scheme: Scheme, features: np.ndarray):
        if self.cache_features and identifier is not None:
            self._cache[(identifier, scheme.key)] = features

    def clear_cache(self):
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)


def _normalize_candidate(candidate) -> Tuple[str, Optional[np.ndarray]]:
    """Accept (identifier, image) pairs or bare identifiers."""
    if isinstance(candidate, str):
        return candidate, None
    identifier, image = candidate
    return identifier, image


class RetrievalEngine:
    """
    Linear-scan retrieval over in-memory images or precomputed features.
    """

    def __init__(self, session: SearchSession = None,
                 self_match_epsilon: float = DEFAULT_SELF_MATCH_EPSILON):
        """
        Args:
            session: Search session providing embeddings and caching.
                A fresh session without embeddings is used if omitted.
            self_match_epsilon: Distance below which a leading result is
                treated as the query itself when suppression is requested.
        """
        self.session = session or SearchSession()
        self.self_match_epsilon = self_match_epsilon

    def extract(self, scheme: Scheme,
                image: np.ndarray = None,
                identifier: str = None) -> np.ndarray:
        """
        Extract features for one image, going through the session cache.

        Raises:
            FeatureExtractionError: If the scheme cannot produce a vector.
        """
        features = self.session.cached(identifier, scheme)
        if features is not None:
            return features

        features = extract_features(scheme, image=image, identifier=identifier,
                                    embeddings=self.session.embeddings)
        self.session.store(identifier, scheme, features)
        return features

    def extract_query(self, scheme: Scheme,
                      image: np.ndarray = None,
                      identifier: str = None) -> np.ndarray:
        """
        Extract query features; failures are fatal to the search.

        Raises:
            QueryExtractionError: Wrapping the underlying extraction error.
        """
        try:
            return self.extract(scheme, image=image, identifier=identifier)
        except FeatureExtractionError as e:
            logger.error(f"Query feature extraction failed ({scheme.label}): {e}")
            raise QueryExtractionError(
                f"Failed to extract {scheme.label} features from query"
                f"{' ' + identifier if identifier else ''}: {e}"
            ) from e

    def search(self,
               scheme: Scheme,
               candidates: Iterable,
               k: Optional[int],
               query_image: np.ndarray = None,
               query_id: str = None,
               suppress_self_match: bool = False) -> SearchResult:
        """
        Rank candidates by similarity to a query.

        Args:
            scheme: Feature scheme; its paired metric is used for scoring.
            candidates: Ordered (identifier, image) pairs, or identifiers
                alone for embedding-only schemes.
            k: Maximum number of matches to return (None for all).
            query_image: Query pixels (BGR uint8).
            query_id: Query identifier, used for embedding lookups.
            suppress_self_match: Drop a leading match whose distance is
                below self_match_epsilon.

        Returns:
            SearchResult with matches sorted by ascending distance. Ties
            keep candidate order.

        Raises:
            QueryExtractionError: If the query features cannot be extracted.
        """
        query_features = self.extract_query(scheme, image=query_image, identifier=query_id)

        records = []
        skipped = []

        for candidate in candidates:
            identifier, image = _normalize_candidate(candidate)
            try:
                features = self.extract(scheme, image=image, identifier=identifier)
            except FeatureExtractionError as e:
                logger.warning(f"Skipping {identifier}: {e}")
                skipped.append(identifier)
                continue
            records.append(CandidateRecord(identifier, features))

        result = self.rank(scheme, query_features, records, k,
                           suppress_self_match=suppress_self_match)
        result.skipped = skipped

        logger.info(
            f"Search complete ({scheme.label}): {len(records)} candidates, "
            f"{len(skipped)} skipped → {len(result.matches)} results"
        )

        return result

    def rank(self,
             scheme: Scheme,
             query_features: np.ndarray,
             records: Iterable[CandidateRecord],
             k: Optional[int],
             suppress_self_match: bool = False) -> SearchResult:
        """
        Rank precomputed candidate features against query features.

        Args:
            scheme: Scheme the features were extracted with.
            query_features: Query feature vector.
            records: Ordered CandidateRecords.
            k: Maximum number of matches to return (None for all).
            suppress_self_match: Drop a leading near-zero match.

        Returns:
            SearchResult; found counts ranked candidates after suppression.
        """
        scored = [
            Match(record.identifier,
                  compute_distance(scheme, query_features, record.features))
            for record in records
        ]

        # sorted() is stable, so equal distances keep candidate order
        scored = sorted(scored, key=lambda m: m.distance)

        self_match = None
        if suppress_self_match and scored and scored[0].distance < self.self_match_epsilon:
            self_match = scored[0].identifier
            logger.debug(f"Suppressing self-match {self_match} "
                         f"(distance {scored[0].distance:.6f})")
            scored = scored[1:]

        if k is None:
            matches = scored
        else:
            matches = scored[:max(int(k), 0)]

        return SearchResult(matches=matches, found=len(scored), self_match=self_match)
