"""
Read-only table of precomputed image embeddings.

The table is built once, typically from a CSV file whose rows are

    filename,v0,v1,...,vN

and then shared by every search in a session. Stored vectors are read-only
numpy arrays so concurrent readers need no locking.
"""

import csv
import logging
from typing import Dict, Iterator, Mapping, Optional

import numpy as np

logger = logging.getLogger(__name__)


class EmbeddingTable:
    """
    Mapping from image identifier to embedding vector.

    Lookups are O(1) dict hits. The table is never modified after
    construction.
    """

    def __init__(self, vectors: Mapping[str, np.ndarray]):
        self._vectors: Dict[str, np.ndarray] = {}
        dim = None

        for identifier, vector in vectors.items():
            array = np.array(vector, dtype=np.float32).ravel()
            if dim is None:
                dim = array.size
            elif array.size != dim:
                raise ValueError(
                    f"Embedding for '{identifier}' has {array.size} values, "
                    f"expected {dim}"
                )
            array.setflags(write=False)
            self._vectors[str(identifier)] = array

        self.dim = dim or 0

    @classmethod
    def from_csv(cls, csv_path: str) -> "EmbeddingTable":
        """
        Load embeddings from a CSV file.

        The first column is the image identifier and the remaining columns
        are float values. A first row whose values do not parse as floats
        is treated as a header and skipped. Blank rows are ignored.

        Args:
            csv_path: Path to the CSV file.

        Returns:
            EmbeddingTable with one entry per data row.

        Raises:
            ValueError: If a data row has non-numeric values or a different
                width from the others.
        """
        vectors = {}

        with open(csv_path, "r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            for line_no, row in enumerate(reader, start=1):
                if not row or not row[0].strip():
                    continue

                identifier = row[0].strip()
                try:
                    values = [float(v) for v in row[1:] if v.strip()]
                except ValueError as exc:
                    if line_no == 1:
                        logger.debug(f"Skipping header row in {csv_path}")
                        continue
                    raise ValueError(
                        f"{csv_path}:{line_no}: non-numeric embedding value"
                    ) from exc

                if identifier in vectors:
                    logger.warning(f"Duplicate embedding for {identifier}, keeping last")
                vectors[identifier] = values

        table = cls(vectors)
        logger.info(f"Loaded {len(table)} embeddings ({table.dim}d) from {csv_path}")
        return table

    def lookup(self, identifier: str) -> Optional[np.ndarray]:
        """Return the embedding for identifier, or None if absent."""
        return self._vectors.get(identifier)

    def __contains__(self, identifier) -> bool:
        return identifier in self._vectors

    def __len__(self) -> int:
        return len(self._vectors)

    def __iter__(self) -> Iterator[str]:
        return iter(self._vectors)

    def identifiers(self) -> list:
        """Identifiers in insertion (file) order."""
        return list(self._vectors)
