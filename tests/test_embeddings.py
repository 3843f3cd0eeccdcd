"""Tests for the embedding table."""

import numpy as np
import pytest

from image_retrieval.embeddings import EmbeddingTable


class TestEmbeddingTable:
    """Tests for in-memory tables."""

    def test_lookup(self, embedding_table):
        assert embedding_table.lookup("a.png").shape == (512,)
        assert embedding_table.lookup("missing.png") is None
        assert "a.png" in embedding_table
        assert len(embedding_table) == 3
        assert embedding_table.dim == 512

    def test_vectors_are_read_only(self, embedding_table):
        with pytest.raises(ValueError):
            embedding_table.lookup("a.png")[0] = 0.0

    def test_source_not_aliased(self):
        source = np.ones(4, dtype=np.float32)
        table = EmbeddingTable({"x": source})
        source[0] = 9.0
        assert table.lookup("x")[0] == 1.0

    def test_inconsistent_widths(self):
        with pytest.raises(ValueError, match="expected 3"):
            EmbeddingTable({"a": [1, 2, 3], "b": [1, 2]})

    def test_identifiers_in_order(self):
        table = EmbeddingTable({"z": [1.0], "a": [2.0]})
        assert table.identifiers() == ["z", "a"]
        assert list(table) == ["z", "a"]


class TestFromCsv:
    """Tests for loading tables from CSV files."""

    def test_load(self, embedding_csv):
        table = EmbeddingTable.from_csv(str(embedding_csv))
        assert len(table) == 3
        assert table.dim == 8
        assert table.lookup("mid.png").dtype == np.float32

    def test_header_row_skipped(self, tmp_path):
        path = tmp_path / "with_header.csv"
        path.write_text("filename,f0,f1\npic.0001.jpg,0.5,1.5\n")
        table = EmbeddingTable.from_csv(str(path))
        assert table.identifiers() == ["pic.0001.jpg"]
        assert list(table.lookup("pic.0001.jpg")) == [0.5, 1.5]

    def test_blank_lines_ignored(self, tmp_path):
        path = tmp_path / "blank.csv"
        path.write_text("a.jpg,1,2\n\nb.jpg,3,4\n")
        assert len(EmbeddingTable.from_csv(str(path))) == 2

    def test_bad_value_after_first_row(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("a.jpg,1,2\nb.jpg,x,4\n")
        with pytest.raises(ValueError, match="non-numeric"):
            EmbeddingTable.from_csv(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            EmbeddingTable.from_csv(str(tmp_path / "nope.csv"))
