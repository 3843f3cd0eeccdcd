"""Shared test fixtures for image retrieval tests."""

import os

import numpy as np
import cv2
import pytest

from image_retrieval.embeddings import EmbeddingTable


def solid_image(bgr, rows=40, cols=40):
    """Uniform BGR image."""
    img = np.zeros((rows, cols, 3), dtype=np.uint8)
    img[:, :] = bgr
    return img


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background (BGR)."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [30, 30, 200]  # Red square
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background (BGR)."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (200, 30, 30), -1)
    return img


@pytest.fixture
def textured_image():
    """Generate a 200x200 checkerboard with strong edges."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 200
    for y in range(0, 200, 20):
        for x in range(0, 200, 20):
            if (x // 20 + y // 20) % 2 == 0:
                img[y:y+20, x:x+20] = [50, 50, 50]
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def skin_tone_image():
    """100x100 image in a skin-like tone (R=220, G=160, B=120)."""
    return solid_image([120, 160, 220], rows=100, cols=100)


def make_embedding(seed, dim=512):
    rng = np.random.RandomState(seed)
    return rng.uniform(-1.0, 1.0, dim).astype(np.float32)


@pytest.fixture
def embedding_table():
    """Embeddings for a.png, b.png, c.png; b is a scaled copy of a."""
    a = make_embedding(1)
    return EmbeddingTable({
        "a.png": a,
        "b.png": a * 2.0,
        "c.png": make_embedding(2),
    })


@pytest.fixture
def image_dir(tmp_path):
    """
    Directory with three solid PNG images plus non-image clutter.

        dark.png    gray 10
        mid.png     gray 50
        light.png   gray 200
    """
    directory = tmp_path / "images"
    directory.mkdir()
    for name, value in [("dark.png", 10), ("mid.png", 50), ("light.png", 200)]:
        cv2.imwrite(os.path.join(str(directory), name), solid_image([value] * 3))
    (directory / "notes.txt").write_text("not an image")
    return directory


@pytest.fixture
def embedding_csv(tmp_path):
    """CSV embedding table matching image_dir's file names."""
    path = tmp_path / "embeddings.csv"
    rows = []
    for name, seed in [("dark.png", 1), ("mid.png", 2), ("light.png", 3)]:
        values = ",".join(f"{v:.6f}" for v in make_embedding(seed, dim=8) + 2.0)
        rows.append(f"{name},{values}")
    path.write_text("\n".join(rows) + "\n")
    return path
