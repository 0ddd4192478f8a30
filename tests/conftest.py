"""
Pytest fixtures for img_search tests.

Provides a deterministic in-memory embedding provider so no model is downloaded.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from img_search.errors import ProviderError
from img_search.store import VectorStore


class FakeProvider:
    """Embedding provider keyed by file name (images) and exact text (queries)."""

    def __init__(self, image_vectors=None, text_vectors=None, fail_on=(), default=(1.0, 0.0, 0.0)):
        self.image_vectors = dict(image_vectors or {})
        self.text_vectors = dict(text_vectors or {})
        self.fail_on = set(fail_on)
        self.default = list(default)
        self.image_calls: list[str] = []
        self.text_calls: list[str] = []
        self.loaded = False

    def load(self) -> None:
        self.loaded = True

    def embed_image(self, path: str) -> list[float]:
        self.image_calls.append(path)
        name = os.path.basename(path)
        if name in self.fail_on:
            raise ProviderError(f"cannot decode {name}")
        return list(self.image_vectors.get(name, self.default))

    def embed_text(self, text: str) -> list[float]:
        self.text_calls.append(text)
        if text not in self.text_vectors:
            raise ProviderError(f"no embedding for {text!r}")
        return list(self.text_vectors[text])


@pytest.fixture
def fake_provider_factory():
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def store(tmp_path: Path) -> VectorStore:
    """Store backed by a db.json inside the test's temp directory."""
    return VectorStore(str(tmp_path / "db" / "db.json"))


@pytest.fixture
def image_tree(tmp_path: Path) -> Path:
    """Directory tree with images, mixed-case extensions, non-images and nesting."""
    root = tmp_path / "photos"
    (root / "nested" / "deeper").mkdir(parents=True)
    (root / "empty").mkdir()
    for rel in [
        "a.png",
        "b.JPG",
        "c.jpeg",
        "notes.txt",
        "nested/d.webp",
        "nested/e.gif",
        "nested/deeper/f.PNG",
        "z.jpg",
    ]:
        (root / rel).write_bytes(b"\x00")
    return root
