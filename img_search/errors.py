from __future__ import annotations

from dataclasses import dataclass


class ImageSearchError(RuntimeError):
    """Base class for errors raised by img_search."""


class StoreNotFound(ImageSearchError, FileNotFoundError):
    """Raised when no snapshot exists yet; run the index command first."""


class StoreCorrupt(ImageSearchError, ValueError):
    """Raised when a snapshot exists but cannot be parsed into records."""


class EmptyCorpus(ImageSearchError):
    """Raised when a snapshot loads fine but holds zero records."""


class ProviderError(ImageSearchError):
    """Raised when the embedding provider fails for an image or a query."""


@dataclass(frozen=True)
class DirectoryUnreadable:
    """A directory skipped during traversal. Recorded, never raised."""

    path: str
    reason: str
