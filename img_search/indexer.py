from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from tqdm import tqdm

from .config import SearchConfig, search as search_cfg
from .embedding import EmbeddingProvider
from .errors import DirectoryUnreadable
from .logging import get_logger
from .store import Record, VectorStore

logger = get_logger(__name__)


@dataclass
class IndexReport:
    root_dir: str
    discovered: int = 0
    attempted: int = 0
    indexed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    unreadable_dirs: List[DirectoryUnreadable] = field(default_factory=list)
    stopped_early: bool = False
    written: bool = False


def _has_allowed_extension(name: str, extensions: Iterable[str]) -> bool:
    ext = os.path.splitext(name)[1].lower()
    return ext in {e.lower() for e in extensions}


def _vector_problem(vector: List[float], reference: Optional[List[float]]) -> Optional[str]:
    # The store refuses to load non-finite values or mixed dimensions, so keep them out.
    if not all(math.isfinite(v) for v in vector):
        return "embedding contains non-finite values"
    if reference is not None and len(vector) != len(reference):
        return f"embedding has dimension {len(vector)}, expected {len(reference)}"
    return None


def find_media_files(
    root_dir: str,
    extensions: Iterable[str],
) -> Tuple[List[str], List[DirectoryUnreadable]]:
    """Recursively collect media files under root_dir, depth-first in name order.

    Directories that cannot be listed are skipped with a warning and returned
    alongside the files; the walk carries on with their siblings.
    """
    extensions = tuple(extensions)
    files: List[str] = []
    unreadable: List[DirectoryUnreadable] = []

    def _walk(directory: str) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            reason = e.strerror or str(e)
            logger.warning("Could not read directory %s: %s", directory, reason)
            unreadable.append(DirectoryUnreadable(path=directory, reason=reason))
            return
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                _walk(entry.path)
            elif _has_allowed_extension(entry.name, extensions):
                files.append(entry.path)

    _walk(root_dir)
    return files, unreadable


def index_directory(
    root_dir: str,
    provider: EmbeddingProvider,
    store: VectorStore,
    max_items: Optional[int] = None,
    cfg: SearchConfig = search_cfg,
) -> IndexReport:
    """Embed every image under root_dir and replace the store's snapshot with the result.

    Files the provider fails on are skipped with a warning. With max_items set,
    at most that many files are attempted. When no images are found nothing is
    written and any existing snapshot is left as it was.
    """
    if max_items is not None and max_items < 1:
        raise ValueError(f"max_items must be a positive integer, got {max_items}")

    report = IndexReport(root_dir=root_dir)
    if max_items is not None:
        logger.info("Processing limit set to %d images.", max_items)

    image_files, report.unreadable_dirs = find_media_files(root_dir, cfg.allowed_extensions)
    report.discovered = len(image_files)
    if not image_files:
        logger.info('No images found in "%s" or its subdirectories.', root_dir)
        return report
    logger.info("Found %d total images to process.", len(image_files))

    to_process = image_files
    if max_items is not None and max_items < len(image_files):
        to_process = image_files[:max_items]
        report.stopped_early = True

    records: List[Record] = []
    for file_path in tqdm(to_process, desc="Embedding images", unit="img"):
        report.attempted += 1
        try:
            vector = [float(v) for v in provider.embed_image(file_path)]
        except Exception as e:
            # One bad file must not cost the whole run.
            reason = str(e) or type(e).__name__
            logger.warning("Skipping file %s due to an error: %s", file_path, reason)
            report.failures.append((file_path, reason))
            continue
        reason = _vector_problem(vector, records[0].vector if records else None)
        if reason is not None:
            logger.warning("Skipping file %s due to an error: %s", file_path, reason)
            report.failures.append((file_path, reason))
            continue
        records.append(Record(identifier=file_path, vector=vector))

    if report.stopped_early:
        logger.info("Reached processing limit of %d. Stopping.", max_items)

    store.save(records)
    report.indexed = len(records)
    report.written = True
    return report
