from __future__ import annotations

import json
import math
import os
import tempfile
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from .config import ensure_parent_dir, paths
from .errors import StoreCorrupt, StoreNotFound
from .logging import get_logger

logger = get_logger(__name__)

# Field names match the db.json written by earlier releases of the tool.
_ID_KEY = "filePath"
_VECTOR_KEY = "embedding"


@dataclass
class Record:
    identifier: str
    vector: List[float]

    def to_json(self) -> dict:
        return {_ID_KEY: self.identifier, _VECTOR_KEY: list(self.vector)}


def _default_file_mode() -> int:
    # mkstemp creates 0600 files; give the snapshot the mode a plain open() would.
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _is_number(value) -> bool:
    # bool is a subclass of int but never a valid embedding component.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_record(position: int, raw) -> Record:
    if not isinstance(raw, dict):
        raise StoreCorrupt(f"Entry {position} is not an object")
    if _ID_KEY not in raw or _VECTOR_KEY not in raw:
        raise StoreCorrupt(
            f"Entry {position} is missing '{_ID_KEY}' or '{_VECTOR_KEY}'"
        )
    identifier = raw[_ID_KEY]
    vector = raw[_VECTOR_KEY]
    if not isinstance(identifier, str):
        raise StoreCorrupt(f"Entry {position} has a non-string '{_ID_KEY}'")
    if not isinstance(vector, list):
        raise StoreCorrupt(f"Entry {position} ({identifier}) has a non-list '{_VECTOR_KEY}'")
    floats: List[float] = []
    for value in vector:
        try:
            ok = _is_number(value) and math.isfinite(value)
        except (OverflowError, ValueError):
            ok = False
        if not ok:
            shown = repr(value) if len(repr(value)) <= 40 else repr(value)[:37] + "..."
            raise StoreCorrupt(
                f"Entry {position} ({identifier}) has a non-numeric embedding value: {shown}"
            )
        floats.append(float(value))
    return Record(identifier=identifier, vector=floats)


class VectorStore:
    """Ordered (identifier, vector) records persisted as one JSON snapshot.

    The snapshot is only ever replaced as a whole: ``save`` rewrites the
    full file and there is no per-record update, merge or backup.
    """

    def __init__(self, path: str | None = None) -> None:
        self.path = path or paths.db_path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> List[Record]:
        """Load every record from the snapshot.

        Raises StoreNotFound when there is no snapshot and StoreCorrupt when
        its content is not a list of well-formed records of one dimension.
        An empty list is a valid store.
        """
        if not self.exists():
            raise StoreNotFound(f"Database file not found: {self.path}")
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and oversized integer literals.
            raise StoreCorrupt(f"Could not read database {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise StoreCorrupt(f"Database {self.path} must contain a JSON array of records")

        records = [_parse_record(i, entry) for i, entry in enumerate(raw)]
        dims = {len(r.vector) for r in records}
        if len(dims) > 1:
            raise StoreCorrupt(
                f"Database {self.path} mixes embedding dimensions {sorted(dims)}; re-index it"
            )
        logger.debug("Loaded %d records from %s", len(records), self.path)
        return records

    def save(self, records: Iterable[Record]) -> None:
        """Replace the snapshot with ``records`` in full."""
        payload: Sequence[dict] = [r.to_json() for r in records]
        ensure_parent_dir(self.path)
        directory = os.path.dirname(os.path.abspath(self.path))
        # Write next to the target and swap it in so a crash never leaves half a file.
        fd, temp_path = tempfile.mkstemp(prefix=".db_", suffix=".json.tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, allow_nan=False)
            os.chmod(temp_path, _default_file_mode())
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.info("Saved %d records to %s", len(payload), self.path)
