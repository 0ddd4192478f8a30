from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .config import SearchConfig, search as search_cfg
from .embedding import EmbeddingProvider
from .errors import EmptyCorpus, StoreCorrupt
from .logging import get_logger
from .store import Record, VectorStore

logger = get_logger(__name__)


@dataclass
class Match:
    identifier: str
    score: float


@dataclass
class RankResult:
    threshold: float
    matches: List[Match] = field(default_factory=list)
    # Best candidate overall, only set when nothing reached the threshold. Never a match.
    closest: Optional[Match] = None

    @property
    def has_matches(self) -> bool:
        return bool(self.matches)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between a and b; 0.0 if either has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vectors must have the same dimension ({va.shape} != {vb.shape})")
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def _score_all(query_vector: Sequence[float], records: Sequence[Record]) -> np.ndarray:
    q = np.asarray(query_vector, dtype=np.float64)
    xb = np.asarray([r.vector for r in records], dtype=np.float64)
    if xb.shape[1] != q.shape[0]:
        raise StoreCorrupt(
            f"Stored embeddings have dimension {xb.shape[1]} but the query has {q.shape[0]}; "
            "the database was built with a different model, re-index it"
        )
    denom = np.linalg.norm(xb, axis=1) * np.linalg.norm(q)
    dots = xb @ q
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)


def rank_records(
    query_vector: Sequence[float],
    records: Sequence[Record],
    top_n: int,
    threshold: float,
) -> RankResult:
    """Rank records by cosine similarity to query_vector.

    Scores are sorted descending with ties kept in store order. Matches are
    the first top_n records scoring at least threshold; when none qualifies,
    the best overall record is reported as ``closest`` instead.
    """
    result = RankResult(threshold=threshold)
    if not records:
        return result

    scores = _score_all(query_vector, records)
    order = np.argsort(-scores, kind="stable")

    passing = [int(i) for i in order if scores[i] >= threshold]
    if passing:
        result.matches = [
            Match(identifier=records[i].identifier, score=float(scores[i]))
            for i in passing[: max(top_n, 0)]
        ]
    else:
        best = int(order[0])
        result.closest = Match(identifier=records[best].identifier, score=float(scores[best]))
    return result


def search_by_text(
    query: str,
    provider: EmbeddingProvider,
    store: VectorStore,
    top_n: Optional[int] = None,
    threshold: Optional[float] = None,
    cfg: SearchConfig = search_cfg,
) -> RankResult:
    """Search the indexed images for the ones that best match a text query."""
    records = store.load()
    if not records:
        raise EmptyCorpus(f"The database at {store.path} is empty.")

    top_n = cfg.default_top_n if top_n is None else top_n
    threshold = cfg.similarity_threshold if threshold is None else threshold

    query_vector = provider.embed_text(query)
    result = rank_records(query_vector, records, top_n=top_n, threshold=threshold)
    logger.debug(
        "Query %r: %d matches over %d records (threshold=%.2f)",
        query,
        len(result.matches),
        len(records),
        threshold,
    )
    return result
