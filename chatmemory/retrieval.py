import logging
from typing import List, Sequence

import numpy as np

from .errors import MemoryConfigurationError
from .models import StoredMessage, SearchResult

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors: (A . B) / (|A| * |B|).

    Returns 0.0 if either vector has zero norm.

    Raises:
        MemoryConfigurationError: If the vectors differ in length.
    """
    if len(a) != len(b):
        raise MemoryConfigurationError(
            f"Vectors must have the same length, got {len(a)} and {len(b)}."
        )
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude = np.linalg.norm(va) * np.linalg.norm(vb)
    if magnitude == 0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


def score_vectors(query_vector: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity of a query against many vectors at once.

    Rows with zero norm, or a zero query, score 0.0.

    Raises:
        MemoryConfigurationError: If any vector's dimension differs from the query's.
    """
    if not vectors:
        return np.zeros(0, dtype=np.float64)

    q = np.asarray(query_vector, dtype=np.float64)  # (D,)
    for i, vec in enumerate(vectors):
        if len(vec) != q.shape[0]:
            raise MemoryConfigurationError(
                f"Stored embedding at index {i} has dimension {len(vec)}, query has {q.shape[0]}."
            )
    matrix = np.asarray(vectors, dtype=np.float64)  # (N, D)

    norm_q = np.linalg.norm(q)
    if norm_q == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ q
    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / (norms[nonzero] * norm_q)
    return scores


def rank_by_similarity(
    stored: Sequence[StoredMessage],
    query_vector: Sequence[float],
    min_score: float,
    top_k: int,
) -> List[SearchResult]:
    """
    Rank stored messages by similarity to a query vector.

    Messages without an embedding are skipped. Results below `min_score` are
    dropped, the rest are sorted by descending score; equal scores put the
    newer message first. At most `top_k` results are returned.
    """
    if top_k <= 0:
        return []

    candidates = [s for s in stored if s.embedding]
    if not candidates:
        return []

    scores = score_vectors(query_vector, [s.embedding for s in candidates])
    results = [
        SearchResult(message=s, score=float(score))
        for s, score in zip(candidates, scores)
        if score >= min_score
    ]
    results.sort(key=lambda r: (-r.score, -r.message.timestamp))
    logger.debug(f"Ranked {len(candidates)} embeddings, {len(results)} at or above {min_score}")
    return results[:top_k]
