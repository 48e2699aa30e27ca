"""Cosine similarity between embedding vectors (numpy)."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 for missing, mismatched, or zero-magnitude vectors."""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))


def batch_cosine_similarity(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
) -> list[float]:
    """Score every candidate against ``query`` in one matrix product.

    Candidates whose length differs from the query score 0.0, as do
    zero-magnitude vectors on either side.
    """
    scores = [0.0] * len(candidates)
    dim = len(query)
    if dim == 0 or not candidates:
        return scores

    q = np.asarray(query, dtype=np.float64)
    q_norm = float(np.linalg.norm(q))
    if q_norm == 0.0:
        return scores

    positions = [i for i, vec in enumerate(candidates) if len(vec) == dim]
    if not positions:
        return scores

    matrix = np.asarray([candidates[i] for i in positions], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    safe_norms = np.where(norms == 0.0, 1.0, norms)
    sims = (matrix @ q) / (safe_norms * q_norm)
    sims = np.where(norms == 0.0, 0.0, sims)
    for pos, value in zip(positions, sims):
        scores[pos] = float(value)
    return scores
