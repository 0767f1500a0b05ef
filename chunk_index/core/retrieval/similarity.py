"""
Cosine similarity helpers.

Dependencies: numpy
System role: Vector math for retrieval
"""

from typing import Sequence

import numpy as np


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity of one query against many vectors.

    Args:
        query: Query vector of dimension d
        vectors: n vectors of dimension d

    Returns:
        np.ndarray: n similarities; rows with a zero norm score 0.0
    """
    if len(vectors) == 0:
        return np.zeros(0)
    matrix = np.asarray(vectors, dtype=float)
    q = np.asarray(query, dtype=float)
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * q_norm
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(denom > 0, dots / denom, 0.0)
    return np.clip(scores, -1.0, 1.0)
