"""Cosine similarity between embedding vectors."""

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Calculate cosine similarity between two vectors.

    Vectors of different dimension, and zero-magnitude vectors, give 0.0:
    they are treated as no evidence of similarity rather than an error.

    Returns:
        dot(a, b) / (|a| * |b|), in [-1, 1]
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    vec1 = np.asarray(a, dtype=np.float64)
    vec2 = np.asarray(b, dtype=np.float64)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))
