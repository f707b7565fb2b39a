"""
Cosine similarity between message embeddings.
"""

import math
from typing import Sequence


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two embeddings.

    Returns 0.0 when the vectors differ in length, either one is empty,
    either has zero norm, or a component is not finite.

    Args:
        a: First embedding
        b: Second embedding

    Returns:
        Similarity in [-1.0, 1.0]
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    if not all(math.isfinite(v) for v in a) or not all(math.isfinite(v) for v in b):
        return 0.0

    # hypot scales internally: no overflow or underflow at extreme magnitudes
    norm_a = math.hypot(*a)
    norm_b = math.hypot(*b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    if list(a) == list(b):
        return 1.0

    similarity = math.fsum((x / norm_a) * (y / norm_b) for x, y in zip(a, b))
    return max(-1.0, min(1.0, similarity))
