"""Uniform sampling helpers."""

from __future__ import annotations

import random
from typing import List, Optional, Sequence, TypeVar

T = TypeVar("T")


def sample_without_replacement(
    items: Sequence[T], k: int, rng: Optional[random.Random] = None
) -> List[T]:
    """Draw ``k`` items uniformly without replacement (partial Fisher-Yates).

    Only the first ``k`` positions of a copy are shuffled, so the cost is
    O(len(items)) for the copy and O(k) for the draw.
    """
    rng = rng or random.Random()
    pool = list(items)
    k = max(0, min(k, len(pool)))
    for i in range(k):
        j = rng.randrange(i, len(pool))
        pool[i], pool[j] = pool[j], pool[i]
    return pool[:k]
