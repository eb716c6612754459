from __future__ import annotations

import random


def compute_backoff(
    attempt: int, base: float = 2.0, jitter: float = 0.0, unit: float = 1.0
) -> float:
    """Compute exponential backoff ``base ** attempt`` scaled to ``unit`` seconds."""
    delay = base ** attempt
    if jitter:
        delay += random.uniform(0, jitter)
    return delay * unit
