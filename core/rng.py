"""Random source shared by trial construction and bonus resolution.

Anything with a ``random() -> float in [0, 1)`` method works; a numpy
``Generator`` is the default so sessions can be seeded for replay.
"""

from __future__ import annotations

import math
from typing import List, Optional, Protocol, Sequence, TypeVar

import numpy as np

T = TypeVar("T")


class RandomSource(Protocol):
    def random(self) -> float:
        ...


def default_random_source(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def pick_index(n: int, rng: RandomSource) -> int:
    if n <= 0:
        raise ValueError("cannot pick from an empty sequence")
    return min(int(math.floor(float(rng.random()) * n)), n - 1)


def coin_flip(rng: RandomSource) -> bool:
    return float(rng.random()) < 0.5


def fisher_yates(items: Sequence[T], rng: RandomSource) -> List[T]:
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = pick_index(i + 1, rng)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled
