from __future__ import annotations

import math
import secrets
from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296
MAX_SEED = 2147483647


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


class Mulberry32:
    """Mulberry32 generator. One instance belongs to one generation call."""

    def __init__(self, seed: int):
        self.seed = seed
        self.state = seed & _MASK32

    def next(self) -> float:
        """Float in [0, 1)."""
        self.state = (self.state + _INCREMENT) & _MASK32
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32

    def next_int(self, low: int, high: int) -> int:
        """Integer in [low, high], both inclusive."""
        return math.floor(self.next() * (high - low + 1)) + low

    def pick(self, items: Sequence[T]) -> T:
        return items[self.next_int(0, len(items) - 1)]


def random_seed() -> int:
    return secrets.randbelow(MAX_SEED)
