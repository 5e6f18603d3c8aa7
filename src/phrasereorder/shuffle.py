"""Deterministic seeded shuffling."""

from __future__ import annotations

import math
import random
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

RandomGenerator = Callable[[], float]

MASK_32 = 0xFFFFFFFF
FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
ZERO_SEED_FALLBACK = 0x1A2B3C4D
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _imul(left: int, right: int) -> int:
    """32-bit wrapping multiply."""
    return ((left & MASK_32) * (right & MASK_32)) & MASK_32


def fnv1a_32(text: str) -> int:
    """FNV-1a over UTF-16 code units, so non-BMP characters hash as surrogate pairs."""
    data = text.encode("utf-16-le", "surrogatepass")
    value = FNV_OFFSET_BASIS
    for offset in range(0, len(data), 2):
        value ^= data[offset] | (data[offset + 1] << 8)
        value = _imul(value, FNV_PRIME)
    return value


def hash_seed(seed: str | int | float) -> int:
    """Reduce a seed to a non-zero 32-bit generator state."""
    if isinstance(seed, int | float) and not isinstance(seed, bool) and math.isfinite(seed):
        value = math.floor(seed) & MASK_32
    else:
        value = fnv1a_32(str(seed))
    return value or ZERO_SEED_FALLBACK


def _mulberry32(state: int) -> RandomGenerator:
    t = state & MASK_32

    def generate() -> float:
        nonlocal t
        t = (t + 0x6D2B79F5) & MASK_32
        result = _imul(t ^ (t >> 15), t | 1)
        result ^= (result + _imul(result ^ (result >> 7), result | 61)) & MASK_32
        return ((result ^ (result >> 14)) & MASK_32) / 4294967296

    return generate


def create_seeded_generator(seed: str | int | float) -> RandomGenerator:
    """Return a reproducible uniform [0, 1) generator for a seed."""
    return _mulberry32(hash_seed(seed))


def shuffle(items: Sequence[T], seed: str | int | float) -> list[T]:
    """Return a seeded Fisher-Yates permutation of `items` without mutating it."""
    result = list(items)
    if len(result) < 2:
        return result

    generate = create_seeded_generator(seed)
    for index in range(len(result) - 1, 0, -1):
        swap_index = math.floor(generate() * (index + 1))
        result[index], result[swap_index] = result[swap_index], result[index]
    return result


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_seed() -> str:
    """Return a fresh seed combining wall-clock time and random bits."""
    millis = int(time.time() * 1000)
    return f"{_to_base36(millis)}-{_to_base36(random.getrandbits(52))}"
