"""Deterministic value generation shared by every engine.

A ``SeededGenerator`` turns an arbitrary string seed into a reproducible
stream of floats in ``[0, 1)``. The algorithm is part of the public contract:
for a fixed seed and call sequence the stream is bit-for-bit identical across
processes and implementations, so the constants below must never change
without bumping ``ALGORITHM_VERSION``.

Seed hashing walks the seed's UTF-16 code units (the units JavaScript's
``charCodeAt`` exposes) computing ``h = h * 31 + unit`` wrapped to a signed
32-bit integer. Each draw advances a linear congruential step and divides by
the modulus.
"""

from __future__ import annotations

import secrets
from datetime import date, datetime
from typing import Any, List, MutableSequence, Sequence, TypeVar

ALGORITHM_VERSION = 1

LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280

SEED_SEPARATOR = "-"

T = TypeVar("T")


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_code_units(text: str) -> List[int]:
    raw = text.encode("utf-16-le", "surrogatepass")
    return [int.from_bytes(raw[i : i + 2], "little") for i in range(0, len(raw), 2)]


def hash_seed(seed: str) -> int:
    """Hash ``seed`` into a signed 32-bit integer; the empty seed hashes to 0."""

    h = 0
    for unit in _utf16_code_units(seed):
        h = _to_int32(h * 31 + unit)
    return h


def normalize_seed_part(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, bool):
        return "true" if part else "false"
    if isinstance(part, (datetime, date)):
        return part.isoformat()
    return str(part)


def derive_seed(*parts: Any) -> str:
    """Build a seed string from stable input fields, in the order given."""

    return SEED_SEPARATOR.join(normalize_seed_part(p) for p in parts)


class _DrawHelpers:
    """Derived draws built only on top of ``next()``."""

    def next(self) -> float:  # pragma: no cover - abstract
        raise NotImplementedError

    def next_int(self, low: int, high: int) -> int:
        """Return an integer in ``[low, high]`` using one draw."""

        if high < low:
            raise ValueError("high must be >= low")
        return low + int(self.next() * (high - low + 1))

    def next_bool(self, probability: float = 0.5) -> bool:
        """Return True with ``probability`` using one draw."""

        return self.next() < probability

    def choice(self, items: Sequence[T]) -> T:
        if not items:
            raise ValueError("cannot choose from an empty sequence")
        return items[int(self.next() * len(items))]

    def shuffle(self, items: Sequence[T]) -> List[T]:
        """Fisher-Yates shuffle from the top index down; returns a new list."""

        shuffled: MutableSequence[T] = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = int(self.next() * (i + 1))
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return list(shuffled)

    def sample(self, items: Sequence[T], k: int) -> List[T]:
        """Return ``k`` distinct items: the head of a seeded shuffle."""

        if k < 0 or k > len(items):
            raise ValueError("sample size out of range")
        return self.shuffle(items)[:k]


class SeededGenerator(_DrawHelpers):
    """Reproducible pseudo-random source derived from a string seed.

    Instances own their state exclusively; engines construct a fresh
    generator per run instead of sharing one.
    """

    def __init__(self, seed: str):
        self._seed = seed
        self._state = hash_seed(seed)
        self._draws = 0

    @property
    def seed(self) -> str:
        return self._seed

    @property
    def state(self) -> int:
        return self._state

    @property
    def draws(self) -> int:
        return self._draws

    def next(self) -> float:
        # Floored modulo keeps the state in [0, M) for negative seed hashes.
        self._state = (self._state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        self._draws += 1
        return self._state / LCG_MODULUS

    def reset(self) -> None:
        """Rewind to the state derived from the seed."""

        self._state = hash_seed(self._seed)
        self._draws = 0

    def __repr__(self) -> str:
        return f"SeededGenerator(seed={self._seed!r}, draws={self._draws})"


class EntropyGenerator(_DrawHelpers):
    """Explicitly non-reproducible generator for interactive use.

    Exposes the same draw API as ``SeededGenerator`` but is backed by the
    operating system's entropy source. It is never substituted silently for
    a seeded generator.
    """

    def __init__(self) -> None:
        self._random = secrets.SystemRandom()

    def next(self) -> float:
        return self._random.random()

    def __repr__(self) -> str:
        return "EntropyGenerator()"
