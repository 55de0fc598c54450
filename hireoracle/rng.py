"""Seeded uniform random stream.

A string seed is hashed into a numpy PCG64 generator, so the same seed gives
the same sequence of draws on every machine and in every process. Forecasts
that must be compared against each other (baseline vs what-if) are run on
streams built from the same seed.
"""

import hashlib
import secrets

import numpy as np

_BLOCK_SIZE = 1024


def seed_to_int(seed: str) -> int:
    """Stable 128-bit integer for a string seed."""
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return int.from_bytes(digest[:16], "big")


def new_seed() -> str:
    """Random seed string for callers that did not supply one."""
    return secrets.token_hex(4)


class RandomStream:
    """Infinite, reproducible sequence of uniform [0, 1) variates."""

    def __init__(self, seed: str):
        self.seed = seed
        self._generator = np.random.default_rng(seed_to_int(seed))
        self._block = np.empty(0)
        self._pos = 0

    def random(self) -> float:
        if self._pos >= len(self._block):
            self._block = self._generator.random(_BLOCK_SIZE)
            self._pos = 0
        value = self._block[self._pos]
        self._pos += 1
        return float(value)

    __call__ = random

    def __repr__(self) -> str:
        return f"RandomStream(seed={self.seed!r})"
