import random
import secrets
from typing import Protocol, Self


class RngPort(Protocol):
    """Source of randomness for damage rolls and AI choices."""

    def float64(self) -> float:
        """Return a float in [0, 1)."""
        ...

    def intn(self, n: int) -> int:
        """Return an int in [0, n)."""
        ...


class ResumableRng(RngPort, Protocol):
    """RNG whose position can be persisted as ``(seed, draws)``."""

    seed: int
    draws: int


class SeededRng:
    """Deterministic generator that can be resumed from ``(seed, draws)``.

    Every draw consumes exactly one value of the underlying stream, so a generator rebuilt
    with the same seed and fast-forwarded by ``draws`` continues the same sequence. Battle
    sessions persist both numbers and resume their stream on every request.
    """

    def __init__(self, seed: int | None = None) -> None:
        self.seed = seed if seed is not None else new_seed()
        self.draws = 0
        self._rng = random.Random(self.seed)

    @classmethod
    def resume(cls, seed: int, draws: int) -> Self:
        rng = cls(seed)
        for _ in range(draws):
            rng.float64()
        return rng

    def float64(self) -> float:
        self.draws += 1
        return self._rng.random()

    def intn(self, n: int) -> int:
        if n <= 0:
            msg = f"intn requires a positive bound, got {n}"
            raise ValueError(msg)
        return min(int(self.float64() * n), n - 1)


def new_seed() -> int:
    return secrets.randbits(63)
