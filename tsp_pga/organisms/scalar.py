from __future__ import annotations

import math
import random
import struct
from dataclasses import dataclass
from typing import Callable, Optional

from .base import INVALID_FITNESS, Organism


BITS = 64


def _to_bits(value: float) -> int:
    return struct.unpack("<Q", struct.pack("<d", value))[0]


def _from_bits(bits: int) -> float:
    return struct.unpack("<d", struct.pack("<Q", bits & ((1 << BITS) - 1)))[0]


def sphere(x: float) -> float:
    return x * x


@dataclass(eq=False)
class ScalarIndividual(Organism):
    """
    A single real value evolved through its IEEE-754 bit pattern. Offspring
    can land on NaN or inf; those score as invalid.
    """

    value: float
    objective: Callable[[float], float] = sphere

    @staticmethod
    def random(
        low: float = -10.0,
        high: float = 10.0,
        objective: Callable[[float], float] = sphere,
        rng: Optional[random.Random] = None,
    ) -> "ScalarIndividual":
        rng = rng or random
        return ScalarIndividual(value=rng.uniform(low, high), objective=objective)

    def fitness(self) -> float:
        if not math.isfinite(self.value):
            return INVALID_FITNESS
        try:
            score = self.objective(self.value)
        except (ValueError, OverflowError):
            return INVALID_FITNESS
        if math.isnan(score):
            return INVALID_FITNESS
        return float(score)

    def mutate(self, rng: Optional[random.Random] = None) -> None:
        rng = rng or random
        bit = rng.randrange(BITS)
        self.value = _from_bits(_to_bits(self.value) ^ (1 << bit))

    def cross_over(self, other: "ScalarIndividual", rng: Optional[random.Random] = None) -> "ScalarIndividual":
        # Single-point: high bits from self, low bits from other.
        rng = rng or random
        point = rng.randrange(BITS + 1)
        low_mask = (1 << point) - 1
        bits = (_to_bits(self.value) & ~low_mask) | (_to_bits(other.value) & low_mask)
        return ScalarIndividual(value=_from_bits(bits), objective=self.objective)

    def clone(self) -> "ScalarIndividual":
        return ScalarIndividual(value=self.value, objective=self.objective)
