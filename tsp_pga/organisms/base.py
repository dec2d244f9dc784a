import random
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, TypeVar


Tour = List[int]

# Fitness assigned to any candidate that violates its domain constraints.
INVALID_FITNESS = float("inf")


class Organism(ABC):
    """
    Anything the genetic engine can evolve: lower fitness is better and
    fitness must never be NaN.
    """

    @abstractmethod
    def fitness(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def mutate(self, rng: Optional[random.Random] = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def cross_over(self, other: "Organism", rng: Optional[random.Random] = None) -> "Organism":
        raise NotImplementedError

    @abstractmethod
    def clone(self) -> "Organism":
        raise NotImplementedError


O = TypeVar("O", bound=Organism)

FitnessRecord = Tuple[float, O]
