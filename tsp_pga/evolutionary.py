import json
import logging
import random
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .evaluation import PopulationEvaluator, split_elite
from .organisms.base import FitnessRecord, O

logger = logging.getLogger(__name__)


class PopulationSizeError(RuntimeError):
    pass


@dataclass
class GAConfig:
    generations: int = 50
    population_size: int = 10000
    elite: int = 20
    mutation_rate: float = 0.1
    crossover_rate: float = 0.9
    threads: Optional[int] = None
    report_top: int = 10
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.population_size < 1:
            raise ValueError("population_size must be at least 1")
        if not 0 <= self.elite < self.population_size:
            raise ValueError(
                f"elite must be in [0, population_size), got {self.elite} for {self.population_size}"
            )
        for name in ("mutation_rate", "crossover_rate"):
            rate = getattr(self, name)
            if not 0.0 <= rate <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {rate}")
        if self.generations < 0:
            raise ValueError("generations must be non-negative")
        if self.report_top < 1:
            raise ValueError("report_top must be at least 1")
        if self.threads is not None and self.threads < 1:
            raise ValueError("threads must be None or at least 1")

    @classmethod
    def from_file(cls, path: Path, **overrides) -> "GAConfig":
        data = json.loads(Path(path).read_text())
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"{path}: unknown config keys {unknown}")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)

    def with_overrides(self, **overrides) -> "GAConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict:
        return asdict(self)


def next_generation(
    ranked: Sequence[FitnessRecord],
    mutation_rate: float,
    crossover_rate: float,
    elite: int,
    rng: Optional[random.Random] = None,
) -> List[O]:
    """
    Breed the next population from an ascending-ranked one.

    The top ``elite`` individuals are carried over as clones. Every other
    individual is the first parent of exactly one child, paired with its
    successor in rank order; the worst wraps around to the best non-elite.
    That yields ``len(ranked) - elite`` children, so the population size is
    conserved exactly.
    """
    rng = rng or random
    elites, rest = split_elite(ranked, elite)
    parents = [ind for _, ind in rest]

    children = []
    for i, first in enumerate(parents):
        second = parents[(i + 1) % len(parents)]
        if rng.random() < crossover_rate:
            children.append(first.cross_over(second, rng))
        else:
            children.append(first.clone())

    for child in children:
        if rng.random() < mutation_rate:
            child.mutate(rng)

    children.extend(ind.clone() for _, ind in elites)

    if len(children) != len(ranked):
        raise PopulationSizeError(f"next generation has {len(children)} individuals, expected {len(ranked)}")
    return children


class EvolutionarySearch:
    """Single-process GA loop over any Organism population."""

    def __init__(
        self,
        config: GAConfig,
        population: Sequence[O],
        rng: Optional[random.Random] = None,
        evaluator: Optional[PopulationEvaluator] = None,
    ):
        if len(population) != config.population_size:
            raise ValueError(
                f"population has {len(population)} individuals, config expects {config.population_size}"
            )
        self.cfg = config
        self.rng = rng or random.Random(config.random_seed)
        self.evaluator = evaluator or PopulationEvaluator(config.threads)
        self.population: List[O] = list(population)
        self.generation = 0
        self.history: List[List[float]] = []

    def step(self) -> List[FitnessRecord]:
        ranked = self.evaluator.rank(self.population)
        self.history.append([fit for fit, _ in ranked[: self.cfg.report_top]])
        self.population = next_generation(
            ranked,
            self.cfg.mutation_rate,
            self.cfg.crossover_rate,
            self.cfg.elite,
            self.rng,
        )
        self.generation += 1
        return ranked

    def run(self, on_generation: Optional[Callable[[int, List[float]], None]] = None) -> List[FitnessRecord]:
        for _ in range(self.cfg.generations):
            self.step()
            logger.info("generation %d best=%s", self.generation - 1, self.history[-1][:1])
            if on_generation:
                on_generation(self.generation - 1, self.history[-1])
        return self.evaluator.rank(self.population)

    def best(self) -> FitnessRecord:
        return self.evaluator.rank(self.population)[0]

    def close(self) -> None:
        self.evaluator.close()
