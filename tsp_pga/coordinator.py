import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .evaluation import merge_ranked
from .evolutionary import GAConfig, next_generation
from .messages import EvaluatedPopulation, Population, ProblemData, ProtocolError, Terminate, decode, encode
from .organisms.base import Tour
from .organisms.tour import DistanceMatrix, TspIndividual, random_population
from .transport import Transport, chunk

logger = logging.getLogger(__name__)


class CoordinatorState(enum.Enum):
    INIT = "init"
    BROADCAST_PROBLEM = "broadcast_problem"
    SCATTER = "scatter"
    AWAIT_GATHER = "await_gather"
    SELECT_AND_REPRODUCE = "select_and_reproduce"
    FINAL_EVALUATE = "final_evaluate"
    TERMINATE_ALL = "terminate_all"
    DONE = "done"


@dataclass
class GenerationReport:
    generation: int
    best: List[float]
    evaluated: int
    chunk_sizes: List[int]
    final: bool = False


@dataclass
class RunResult:
    history: List[GenerationReport] = field(default_factory=list)
    ranked: List[Tuple[float, Tour]] = field(default_factory=list)

    @property
    def best(self) -> Tuple[float, Tour]:
        return self.ranked[0]

    def top(self, k: int) -> List[Tuple[float, Tour]]:
        return self.ranked[:k]


class Coordinator:
    """
    Rank-0 side of the distributed GA: ships the matrix once, then each
    generation scatters the population, waits for every worker's scores,
    ranks them globally and breeds the next population locally.
    """

    def __init__(
        self,
        transport: Transport,
        matrix: DistanceMatrix,
        config: GAConfig,
        rng: Optional[random.Random] = None,
    ):
        if transport.size < 2:
            raise ValueError("the coordinator needs at least one worker rank")
        self.transport = transport
        self.matrix = matrix
        self.cfg = config
        self.rng = rng or random.Random(config.random_seed)
        self.state = CoordinatorState.INIT
        self._problem_sent = False

    @property
    def worker_ranks(self) -> List[int]:
        return self.transport.workers

    def initial_population(self) -> List[TspIndividual]:
        return random_population(self.matrix, self.cfg.population_size, self.rng)

    def broadcast_problem(self) -> None:
        self.state = CoordinatorState.BROADCAST_PROBLEM
        payload = encode(ProblemData(weights=self.matrix.to_list()))
        logger.info("broadcasting %dx%d matrix (%d bytes)", self.matrix.size, self.matrix.size, len(payload))
        self.transport.broadcast(payload)
        self._problem_sent = True

    def scatter(self, tours: Sequence[Tour]) -> List[int]:
        if not self._problem_sent:
            raise ProtocolError("problem data must be broadcast before the first scatter")
        self.state = CoordinatorState.SCATTER
        chunks = chunk(tours, len(self.worker_ranks))
        for rank, part in zip(self.worker_ranks, chunks):
            logger.debug("sending %d tours to rank %d", len(part), rank)
            self.transport.send(encode(Population(tours=part)), rank)
        return [len(part) for part in chunks]

    def gather(self, expected: int) -> List[Tuple[float, Tour]]:
        self.state = CoordinatorState.AWAIT_GATHER
        batches = []
        for rank in self.worker_ranks:
            message = decode(self.transport.recv(rank))
            if not isinstance(message, EvaluatedPopulation):
                raise ProtocolError(f"rank {rank} replied with {type(message).__name__}")
            logger.debug("received %d scores from rank %d", len(message.entries), rank)
            batches.append(message.entries)
        ranked = merge_ranked(batches)
        if len(ranked) != expected:
            raise ProtocolError(f"scattered {expected} tours but gathered {len(ranked)}")
        return ranked

    def evaluate(self, population: Sequence[TspIndividual]) -> Tuple[List[Tuple[float, Tour]], List[int]]:
        sizes = self.scatter([ind.path for ind in population])
        return self.gather(len(population)), sizes

    def reproduce(self, ranked: Sequence[Tuple[float, Tour]]) -> List[TspIndividual]:
        self.state = CoordinatorState.SELECT_AND_REPRODUCE
        individuals = [(fit, TspIndividual(matrix=self.matrix, path=list(tour))) for fit, tour in ranked]
        return next_generation(
            individuals,
            self.cfg.mutation_rate,
            self.cfg.crossover_rate,
            self.cfg.elite,
            self.rng,
        )

    def terminate_workers(self) -> None:
        self.state = CoordinatorState.TERMINATE_ALL
        payload = encode(Terminate())
        for rank in self.worker_ranks:
            self.transport.send(payload, rank)
        logger.info("sent terminate to %d workers", len(self.worker_ranks))

    def _report(self, generation, ranked, sizes, final=False) -> GenerationReport:
        return GenerationReport(
            generation=generation,
            best=[fit for fit, _ in ranked[: self.cfg.report_top]],
            evaluated=len(ranked),
            chunk_sizes=sizes,
            final=final,
        )

    def run(
        self,
        population: Optional[Sequence[TspIndividual]] = None,
        on_generation: Optional[Callable[[GenerationReport], None]] = None,
    ) -> RunResult:
        population = list(population) if population is not None else self.initial_population()
        if len(population) != self.cfg.population_size:
            raise ValueError(
                f"population has {len(population)} individuals, config expects {self.cfg.population_size}"
            )
        result = RunResult()
        self.broadcast_problem()

        for generation in range(self.cfg.generations):
            ranked, sizes = self.evaluate(population)
            report = self._report(generation, ranked, sizes)
            result.history.append(report)
            logger.info("generation %d: best %s", generation, report.best[:3])
            if on_generation:
                on_generation(report)
            population = self.reproduce(ranked)

        self.state = CoordinatorState.FINAL_EVALUATE
        ranked, sizes = self.evaluate(population)
        report = self._report(self.cfg.generations, ranked, sizes, final=True)
        result.history.append(report)
        result.ranked = ranked
        if on_generation:
            on_generation(report)

        self.terminate_workers()
        self.state = CoordinatorState.DONE
        return result
