import concurrent.futures
import logging
import math
from operator import itemgetter
from typing import Iterable, List, Optional, Sequence, Tuple

from .organisms.base import FitnessRecord, Organism

logger = logging.getLogger(__name__)


def _score(individual: Organism) -> float:
    return individual.fitness()


def rank_records(records: Iterable[Tuple[float, object]]) -> List[Tuple[float, object]]:
    """Sort (fitness, item) pairs ascending. Infinite fitness sorts last; NaN is rejected."""
    records = list(records)
    for fit, _ in records:
        if math.isnan(fit):
            raise ValueError("fitness evaluation produced NaN")
    records.sort(key=itemgetter(0))
    return records


def merge_ranked(batches: Iterable[Sequence[Tuple[float, object]]]) -> List[Tuple[float, object]]:
    merged: List[Tuple[float, object]] = []
    for batch in batches:
        merged.extend(batch)
    return rank_records(merged)


def split_elite(ranked: Sequence[FitnessRecord], elite: int) -> Tuple[List[FitnessRecord], List[FitnessRecord]]:
    return list(ranked[:elite]), list(ranked[elite:])


class PopulationEvaluator:
    """
    Scores populations on a thread pool. Each task reads only its own
    individual and the shared read-only problem data.
    """

    def __init__(self, threads: Optional[int] = None):
        self.threads = threads
        self._executor = None
        if threads is None or threads > 1:
            self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=threads)

    def evaluate(self, population: Sequence[Organism]) -> List[FitnessRecord]:
        if self._executor is None or len(population) < 2:
            scores = [_score(ind) for ind in population]
        else:
            scores = list(self._executor.map(_score, population))
        return list(zip(scores, population))

    def rank(self, population: Sequence[Organism]) -> List[FitnessRecord]:
        ranked = rank_records(self.evaluate(population))
        if ranked:
            logger.debug("ranked %d individuals, best=%s", len(ranked), ranked[0][0])
        return ranked

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> "PopulationEvaluator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
