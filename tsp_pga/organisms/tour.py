from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

import networkx as nx
import numpy as np

from .base import INVALID_FITNESS, Organism, Tour


class DistanceMatrix:
    """
    Square weighted adjacency of N nodes. The backing array is frozen on
    construction so the same handle can be shared by every individual and
    every evaluation thread.
    """

    def __init__(self, weights):
        mat = np.array(weights, dtype=np.float64)
        if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
            raise ValueError(f"distance matrix must be square, got shape {mat.shape}")
        if np.isnan(mat).any():
            raise ValueError("distance matrix contains NaN entries")
        if np.isneginf(mat).any():
            raise ValueError("distance matrix contains -inf entries")
        mat.setflags(write=False)
        self._weights = mat

    @classmethod
    def from_graph(cls, graph: nx.Graph, nodes: Optional[Sequence] = None) -> "DistanceMatrix":
        # Missing edges become +inf so tours using them can never win.
        nodelist = list(graph.nodes()) if nodes is None else list(nodes)
        mat = nx.to_numpy_array(graph, nodelist=nodelist, weight="weight", nonedge=np.inf)
        np.fill_diagonal(mat, 0.0)
        return cls(mat)

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    @property
    def size(self) -> int:
        return self._weights.shape[0]

    def __len__(self) -> int:
        return self.size

    def weight(self, a: int, b: int) -> float:
        return float(self._weights[a, b])

    def path_length(self, path: Sequence[int]) -> float:
        # Open path: the last node does not return to the first.
        if len(path) < 2:
            return 0.0
        idx = np.asarray(path, dtype=np.intp)
        return float(self._weights[idx[:-1], idx[1:]].sum())

    def to_list(self) -> List[List[float]]:
        return self._weights.tolist()

    def __eq__(self, other) -> bool:
        if not isinstance(other, DistanceMatrix):
            return NotImplemented
        return self is other or np.array_equal(self._weights, other._weights)

    def __repr__(self) -> str:
        return f"DistanceMatrix(size={self.size})"


def is_permutation(path: Sequence[int], n: int) -> bool:
    if len(path) != n:
        return False
    seen = set()
    for node in path:
        if not 0 <= node < n or node in seen:
            return False
        seen.add(node)
    return True


@dataclass(eq=False)
class TspIndividual(Organism):
    matrix: DistanceMatrix
    path: Tour

    @staticmethod
    def random(matrix: DistanceMatrix, rng: Optional[random.Random] = None) -> "TspIndividual":
        rng = rng or random
        path = list(range(matrix.size))
        rng.shuffle(path)
        return TspIndividual(matrix=matrix, path=path)

    def fitness(self) -> float:
        if not is_permutation(self.path, self.matrix.size):
            return INVALID_FITNESS
        return self.matrix.path_length(self.path)

    def mutate(self, rng: Optional[random.Random] = None) -> None:
        # Positions are drawn independently, so a swap with itself is possible.
        if not self.path:
            return
        rng = rng or random
        i = rng.randrange(len(self.path))
        j = rng.randrange(len(self.path))
        self.path[i], self.path[j] = self.path[j], self.path[i]

    def cross_over(self, other: "TspIndividual", rng: Optional[random.Random] = None) -> "TspIndividual":
        """
        Copy this parent's path, then overwrite positions [start, end) with
        the other parent's entries at the same positions. The result is not
        repaired: a duplicated or missing node makes its fitness infinite.
        """
        rng = rng or random
        n = len(self.path)
        if n == 0:
            return self.clone()
        start = rng.randrange(n)
        end = rng.randint(start, n - 1)
        child = self.path[:start] + list(other.path[start:end]) + self.path[end:]
        return TspIndividual(matrix=self.matrix, path=child)

    def clone(self) -> "TspIndividual":
        return TspIndividual(matrix=self.matrix, path=self.path[:])


def random_population(
    matrix: DistanceMatrix, size: int, rng: Optional[random.Random] = None
) -> List[TspIndividual]:
    return [TspIndividual.random(matrix, rng) for _ in range(size)]
