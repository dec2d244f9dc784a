"""
Unit tests for population ranking, the generation step and the
single-process search loop
"""

import json
import math
import os
import random
import tempfile
import unittest
from unittest.mock import patch

from tsp_pga.evaluation import PopulationEvaluator, merge_ranked, rank_records, split_elite
from tsp_pga.evolutionary import EvolutionarySearch, GAConfig, PopulationSizeError, next_generation
from tsp_pga.organisms import INVALID_FITNESS, DistanceMatrix, ScalarIndividual, random_population


def ring_matrix(n):
    return DistanceMatrix([[min(abs(i - j), n - abs(i - j)) for j in range(n)] for i in range(n)])


class TestRanking(unittest.TestCase):

    def test_rank_records_ascending_with_infinity_last(self):
        ranked = rank_records([(3.0, "c"), (INVALID_FITNESS, "x"), (1.0, "a"), (2.0, "b")])
        self.assertEqual([item for _, item in ranked], ["a", "b", "c", "x"])

    def test_rank_records_rejects_nan(self):
        with self.assertRaises(ValueError):
            rank_records([(1.0, "a"), (float("nan"), "b")])

    def test_merge_is_independent_of_batch_order(self):
        rng = random.Random(0)
        records = [(rng.uniform(0, 100), i) for i in range(30)] + [(INVALID_FITNESS, 99)]
        batches = [records[:10], records[10:25], records[25:]]
        forward = merge_ranked(batches)
        backward = merge_ranked(list(reversed(batches)))
        self.assertEqual(len(forward), len(records))
        self.assertEqual([f for f, _ in forward], [f for f, _ in backward])
        fits = [f for f, _ in forward]
        self.assertTrue(all(a <= b for a, b in zip(fits, fits[1:])))

    def test_split_elite(self):
        elites, rest = split_elite([(1.0, "a"), (2.0, "b"), (3.0, "c")], 1)
        self.assertEqual(elites, [(1.0, "a")])
        self.assertEqual(rest, [(2.0, "b"), (3.0, "c")])

    def test_parallel_and_serial_evaluation_agree(self):
        matrix = ring_matrix(8)
        population = random_population(matrix, 50, random.Random(3))
        with PopulationEvaluator(threads=4) as parallel, PopulationEvaluator(threads=1) as serial:
            self.assertEqual(
                [f for f, _ in parallel.evaluate(population)],
                [f for f, _ in serial.evaluate(population)],
            )
            ranked = parallel.rank(population)
        self.assertEqual(len(ranked), 50)
        self.assertEqual(ranked[0][0], min(ind.fitness() for ind in population))


class TestGAConfig(unittest.TestCase):

    def test_default_settings(self):
        cfg = GAConfig()
        self.assertEqual(
            (cfg.generations, cfg.population_size, cfg.elite, cfg.mutation_rate, cfg.crossover_rate),
            (50, 10000, 20, 0.1, 0.9),
        )

    def test_validation(self):
        with self.assertRaises(ValueError):
            GAConfig(population_size=4, elite=4)
        with self.assertRaises(ValueError):
            GAConfig(mutation_rate=1.5)
        with self.assertRaises(ValueError):
            GAConfig(crossover_rate=-0.1)
        with self.assertRaises(ValueError):
            GAConfig(generations=-1)
        with self.assertRaises(ValueError):
            GAConfig(threads=0)

    def test_from_file_with_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ga.json")
            with open(path, "w") as f:
                json.dump({"generations": 5, "population_size": 12, "elite": 2}, f)
            cfg = GAConfig.from_file(path, elite=3, mutation_rate=None)
        self.assertEqual(cfg.generations, 5)
        self.assertEqual(cfg.elite, 3)
        self.assertEqual(cfg.mutation_rate, 0.1)

    def test_from_file_rejects_unknown_keys(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ga.json")
            with open(path, "w") as f:
                json.dump({"generations": 5, "islands": 2}, f)
            with self.assertRaises(ValueError):
                GAConfig.from_file(path)


class TestNextGeneration(unittest.TestCase):

    def setUp(self):
        self.matrix = ring_matrix(7)
        self.rng = random.Random(11)

    def _ranked(self, size):
        population = random_population(self.matrix, size, self.rng)
        return rank_records((ind.fitness(), ind) for ind in population)

    def test_population_size_is_conserved_for_every_elite_count(self):
        for size in (1, 2, 3, 4, 9, 16):
            ranked = self._ranked(size)
            for elite in range(size):
                for rates in ((0.0, 0.0), (1.0, 1.0), (0.5, 0.5)):
                    nxt = next_generation(ranked, rates[0], rates[1], elite, self.rng)
                    self.assertEqual(len(nxt), size, (size, elite, rates))

    def test_elite_are_carried_as_clones(self):
        ranked = self._ranked(10)
        nxt = next_generation(ranked, 1.0, 1.0, 3, self.rng)
        for (_, parent), carried in zip(ranked[:3], nxt[-3:]):
            self.assertEqual(carried.path, parent.path)
            self.assertIsNot(carried, parent)
            self.assertIsNot(carried.path, parent.path)

    def test_no_crossover_no_mutation_copies_rest_in_order(self):
        ranked = self._ranked(8)
        nxt = next_generation(ranked, 0.0, 0.0, 2, self.rng)
        self.assertEqual([ind.path for ind in nxt[:6]], [ind.path for _, ind in ranked[2:]])

    def test_parents_are_never_modified(self):
        ranked = self._ranked(12)
        before = [list(ind.path) for _, ind in ranked]
        next_generation(ranked, 1.0, 1.0, 2, self.rng)
        self.assertEqual([ind.path for _, ind in ranked], before)

    def test_mutation_only_keeps_permutations(self):
        ranked = self._ranked(12)
        nxt = next_generation(ranked, 1.0, 0.0, 1, self.rng)
        for ind in nxt:
            self.assertEqual(sorted(ind.path), list(range(7)))

    def test_size_mismatch_raises(self):
        ranked = self._ranked(6)

        def lossy_split(records, elite):
            return list(records[:elite]), list(records[elite + 1 :])

        with patch("tsp_pga.evolutionary.split_elite", lossy_split):
            with self.assertRaises(PopulationSizeError):
                next_generation(ranked, 0.0, 0.0, 2, self.rng)


class TestEvolutionarySearch(unittest.TestCase):

    def test_best_fitness_never_gets_worse(self):
        matrix = ring_matrix(9)
        rng = random.Random(5)
        cfg = GAConfig(generations=15, population_size=30, elite=2, mutation_rate=0.3, crossover_rate=0.9, threads=2)
        search = EvolutionarySearch(cfg, random_population(matrix, 30, rng), rng=rng)
        try:
            ranked = search.run()
        finally:
            search.close()
        best = [h[0] for h in search.history]
        self.assertEqual(len(best), 15)
        self.assertTrue(all(b <= a for a, b in zip(best, best[1:])))
        self.assertLessEqual(ranked[0][0], best[-1])
        self.assertEqual(len(search.population), 30)

    def test_population_must_match_config(self):
        cfg = GAConfig(population_size=5, elite=1)
        with self.assertRaises(ValueError):
            EvolutionarySearch(cfg, random_population(ring_matrix(4), 4))

    def test_scalar_search_converges_towards_zero(self):
        rng = random.Random(2)
        cfg = GAConfig(generations=30, population_size=40, elite=2, mutation_rate=0.3, crossover_rate=0.8, threads=1)
        population = [ScalarIndividual.random(-5.0, 5.0, rng=rng) for _ in range(40)]
        start = min(ind.fitness() for ind in population)
        search = EvolutionarySearch(cfg, population, rng=rng)
        fit, best = search.run()[0]
        search.close()
        self.assertLessEqual(fit, start)
        self.assertTrue(math.isfinite(best.value))


if __name__ == "__main__":
    unittest.main()
