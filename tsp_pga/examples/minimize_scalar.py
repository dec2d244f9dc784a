import math
import random

from tsp_pga.evolutionary import EvolutionarySearch, GAConfig
from tsp_pga.organisms import ScalarIndividual


def bumpy(x: float) -> float:
    return x * x + 10 * (1 - math.cos(2 * math.pi * x))


def main():
    rng = random.Random(3)
    cfg = GAConfig(generations=40, population_size=60, elite=2, mutation_rate=0.3, crossover_rate=0.8, threads=1)
    population = [ScalarIndividual.random(objective=bumpy, rng=rng) for _ in range(cfg.population_size)]
    search = EvolutionarySearch(cfg, population, rng=rng)
    ranked = search.run()
    fit, best = ranked[0]
    print(f"x={best.value:.6f} f(x)={fit:.6f}")


if __name__ == "__main__":
    main()
