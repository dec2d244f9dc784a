import random
import threading

from tsp_pga.coordinator import Coordinator
from tsp_pga.data import example_instance
from tsp_pga.evolutionary import GAConfig
from tsp_pga.transport import LocalCluster
from tsp_pga.worker import run_worker


def main():
    instance = example_instance()
    cfg = GAConfig(
        generations=20,
        population_size=400,
        elite=4,
        mutation_rate=0.2,
        crossover_rate=0.9,
        report_top=3,
    )
    cluster = LocalCluster(size=3)
    workers = [
        threading.Thread(target=run_worker, args=(cluster.transport(rank),), daemon=True)
        for rank in range(1, cluster.size)
    ]
    for w in workers:
        w.start()

    coordinator = Coordinator(cluster.transport(0), instance.matrix, cfg, rng=random.Random(7))
    result = coordinator.run(
        on_generation=lambda r: print(f"gen {r.generation}: best={r.best[0]:.1f}")
    )
    for w in workers:
        w.join()
    fit, tour = result.best
    print(f"{instance.name}: best={fit:.1f} tour={tour}")


if __name__ == "__main__":
    main()
