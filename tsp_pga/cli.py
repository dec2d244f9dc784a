import argparse
import json
import logging
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

from tsp_pga.coordinator import Coordinator, GenerationReport, RunResult
from tsp_pga.data import load_matrix
from tsp_pga.evolutionary import EvolutionarySearch, GAConfig
from tsp_pga.messages import Terminate, encode
from tsp_pga.organisms.tour import DistanceMatrix, random_population
from tsp_pga.transport import ROOT_RANK, LocalCluster, MPITransport
from tsp_pga.worker import run_worker

logger = logging.getLogger("tsp_pga")


def setup_logging(verbose: bool = False, rank: Optional[int] = None) -> None:
    prefix = "" if rank is None else f"rank {rank} "
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=f"[%(asctime)s] {prefix}%(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def build_config(args) -> GAConfig:
    overrides = dict(
        generations=args.generations,
        population_size=args.population_size,
        elite=args.elite,
        mutation_rate=args.mutation_rate,
        crossover_rate=args.crossover_rate,
        threads=args.threads,
        report_top=args.top,
        random_seed=args.seed,
    )
    if args.config:
        return GAConfig.from_file(Path(args.config), **overrides)
    return GAConfig().with_overrides(**overrides)


def _load(args) -> DistanceMatrix:
    matrix = load_matrix(Path(args.matrix) if args.matrix else None)
    logger.info("loaded %d-node distance matrix", matrix.size)
    return matrix


def print_report(report: GenerationReport) -> None:
    label = "final" if report.final else f"gen {report.generation}"
    best = ", ".join(f"{fit:.1f}" for fit in report.best)
    print(f"{label}: evaluated={report.evaluated} best=[{best}]", flush=True)


def print_result(result: RunResult, top_k: int) -> None:
    for fit, tour in result.top(top_k):
        print(f"{fit:.1f} -> {tour}")


def write_output(path: Path, cfg: GAConfig, result: RunResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    body = {
        "config": cfg.to_dict(),
        "history": [
            {"generation": r.generation, "best": r.best, "final": r.final}
            for r in result.history
        ],
        "best": [{"fitness": fit, "tour": tour} for fit, tour in result.top(cfg.report_top)],
    }
    path.write_text(json.dumps(body, indent=2))
    logger.info("wrote results to %s", path)


def _finish(args, cfg: GAConfig, result: RunResult, started: float) -> None:
    logger.info("run finished in %.2fs", time.perf_counter() - started)
    print_result(result, cfg.report_top)
    if args.output:
        write_output(Path(args.output), cfg, result)


def run(args) -> None:
    transport = MPITransport()
    setup_logging(args.verbose, transport.rank)
    if transport.size < 2:
        raise SystemExit("run needs at least two MPI ranks, e.g. `mpiexec -n 3 tsp-pga run`")
    try:
        if transport.rank != ROOT_RANK:
            run_worker(transport, threads=args.threads)
            return
        t0 = time.perf_counter()
        cfg = build_config(args)
        coordinator = Coordinator(transport, _load(args), cfg)
        result = coordinator.run(on_generation=print_report)
        _finish(args, cfg, result, t0)
    except Exception:
        logger.exception("fatal error, aborting all ranks")
        transport.abort(1)
        raise


def simulate(args) -> None:
    setup_logging(args.verbose)
    t0 = time.perf_counter()
    cfg = build_config(args)
    matrix = _load(args)
    cluster = LocalCluster(args.workers + 1)
    errors: List[BaseException] = []

    def serve(rank: int) -> None:
        try:
            run_worker(cluster.transport(rank), threads=args.threads)
        except Exception as exc:
            logger.exception("worker %d failed", rank)
            errors.append(exc)
            # A reply of the wrong kind makes the coordinator fail in gather.
            cluster.channel(rank, ROOT_RANK).put(encode(Terminate()))

    threads = [
        threading.Thread(target=serve, args=(rank,), name=f"worker-{rank}", daemon=True)
        for rank in range(1, cluster.size)
    ]
    for t in threads:
        t.start()
    try:
        result = Coordinator(cluster.transport(ROOT_RANK), matrix, cfg).run(on_generation=print_report)
    except Exception as exc:
        if errors:
            raise errors[0] from exc
        raise
    for t in threads:
        t.join()
    if errors:
        raise errors[0]
    _finish(args, cfg, result, t0)


def solve(args) -> None:
    setup_logging(args.verbose)
    t0 = time.perf_counter()
    cfg = build_config(args)
    search = EvolutionarySearch(cfg, random_population(_load(args), cfg.population_size))

    result = RunResult()

    def on_generation(generation: int, best: List[float]) -> None:
        report = GenerationReport(generation, best, cfg.population_size, [cfg.population_size])
        result.history.append(report)
        print_report(report)

    try:
        ranked = search.run(on_generation=on_generation)
    finally:
        search.close()
    result.ranked = [(fit, ind.path) for fit, ind in ranked]
    final = GenerationReport(
        cfg.generations, [fit for fit, _ in result.top(cfg.report_top)], len(ranked), [len(ranked)], final=True
    )
    result.history.append(final)
    print_report(final)
    _finish(args, cfg, result, t0)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--matrix", help="distance matrix file (.json, .csv, .npy, .tsp); default: bundled example29")
    parser.add_argument("--config", help="JSON file with GA settings")
    parser.add_argument("--generations", type=int)
    parser.add_argument("--population-size", type=int)
    parser.add_argument("--elite", type=int)
    parser.add_argument("--mutation-rate", type=float)
    parser.add_argument("--crossover-rate", type=float)
    parser.add_argument("--threads", type=int, help="evaluation threads per process")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--top", type=int, help="how many best individuals to report")
    parser.add_argument("--output", help="write the final report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Distributed genetic algorithm for the TSP")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Distributed search over MPI (launch with mpiexec)")
    _add_common(run_parser)
    run_parser.set_defaults(func=run)

    sim_parser = subparsers.add_parser("simulate", help="Distributed search with in-process worker threads")
    _add_common(sim_parser)
    sim_parser.add_argument("--workers", type=int, default=2)
    sim_parser.set_defaults(func=simulate)

    solve_parser = subparsers.add_parser("solve", help="Single-process search")
    _add_common(solve_parser)
    solve_parser.set_defaults(func=solve)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
