import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import tsplib95

from .organisms.tour import DistanceMatrix


INSTANCE_DIR = Path(__file__).parent / "instances"
EXAMPLE_INSTANCE = INSTANCE_DIR / "example29.json"
TSPLIB_SUFFIXES = (".tsp", ".atsp")


@dataclass
class Instance:
    name: str
    path: Optional[Path]
    matrix: DistanceMatrix


def _matrix_from_problem(problem) -> DistanceMatrix:
    nodes = list(problem.get_nodes())
    weights = [[problem.get_weight(a, b) if a != b else 0.0 for b in nodes] for a in nodes]
    return DistanceMatrix(weights)


def load_tsplib(path: Path) -> Instance:
    problem = tsplib95.load(str(path))
    return Instance(name=problem.name or path.stem, path=path, matrix=_matrix_from_problem(problem))


def parse_tsplib(text: str, name: Optional[str] = None) -> Instance:
    problem = tsplib95.parse(text)
    return Instance(name=name or problem.name, path=None, matrix=_matrix_from_problem(problem))


def _load_json(path: Path) -> Instance:
    data = json.loads(path.read_text())
    if isinstance(data, dict):
        if "weights" not in data:
            raise ValueError(f"{path}: JSON object must contain a 'weights' matrix")
        return Instance(name=data.get("name", path.stem), path=path, matrix=DistanceMatrix(data["weights"]))
    return Instance(name=path.stem, path=path, matrix=DistanceMatrix(data))


def load_instance(path: Path) -> Instance:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in TSPLIB_SUFFIXES:
        return load_tsplib(path)
    if suffix == ".json":
        return _load_json(path)
    if suffix == ".npy":
        return Instance(name=path.stem, path=path, matrix=DistanceMatrix(np.load(path)))
    if suffix == ".csv":
        mat = np.loadtxt(path, delimiter=",", ndmin=2)
        return Instance(name=path.stem, path=path, matrix=DistanceMatrix(mat))
    raise ValueError(f"unsupported matrix file '{path}' (expected .json, .csv, .npy, .tsp or .atsp)")


def example_instance() -> Instance:
    return _load_json(EXAMPLE_INSTANCE)


def load_matrix(path: Optional[Path] = None) -> DistanceMatrix:
    if path is None:
        return example_instance().matrix
    return load_instance(path).matrix
