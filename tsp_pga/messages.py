"""
Envelope exchanged between the coordinator and its workers.

Every payload is one JSON object tagged by ``kind``. Infinite fitness values
travel as the JSON extension literal ``Infinity``, which ``json`` reads back.
"""

import json
from dataclasses import dataclass, field
from typing import List, Tuple, Union

from .organisms.base import Tour


class MessageDecodeError(ValueError):
    pass


class ProtocolError(RuntimeError):
    """A well-formed message arrived where the protocol does not allow it."""


@dataclass(frozen=True)
class Terminate:
    pass


@dataclass
class Population:
    tours: List[Tour] = field(default_factory=list)


@dataclass
class ProblemData:
    weights: List[List[float]]


@dataclass
class EvaluatedPopulation:
    entries: List[Tuple[float, Tour]] = field(default_factory=list)


Message = Union[Terminate, Population, ProblemData, EvaluatedPopulation]


def encode(message: Message) -> bytes:
    if isinstance(message, Terminate):
        body = {"kind": "terminate"}
    elif isinstance(message, Population):
        body = {"kind": "population", "tours": [list(map(int, t)) for t in message.tours]}
    elif isinstance(message, ProblemData):
        body = {"kind": "problem", "weights": [list(map(float, row)) for row in message.weights]}
    elif isinstance(message, EvaluatedPopulation):
        body = {
            "kind": "evaluated",
            "entries": [[float(fit), list(map(int, tour))] for fit, tour in message.entries],
        }
    else:
        raise TypeError(f"not a message: {message!r}")
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def _tour(value) -> Tour:
    if not isinstance(value, list) or not all(type(v) is int for v in value):
        raise MessageDecodeError("tour must be a list of integers")
    return value


def _number(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MessageDecodeError(f"expected a number, got {value!r}")
    return float(value)


def _list(body: dict, key: str) -> list:
    value = body.get(key)
    if not isinstance(value, list):
        raise MessageDecodeError(f"'{key}' must be a list")
    return value


def decode(payload: bytes) -> Message:
    try:
        body = json.loads(bytes(payload).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageDecodeError(f"undecodable payload: {exc}") from exc
    if not isinstance(body, dict):
        raise MessageDecodeError("payload is not a JSON object")

    kind = body.get("kind")
    if kind == "terminate":
        return Terminate()
    if kind == "population":
        return Population(tours=[_tour(t) for t in _list(body, "tours")])
    if kind == "problem":
        rows = _list(body, "weights")
        for row in rows:
            if not isinstance(row, list):
                raise MessageDecodeError("'weights' must be a list of rows")
        return ProblemData(weights=[[_number(w) for w in row] for row in rows])
    if kind == "evaluated":
        entries = []
        for entry in _list(body, "entries"):
            if not isinstance(entry, list) or len(entry) != 2:
                raise MessageDecodeError("evaluated entry must be a [fitness, tour] pair")
            entries.append((_number(entry[0]), _tour(entry[1])))
        return EvaluatedPopulation(entries=entries)
    raise MessageDecodeError(f"unknown message kind {kind!r}")
