import enum
import logging
from typing import Optional

from .evaluation import PopulationEvaluator
from .messages import EvaluatedPopulation, Population, ProblemData, ProtocolError, Terminate, decode, encode
from .organisms.tour import DistanceMatrix, TspIndividual
from .transport import ROOT_RANK, Transport

logger = logging.getLogger(__name__)


class WorkerState(enum.Enum):
    AWAIT_PROBLEM = "await_problem"
    READY = "ready"
    AWAIT_MESSAGE = "await_message"
    EVALUATE_AND_REPLY = "evaluate_and_reply"
    EXIT = "exit"


class Worker:
    def __init__(self, transport: Transport, threads: Optional[int] = None):
        self.transport = transport
        self.threads = threads
        self.state = WorkerState.AWAIT_PROBLEM
        self.matrix: Optional[DistanceMatrix] = None
        self.batches = 0

    def receive_problem(self) -> DistanceMatrix:
        message = decode(self.transport.broadcast(root=ROOT_RANK))
        if not isinstance(message, ProblemData):
            raise ProtocolError(f"expected problem data, got {type(message).__name__}")
        self.matrix = DistanceMatrix(message.weights)
        self.state = WorkerState.READY
        logger.info("rank %d received %d-node problem", self.transport.rank, self.matrix.size)
        return self.matrix

    def run(self) -> int:
        """Serve populations until terminated; returns the number of batches evaluated."""
        if self.matrix is None:
            self.receive_problem()
        with PopulationEvaluator(self.threads) as evaluator:
            while True:
                self.state = WorkerState.AWAIT_MESSAGE
                message = decode(self.transport.recv(ROOT_RANK))
                if isinstance(message, Terminate):
                    break
                if not isinstance(message, Population):
                    raise ProtocolError(f"rank {self.transport.rank} got unexpected {type(message).__name__}")

                self.state = WorkerState.EVALUATE_AND_REPLY
                population = [TspIndividual(matrix=self.matrix, path=tour) for tour in message.tours]
                entries = [(fit, ind.path) for fit, ind in evaluator.evaluate(population)]
                self.transport.send(encode(EvaluatedPopulation(entries=entries)), ROOT_RANK)
                self.batches += 1
                logger.debug("rank %d returned %d scores", self.transport.rank, len(entries))

        self.state = WorkerState.EXIT
        logger.info("rank %d terminating after %d batches", self.transport.rank, self.batches)
        return self.batches


def run_worker(transport: Transport, threads: Optional[int] = None) -> int:
    return Worker(transport, threads=threads).run()
