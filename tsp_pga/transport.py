import queue
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar


ROOT_RANK = 0

T = TypeVar("T")


class TransportError(RuntimeError):
    pass


def chunk(items: Sequence[T], parts: int) -> List[List[T]]:
    """Split ``items`` into ``parts`` contiguous chunks whose sizes differ by at most one."""
    if parts < 1:
        raise ValueError("parts must be at least 1")
    base, extra = divmod(len(items), parts)
    chunks = []
    start = 0
    for i in range(parts):
        stop = start + base + (1 if i < extra else 0)
        chunks.append(list(items[start:stop]))
        start = stop
    return chunks


class Transport(ABC):
    """
    Blocking message passing between ranked participants. Rank 0 is the
    coordinator; every other rank is a worker. No call has a timeout.
    """

    rank: int
    size: int

    @property
    def workers(self) -> List[int]:
        return list(range(1, self.size))

    @abstractmethod
    def broadcast(self, payload: Optional[bytes] = None, root: int = ROOT_RANK) -> bytes:
        """Root passes the payload; everyone returns it once all ranks have it."""
        raise NotImplementedError

    @abstractmethod
    def send(self, payload: bytes, dest: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def recv(self, source: int) -> bytes:
        raise NotImplementedError

    def abort(self, code: int = 1) -> None:
        pass


class MPITransport(Transport):
    """Transport over an mpi4py communicator (``COMM_WORLD`` by default)."""

    def __init__(self, comm=None):
        from mpi4py import MPI

        self._mpi = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

    def broadcast(self, payload: Optional[bytes] = None, root: int = ROOT_RANK) -> bytes:
        # Length first, then a buffer of exactly that many bytes.
        length = self.comm.bcast(len(payload) if self.rank == root else None, root=root)
        buf = bytearray(payload) if self.rank == root else bytearray(length)
        self.comm.Bcast([buf, self._mpi.BYTE], root=root)
        return bytes(buf)

    def send(self, payload: bytes, dest: int) -> None:
        self.comm.Send([bytearray(payload), self._mpi.BYTE], dest=dest)

    def recv(self, source: int) -> bytes:
        status = self._mpi.Status()
        self.comm.Probe(source=source, status=status)
        buf = bytearray(status.Get_count(self._mpi.BYTE))
        self.comm.Recv([buf, self._mpi.BYTE], source=source)
        return bytes(buf)

    def abort(self, code: int = 1) -> None:
        self.comm.Abort(code)


class LocalCluster:
    """
    In-process stand-in for an MPI world: one FIFO per ordered rank pair and
    one broadcast inbox per rank. Ranks are usually driven from threads.
    """

    def __init__(self, size: int):
        if size < 2:
            raise TransportError("a cluster needs a coordinator and at least one worker")
        self.size = size
        self._channels: Dict[Tuple[int, int], queue.Queue] = {
            (src, dst): queue.Queue()
            for src in range(size)
            for dst in range(size)
            if src != dst
        }
        self._broadcasts: List[queue.Queue] = [queue.Queue() for _ in range(size)]

    def transport(self, rank: int) -> "LocalTransport":
        if not 0 <= rank < self.size:
            raise ValueError(f"rank {rank} outside cluster of size {self.size}")
        return LocalTransport(self, rank)

    def channel(self, source: int, dest: int) -> queue.Queue:
        return self._channels[(source, dest)]

    def pending(self, source: int, dest: int) -> int:
        return self._channels[(source, dest)].qsize()


class LocalTransport(Transport):
    def __init__(self, cluster: LocalCluster, rank: int):
        self.cluster = cluster
        self.rank = rank
        self.size = cluster.size

    def broadcast(self, payload: Optional[bytes] = None, root: int = ROOT_RANK) -> bytes:
        if self.rank == root:
            data = bytes(payload)
            for rank in range(self.size):
                if rank != root:
                    inbox = self.cluster._broadcasts[rank]
                    inbox.put(len(data))
                    inbox.put(data)
            return data
        inbox = self.cluster._broadcasts[self.rank]
        length = inbox.get()
        data = inbox.get()
        if len(data) != length:
            raise TransportError(f"broadcast announced {length} bytes, received {len(data)}")
        return data

    def send(self, payload: bytes, dest: int) -> None:
        self.cluster.channel(self.rank, dest).put(bytes(payload))

    def recv(self, source: int) -> bytes:
        return self.cluster.channel(source, self.rank).get()
