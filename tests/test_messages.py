"""
Unit tests for the message envelope, its wire codec and the in-process transport
"""

import threading
import unittest

from tsp_pga.messages import (
    EvaluatedPopulation,
    MessageDecodeError,
    Population,
    ProblemData,
    Terminate,
    decode,
    encode,
)
from tsp_pga.transport import LocalCluster, TransportError, chunk


class TestCodec(unittest.TestCase):

    def test_evaluated_population_keeps_infinite_fitness(self):
        message = EvaluatedPopulation(entries=[(12.5, [0, 2, 1]), (float("inf"), [0, 0, 1])])
        decoded = decode(encode(message))
        self.assertEqual(decoded, message)

    def test_problem_data_round_trip(self):
        decoded = decode(encode(ProblemData(weights=[[0, 1.5], [2, 0]])))
        self.assertIsInstance(decoded, ProblemData)
        self.assertEqual(decoded.weights, [[0.0, 1.5], [2.0, 0.0]])

    def test_terminate_and_empty_population(self):
        self.assertIsInstance(decode(encode(Terminate())), Terminate)
        self.assertEqual(decode(encode(Population(tours=[]))), Population(tours=[]))

    def test_encode_rejects_foreign_objects(self):
        with self.assertRaises(TypeError):
            encode({"kind": "terminate"})

    def test_malformed_payloads_raise_decode_error(self):
        bad_payloads = [
            b"\xff\xfe",
            b"not json",
            b"[1, 2]",
            b'{"kind": "shutdown"}',
            b'{"kind": "population"}',
            b'{"kind": "population", "tours": [[0, 1.5]]}',
            b'{"kind": "evaluated", "entries": [[1.0]]}',
            b'{"kind": "evaluated", "entries": [["x", [0]]]}',
            b'{"kind": "problem", "weights": [1, 2]}',
        ]
        for payload in bad_payloads:
            with self.assertRaises(MessageDecodeError, msg=payload):
                decode(payload)


class TestChunk(unittest.TestCase):

    def test_even_split(self):
        self.assertEqual(chunk(list(range(10)), 2), [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9]])

    def test_uneven_split_keeps_every_item_once(self):
        parts = chunk(list(range(11)), 3)
        self.assertEqual([len(p) for p in parts], [4, 4, 3])
        self.assertEqual(sum(parts, []), list(range(11)))

    def test_more_parts_than_items(self):
        self.assertEqual(chunk([1, 2], 4), [[1], [2], [], []])

    def test_rejects_zero_parts(self):
        with self.assertRaises(ValueError):
            chunk([1], 0)


class TestLocalCluster(unittest.TestCase):

    def test_needs_a_worker(self):
        with self.assertRaises(TransportError):
            LocalCluster(1)

    def test_broadcast_reaches_every_worker(self):
        cluster = LocalCluster(4)
        received = {}

        def listen(rank):
            received[rank] = cluster.transport(rank).broadcast()

        threads = [threading.Thread(target=listen, args=(r,), daemon=True) for r in (1, 2, 3)]
        for t in threads:
            t.start()
        self.assertEqual(cluster.transport(0).broadcast(b"payload"), b"payload")
        for t in threads:
            t.join(timeout=5)
        self.assertEqual(received, {1: b"payload", 2: b"payload", 3: b"payload"})

    def test_point_to_point_is_fifo_per_pair(self):
        cluster = LocalCluster(3)
        root, one, two = (cluster.transport(r) for r in range(3))
        root.send(b"a", 1)
        root.send(b"b", 1)
        root.send(b"c", 2)
        self.assertEqual(cluster.pending(0, 1), 2)
        self.assertEqual(one.recv(0), b"a")
        self.assertEqual(one.recv(0), b"b")
        self.assertEqual(two.recv(0), b"c")
        one.send(b"reply", 0)
        self.assertEqual(root.recv(1), b"reply")
        self.assertEqual(root.workers, [1, 2])

    def test_broadcast_length_mismatch_is_detected(self):
        cluster = LocalCluster(2)
        inbox = cluster._broadcasts[1]
        inbox.put(10)
        inbox.put(b"short")
        with self.assertRaises(TransportError):
            cluster.transport(1).broadcast()


if __name__ == "__main__":
    unittest.main()
