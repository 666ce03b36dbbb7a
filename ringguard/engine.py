"""
RingGuard Ring Detection Engine

Finds a trading ring through an encrypted start node without decrypting
anything. Every decision is an encrypted boolean consumed by ``select``;
every loop bound is the matrix size. The sequence of capability calls is
therefore the same for every graph of a given size.

Detection runs in two fixed-length phases:

1. Distance sweeps (``size - 1`` Bellman-Ford relaxations): the encrypted
   hop distance from every node back to the start node, capped at ``size``
   for "unreachable".
2. The walk (exactly ``size`` rounds): starting at the start node, step to
   the successor closest to the start node. Each round runs the membership
   test, the admissibility test, and oblivious updates of ``visited`` and
   ``result[round]``. The walk closes when it steps onto the start node.

Following strictly decreasing distances yields a shortest ring through the
start node, so the real members form a prefix of the result and the risk
score (ring length) tells the reveal side how many entries to keep.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from .fhe import Ciphertext, EncryptedIntegerBackend
from .ledger import TransactionRecord
from .matrix import AdjacencyMatrix

logger = logging.getLogger(__name__)

# Padding value for result slots that hold no ring member.
SENTINEL = 0

RoundObserver = Callable[[int], None]


@dataclass
class EncryptedBundle:
    """Encrypted outcome of one analysis run."""
    ring_members: List[Ciphertext]
    risk_score: Ciphertext
    complete: bool = True
    rounds: int = 0

    def decryption_batch(self) -> List[Ciphertext]:
        """Members followed by the score. Reveal decodes by this position."""
        return list(self.ring_members) + [self.risk_score]

    def to_dict(self):
        return {
            "ring_members": [m.to_hex() for m in self.ring_members],
            "risk_score": self.risk_score.to_hex(),
            "complete": self.complete,
        }


@dataclass
class _Constants:
    zero: Ciphertext
    one: Ciphertext
    unreachable: Ciphertext
    sentinel: Ciphertext
    false: Ciphertext
    true: Ciphertext
    node_ids: List[Ciphertext] = field(default_factory=list)


class RingDetectionEngine:
    """
    Oblivious ring detection over an ``AdjacencyMatrix``.

    Usage:
        engine = RingDetectionEngine(matrix, backend)
        bundle = engine.detect(backend.encrypt(0))
    """

    def __init__(
        self,
        matrix: AdjacencyMatrix,
        backend: EncryptedIntegerBackend,
        round_observer: Optional[RoundObserver] = None
    ):
        self.matrix = matrix
        self.backend = backend
        self.round_observer = round_observer

    def _constants(self, size: int) -> _Constants:
        be = self.backend
        return _Constants(
            zero=be.encrypt(0),
            one=be.encrypt(1),
            unreachable=be.encrypt(size),
            sentinel=be.encrypt(SENTINEL),
            false=be.encrypt_bool(False),
            true=be.encrypt_bool(True),
            node_ids=[be.encrypt(i) for i in range(size)],
        )

    # ------------------------------------------------------------------
    # Matrix construction
    # ------------------------------------------------------------------

    def ingest(self, records: Iterable[TransactionRecord]) -> int:
        """
        Fold ledger records into the matrix as encrypted trade counts.

        Trader and counterparty ids are node slots in ``0..size-1``. For every
        record every cell gets ``cell + select(match, 1, 0)``, so the work per
        record is the same whichever cell actually matches. Ids outside the
        slot range match nothing.

        Returns the number of records folded in.
        """
        be = self.backend
        records = list(records)
        with self.matrix.writing() as cells:
            size = self.matrix.size
            c = self._constants(size)
            for record in records:
                is_trader = [be.eq(record.trader_id, c.node_ids[i]) for i in range(size)]
                is_counterparty = [be.eq(record.counterparty_id, c.node_ids[j]) for j in range(size)]
                for i in range(size):
                    for j in range(size):
                        match = be.and_(is_trader[i], is_counterparty[j])
                        index = i * size + j
                        cells[index] = be.add(cells[index], be.select(match, c.one, c.zero))
        logger.debug("ingested %d records into %dx%d matrix", len(records), size, size)
        return len(records)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _min(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        return self.backend.select(self.backend.gt(a, b), b, a)

    def _distances_to_start(
        self,
        has_edge: List[List[Ciphertext]],
        is_start: List[Ciphertext],
        c: _Constants
    ) -> List[Ciphertext]:
        be = self.backend
        size = len(is_start)
        dist = [be.select(is_start[j], c.zero, c.unreachable) for j in range(size)]
        for _ in range(size - 1):
            relaxed = []
            for j in range(size):
                best = dist[j]
                for k in range(size):
                    via_k = be.select(has_edge[j][k], be.add(dist[k], c.one), c.unreachable)
                    best = self._min(best, via_k)
                relaxed.append(best)
            dist = relaxed
        return dist

    def detect(
        self,
        start_node: Ciphertext,
        round_observer: Optional[RoundObserver] = None
    ) -> EncryptedBundle:
        """
        Run ring detection from ``start_node``.

        Raises:
            MatrixNotInitialized: if the matrix was never initialized
        """
        be = self.backend
        observer = round_observer or self.round_observer

        with self.matrix.reading() as matrix:
            size = matrix.size
            rows = [matrix.row(i) for i in range(size)]
            c = self._constants(size)

            has_edge = [[be.gt(weight, c.zero) for weight in row] for row in rows]
            is_start = [be.eq(start_node, c.node_ids[j]) for j in range(size)]
            dist = self._distances_to_start(has_edge, is_start, c)

            visited = [c.false] * size
            result: List[Ciphertext] = []
            current = start_node
            flagged = c.zero
            active = c.true
            closed = c.false

            for round_index in range(size):
                # Out-edges of the current node, picked row by row.
                is_current = [be.eq(current, c.node_ids[i]) for i in range(size)]
                out_edges = []
                for j in range(size):
                    edge = c.false
                    for i in range(size):
                        edge = be.select(is_current[i], has_edge[i][j], edge)
                    out_edges.append(edge)

                # Successor closest to the start node; ties go to the lowest index.
                best = c.unreachable
                candidate = c.sentinel
                for j in range(size):
                    closer = be.and_(out_edges[j], be.gt(best, dist[j]))
                    best = be.select(closer, dist[j], best)
                    candidate = be.select(closer, c.node_ids[j], candidate)
                reachable = be.gt(c.unreachable, best)

                # Membership test.
                is_candidate = [be.eq(candidate, c.node_ids[j]) for j in range(size)]
                seen = c.false
                for j in range(size):
                    seen = be.or_(seen, be.and_(is_candidate[j], visited[j]))

                # Admissibility test.
                admissible = be.and_(active, reachable)

                should_visit = be.and_(admissible, be.not_(seen))

                result.append(be.select(should_visit, candidate, c.sentinel))
                visited = [
                    be.or_(visited[j], be.and_(should_visit, is_candidate[j]))
                    for j in range(size)
                ]
                flagged = be.add(flagged, be.select(should_visit, c.one, c.zero))

                closes = be.and_(should_visit, be.eq(candidate, start_node))
                closed = be.or_(closed, closes)
                active = be.and_(should_visit, be.not_(closes))
                current = be.select(should_visit, candidate, current)

                if observer is not None:
                    observer(round_index)

            members = [be.select(closed, member, c.sentinel) for member in result]
            risk_score = be.select(closed, flagged, c.zero)

        return EncryptedBundle(ring_members=members, risk_score=risk_score, rounds=size)
