"""
RingGuard Adjacency Matrix Store

Square matrix of encrypted edge weights, flattened row-major so that cell
``(i, j)`` lives at ``i * size + j``. A zero-weight ciphertext means "no edge".

Mutation (``initialize``, ``set_edge``) takes the write side of a
readers/writer lock; traversals hold the read side for their whole run via
``reading()``, so a matrix is never resized under a running analysis while
independent analyses can still read it concurrently.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from .errors import IndexOutOfRange, InvalidSize, MatrixNotInitialized
from .events import EventSource
from .fhe import Ciphertext, EncryptedIntegerBackend


class ReadWriteLock:
    """
    Many readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue behind
    it, so a steady stream of analyses cannot starve mutation. Read sections
    must therefore not nest.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @property
    def writers_waiting(self) -> int:
        with self._cond:
            return self._writers_waiting

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._writers_waiting > 0:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers > 0:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class AdjacencyMatrix(EventSource):
    """Encrypted trading-relationship graph."""

    def __init__(self, backend: EncryptedIntegerBackend, max_size: Optional[int] = None):
        super().__init__()
        self._backend = backend
        self.max_size = max_size
        self._size = 0
        self._cells: Optional[List[Ciphertext]] = None
        self._lock = ReadWriteLock()

    @property
    def size(self) -> int:
        return self._size

    @property
    def is_initialized(self) -> bool:
        return self._cells is not None

    def initialize(self, size: int) -> None:
        """
        Allocate ``size * size`` encrypted zeros.

        Any previous matrix is discarded along with all of its edges.
        """
        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            raise InvalidSize(f"matrix size must be a positive integer, got {size!r}")
        if self.max_size is not None and size > self.max_size:
            raise InvalidSize(f"matrix size {size} exceeds the limit of {self.max_size}")
        cells = [self._backend.zero() for _ in range(size * size)]
        with self._lock.write():
            self._cells = cells
            self._size = size
        self._emit("matrix_initialized", size=size)

    def set_edge(self, from_node: int, to_node: int, weight: Ciphertext) -> None:
        """
        Overwrite cell ``(from_node, to_node)``. Setting an edge twice replaces it.

        ``weight`` must be a euint32 the backend can operate on; anything else
        raises InvalidCiphertext and leaves the matrix unchanged.
        """
        self._backend.validate(weight)
        with self._lock.write():
            self._check_indices(from_node, to_node)
            self._cells[from_node * self._size + to_node] = weight
        self._emit("edge_set", from_node=from_node, to_node=to_node)

    def get_edge(self, i: int, j: int) -> Ciphertext:
        with self._lock.read():
            self._check_indices(i, j)
            return self._cells[i * self._size + j]

    @contextmanager
    def reading(self) -> Iterator["AdjacencyMatrix"]:
        """Hold the read lock; ``row`` may be called inside."""
        with self._lock.read():
            if self._cells is None:
                raise MatrixNotInitialized("initialize the matrix before running analyses")
            yield self

    @contextmanager
    def writing(self) -> Iterator[List[Ciphertext]]:
        """Hold the write lock and expose the flat cell list for bulk updates."""
        with self._lock.write():
            if self._cells is None:
                raise MatrixNotInitialized("initialize the matrix before ingesting records")
            cells = list(self._cells)
            yield cells
            # Only reached when the block completed; a failure leaves the matrix untouched.
            self._cells = cells

    def row(self, i: int) -> List[Ciphertext]:
        """Snapshot of row ``i``. Callers hold ``reading()``."""
        start = i * self._size
        return self._cells[start:start + self._size]

    def _check_indices(self, i: int, j: int) -> None:
        # An uninitialized matrix has size 0, so every index is out of range.
        for index in (i, j):
            if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= self._size:
                raise IndexOutOfRange(f"index {index!r} outside 0..{self._size - 1}")
