"""
RingGuard Transaction Ledger

Append-only store of encrypted transaction records. Each record gets the next
sequence id and a UTC submission time; records are never mutated or removed.

Two stores implement the same interface:
- InMemoryTransactionLedger for development/testing
- SqliteTransactionLedger, persisted with the standard sqlite3 module
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .errors import InvalidCiphertext
from .events import EventSource
from .fhe import EUINT32, Ciphertext

ENCRYPTED_FIELDS = ("trader_id", "counterparty_id", "security_id", "amount", "timestamp")


@dataclass(frozen=True)
class TransactionRecord:
    """One submitted trade. Every field except id and submitted_at is encrypted."""
    id: int
    trader_id: Ciphertext
    counterparty_id: Ciphertext
    security_id: Ciphertext
    amount: Ciphertext
    timestamp: Ciphertext
    submitted_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"id": self.id}
        for name in ENCRYPTED_FIELDS:
            d[name] = getattr(self, name).to_hex()
        d["submitted_at"] = self.submitted_at.isoformat().replace("+00:00", "Z")
        return d


class TransactionLedger(EventSource, ABC):
    """
    Abstract append-only ledger.

    Implementations must hand out strictly increasing ids and fire
    ``transaction_submitted`` after the append has committed.
    """

    def submit(
        self,
        trader_id: Ciphertext,
        counterparty_id: Ciphertext,
        security_id: Ciphertext,
        amount: Ciphertext,
        timestamp: Ciphertext,
    ) -> int:
        """
        Append a record and return its sequence id.

        Raises:
            InvalidCiphertext: a field is not a euint32 ciphertext (nothing appended)
        """
        fields = {
            "trader_id": trader_id,
            "counterparty_id": counterparty_id,
            "security_id": security_id,
            "amount": amount,
            "timestamp": timestamp,
        }
        for name, value in fields.items():
            if not isinstance(value, Ciphertext) or value.kind != EUINT32:
                raise InvalidCiphertext(f"{name} must be an {EUINT32} ciphertext")
        record = self._append(fields, datetime.now(timezone.utc))
        self._emit("transaction_submitted", record_id=record.id)
        return record.id

    @abstractmethod
    def _append(self, fields: Dict[str, Ciphertext], submitted_at: datetime) -> TransactionRecord:
        pass

    @abstractmethod
    def get(self, record_id: int) -> Optional[TransactionRecord]:
        pass

    @abstractmethod
    def records(self) -> List[TransactionRecord]:
        """All records in ascending id order."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryTransactionLedger(TransactionLedger):
    """
    In-memory ledger for development/testing.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        super().__init__()
        self._records: List[TransactionRecord] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def _append(self, fields, submitted_at):
        with self._lock:
            record = TransactionRecord(id=self._next_id, submitted_at=submitted_at, **fields)
            self._records.append(record)
            self._next_id += 1
            return record

    def get(self, record_id):
        with self._lock:
            index = record_id - 1
            if 0 <= index < len(self._records):
                return self._records[index]
            return None

    def records(self):
        with self._lock:
            return list(self._records)

    def __len__(self):
        with self._lock:
            return len(self._records)


class SqliteTransactionLedger(TransactionLedger):
    """
    SQLite-backed ledger.

    ``AUTOINCREMENT`` guarantees ids are never reused, even after the highest
    row is lost to a rollback. Ciphertexts are stored in their hex wire form.
    """

    def __init__(self, db_path: str):
        super().__init__()
        self._db_path = db_path
        self._lock = threading.Lock()
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                trader_id TEXT NOT NULL,
                counterparty_id TEXT NOT NULL,
                security_id TEXT NOT NULL,
                amount TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                submitted_at TEXT NOT NULL
            );""")

    def _append(self, fields, submitted_at):
        with self._transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO transactions(trader_id, counterparty_id, security_id, amount, timestamp, submitted_at) "
                "VALUES(?,?,?,?,?,?)",
                tuple(fields[name].to_hex() for name in ENCRYPTED_FIELDS) + (submitted_at.isoformat(),)
            )
            record_id = cursor.lastrowid
        return TransactionRecord(id=record_id, submitted_at=submitted_at, **fields)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> TransactionRecord:
        return TransactionRecord(
            id=row["id"],
            submitted_at=datetime.fromisoformat(row["submitted_at"]),
            **{name: Ciphertext.from_hex(row[name]) for name in ENCRYPTED_FIELDS}
        )

    def get(self, record_id):
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (record_id,)
            ).fetchone()
        return self._from_row(row) if row else None

    def records(self):
        with self._lock:
            rows = self._conn.execute("SELECT * FROM transactions ORDER BY id ASC").fetchall()
        return [self._from_row(r) for r in rows]

    def __len__(self):
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def create_ledger(backend: str = "memory", db_path: Optional[str] = None) -> TransactionLedger:
    """Build the ledger named by configuration (``memory`` or ``sqlite``)."""
    if backend == "sqlite":
        if not db_path:
            raise ValueError("sqlite ledger requires a db_path")
        return SqliteTransactionLedger(db_path)
    if backend != "memory":
        raise ValueError(f"Unknown ledger backend: {backend}")
    return InMemoryTransactionLedger()
