"""
RingGuard Transaction Ledger Test Suite

The same behaviour is checked against the in-memory and the SQLite ledgers.
"""

import os
import shutil
import tempfile
import threading
import unittest

from ringguard import (
    Ciphertext,
    InMemoryTransactionLedger,
    InvalidCiphertext,
    SealedIntegerBackend,
    SqliteTransactionLedger,
    create_ledger,
)
from ringguard.ledger import ENCRYPTED_FIELDS


class LedgerContract:
    """Mixed into a TestCase that provides ``make_ledger``."""

    def setUp(self):
        self.backend = SealedIntegerBackend()
        self.ledger = self.make_ledger()

    def _submit(self, trader=0, counterparty=1):
        be = self.backend
        return self.ledger.submit(be.encrypt(trader), be.encrypt(counterparty),
                                  be.encrypt(42), be.encrypt(1000), be.encrypt(1700000000))

    def test_ids_are_sequential(self):
        ids = [self._submit() for _ in range(3)]

        self.assertEqual(ids, [1, 2, 3])
        self.assertEqual(len(self.ledger), 3)

    def test_get_returns_record(self):
        record_id = self._submit(trader=5, counterparty=6)

        record = self.ledger.get(record_id)

        self.assertEqual(record.id, record_id)
        self.assertEqual(self.backend.decrypt(record.trader_id), 5)
        self.assertEqual(self.backend.decrypt(record.counterparty_id), 6)
        self.assertEqual(self.backend.decrypt(record.amount), 1000)
        self.assertIsNotNone(record.submitted_at.tzinfo)

    def test_get_unknown(self):
        self.assertIsNone(self.ledger.get(99))
        self.assertIsNone(self.ledger.get(0))

    def test_records_in_id_order(self):
        for trader in range(4):
            self._submit(trader=trader)

        records = self.ledger.records()

        self.assertEqual([r.id for r in records], [1, 2, 3, 4])
        self.assertEqual([self.backend.decrypt(r.trader_id) for r in records], [0, 1, 2, 3])

    def test_records_are_immutable(self):
        record = self.ledger.get(self._submit())

        with self.assertRaises(Exception):
            record.amount = self.backend.encrypt(1)

    def test_non_integer_ciphertext_rejected(self):
        be = self.backend
        self._submit()

        with self.assertRaises(InvalidCiphertext):
            self.ledger.submit(be.encrypt_bool(True), be.encrypt(1),
                               be.encrypt(42), be.encrypt(1000), be.encrypt(1700000000))
        with self.assertRaises(InvalidCiphertext):
            self.ledger.submit(be.encrypt(0), be.encrypt(1), be.encrypt(42), "euint32:00", be.encrypt(1))

        self.assertEqual(len(self.ledger), 1)
        self.assertEqual(self._submit(), 2)

    def test_submission_event(self):
        events = []
        self.ledger.subscribe(lambda event, payload: events.append((event, payload)))

        record_id = self._submit()

        self.assertEqual(events, [("transaction_submitted", {"record_id": record_id})])

    def test_to_dict_uses_wire_form(self):
        record = self.ledger.get(self._submit())

        d = record.to_dict()

        for name in ENCRYPTED_FIELDS:
            self.assertEqual(Ciphertext.from_hex(d[name]), getattr(record, name))
        self.assertTrue(d["submitted_at"].endswith("Z"))

    def test_concurrent_submissions_get_unique_ids(self):
        ids = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                record_id = self._submit()
                with lock:
                    ids.append(record_id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(ids), list(range(1, 41)))


class TestInMemoryLedger(LedgerContract, unittest.TestCase):

    def make_ledger(self):
        return InMemoryTransactionLedger()


class TestSqliteLedger(LedgerContract, unittest.TestCase):

    def make_ledger(self):
        ledger = SqliteTransactionLedger(":memory:")
        self.addCleanup(ledger.close)
        return ledger


class TestSqlitePersistence(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp)
        self.path = os.path.join(self.tmp, "data", "ledger.db")
        self.backend = SealedIntegerBackend()

    def _submit(self, ledger):
        be = self.backend
        return ledger.submit(be.encrypt(1), be.encrypt(2), be.encrypt(3), be.encrypt(4), be.encrypt(5))

    def test_records_survive_reopen(self):
        ledger = SqliteTransactionLedger(self.path)
        first = self._submit(ledger)
        ledger.close()

        reopened = SqliteTransactionLedger(self.path)
        self.addCleanup(reopened.close)

        self.assertEqual(len(reopened), 1)
        self.assertEqual(self.backend.decrypt(reopened.get(first).security_id), 3)
        self.assertEqual(self._submit(reopened), first + 1)


class TestCreateLedger(unittest.TestCase):

    def test_memory(self):
        self.assertIsInstance(create_ledger("memory"), InMemoryTransactionLedger)

    def test_sqlite(self):
        ledger = create_ledger("sqlite", ":memory:")
        self.addCleanup(ledger.close)
        self.assertIsInstance(ledger, SqliteTransactionLedger)

    def test_sqlite_requires_path(self):
        with self.assertRaises(ValueError):
            create_ledger("sqlite")

    def test_unknown_backend(self):
        with self.assertRaises(ValueError):
            create_ledger("postgres")


if __name__ == "__main__":
    unittest.main(verbosity=2)
