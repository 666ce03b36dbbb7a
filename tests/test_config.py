"""
RingGuard configuration and service construction tests.
"""

import json
import logging
import os
import shutil
import tempfile
import unittest

from ringguard import (
    HttpDecryptionOracle,
    LocalDecryptionOracle,
    OracleSigningKey,
    RingGuard,
    SqliteTransactionLedger,
    config,
)
from ringguard.logging_config import StructuredFormatter, audit_log, set_request_id


class ConfigTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmp)

    def override(self, **values):
        for name, value in values.items():
            self.addCleanup(setattr, config, name, getattr(config, name))
            setattr(config, name, value)


class TestConfig(ConfigTestCase):

    def test_request_ttl(self):
        self.override(REVEAL_REQUEST_TTL_SECONDS=120)
        self.assertEqual(config.request_ttl(), 120)

        self.override(REVEAL_REQUEST_TTL_SECONDS=0)
        self.assertIsNone(config.request_ttl())

    def test_load_trust_store(self):
        path = os.path.join(self.tmp, "trust.json")
        key = OracleSigningKey.generate("oracle-01")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(key.trust_store(), f)

        self.assertEqual(config.load_trust_store(path)["oracle_keys"], {"oracle-01": key.public_key_b64})

    def test_trust_store_requires_oracle_keys(self):
        path = os.path.join(self.tmp, "trust.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"keys": []}, f)

        with self.assertRaises(ValueError):
            config.load_trust_store(path)

    def test_validate_config(self):
        self.override(ORACLE_BACKEND="http", ORACLE_TRUST_STORE_PATH=os.path.join(self.tmp, "missing.json"),
                      LEDGER_BACKEND="sqlite", LEDGER_DB_PATH=os.path.join(self.tmp, "ledger.db"))

        self.assertEqual(config.validate_config(), {"oracle_trust_store": False, "ledger_db_dir": True})


class TestFromConfig(ConfigTestCase):

    def test_local_oracle_with_key_file(self):
        key_path = os.path.join(self.tmp, "oracle.json")
        OracleSigningKey.generate("oracle-file").to_file(key_path)
        self.override(ORACLE_BACKEND="local", ORACLE_KEY_PATH=key_path, LEDGER_BACKEND="memory",
                      REVEAL_REQUEST_TTL_SECONDS=30)

        guard = RingGuard.from_config()

        self.assertIsInstance(guard.oracle, LocalDecryptionOracle)
        self.assertEqual(guard.reveal.request_ttl_seconds, 30)
        guard.initialize_matrix(2)
        guard.set_edge(0, 1, guard.backend.encrypt(1))
        guard.set_edge(1, 0, guard.backend.encrypt(1))
        analysis_id = guard.run_ring_detection(guard.backend.encrypt(0))
        guard.request_reveal(analysis_id)
        guard.oracle.fulfill_all()
        self.assertEqual(guard.get_decrypted_result(analysis_id).ring_members, [1, 0])

    def test_http_oracle_with_sqlite_ledger(self):
        trust_path = os.path.join(self.tmp, "trust.json")
        with open(trust_path, "w", encoding="utf-8") as f:
            json.dump(OracleSigningKey.generate("gateway").trust_store(), f)
        self.override(ORACLE_BACKEND="http", ORACLE_URL="https://gateway.example",
                      ORACLE_CALLBACK_URL="https://ringguard.example/oracle/callback",
                      ORACLE_TRUST_STORE_PATH=trust_path,
                      LEDGER_BACKEND="sqlite", LEDGER_DB_PATH=os.path.join(self.tmp, "db", "ledger.db"))

        guard = RingGuard.from_config()
        self.addCleanup(guard.ledger.close)

        self.assertIsInstance(guard.oracle, HttpDecryptionOracle)
        self.assertIsInstance(guard.ledger, SqliteTransactionLedger)
        self.assertTrue(guard.is_available())

    def test_unknown_oracle_backend(self):
        self.override(ORACLE_BACKEND="carrier-pigeon", LEDGER_BACKEND="memory")

        with self.assertRaises(ValueError):
            RingGuard.from_config()


class TestStructuredLogging(unittest.TestCase):

    def test_audit_record_is_json_with_request_id(self):
        set_request_id("req-42")
        self.addCleanup(set_request_id, "")

        with self.assertLogs("ringguard.audit", level="INFO") as captured:
            audit_log.reveal_requested("a1", "oracle-7", 5, "sha256:abc")

        entry = json.loads(StructuredFormatter().format(captured.records[0]))
        self.assertEqual(entry["event_type"], "REVEAL_REQUESTED")
        self.assertEqual(entry["analysis_id"], "a1")
        self.assertEqual(entry["oracle_request_id"], "oracle-7")
        self.assertEqual(entry["batch_size"], 5)
        self.assertEqual(entry["request_id"], "req-42")

    def test_security_event_level(self):
        with self.assertLogs("ringguard.audit", level="INFO") as captured:
            audit_log.security_event("DECRYPTION_PROOF_REJECTED", severity="high", analysis_id="a1")

        self.assertEqual(captured.records[0].levelno, logging.ERROR)


if __name__ == "__main__":
    unittest.main(verbosity=2)
