"""
RingGuard Decryption Proof and Oracle Test Suite

Critical invariant tested:
    A PROOF AUTHENTICATES EXACTLY ONE (REQUEST ID, PLAINTEXT BATCH) PAIR
"""

import os
import shutil
import tempfile
import unittest

import requests

from ringguard import (
    DecryptionProof,
    HttpDecryptionOracle,
    InvalidCiphertext,
    InvalidRequest,
    LocalDecryptionOracle,
    OracleProofVerifier,
    OracleSigningKey,
    OracleUnavailable,
    SealedIntegerBackend,
)
from ringguard.canonicalization import batch_digest, canonicalize, decryption_message
from ringguard.fhe import Ciphertext
from ringguard.keys import b64e


class TestCanonicalization(unittest.TestCase):

    def test_decryption_message_is_canonical(self):
        self.assertEqual(
            decryption_message("req-1", [1, 2, 0, 0, 3]),
            b'{"plaintexts":[1,2,0,0,3],"request_id":"req-1"}'
        )

    def test_floats_rejected(self):
        with self.assertRaises(ValueError):
            canonicalize({"score": 1.5})

    def test_batch_digest_depends_on_order(self):
        self.assertNotEqual(batch_digest(["euint32:aa", "euint32:bb"]),
                            batch_digest(["euint32:bb", "euint32:aa"]))
        self.assertTrue(batch_digest([]).startswith("sha256:"))


class TestCiphertextWireForm(unittest.TestCase):

    def test_round_trip(self):
        ct = SealedIntegerBackend().encrypt(12)

        self.assertEqual(Ciphertext.from_hex(ct.to_hex()), ct)

    def test_malformed(self):
        for value in ("", "euint32", "euint64:00ff", "euint32:zz", "euint32:", None):
            with self.assertRaises(InvalidCiphertext):
                Ciphertext.from_hex(value)

    def test_foreign_ciphertext_rejected(self):
        ours, theirs = SealedIntegerBackend(), SealedIntegerBackend()

        with self.assertRaises(InvalidCiphertext):
            ours.add(ours.encrypt(1), theirs.encrypt(1))

    def test_kind_mismatch_rejected(self):
        be = SealedIntegerBackend()

        with self.assertRaises(InvalidCiphertext):
            be.add(be.encrypt(1), be.encrypt_bool(True))
        with self.assertRaises(InvalidCiphertext):
            be.select(be.encrypt_bool(True), be.encrypt(1), be.encrypt_bool(False))

    def test_wrapping_arithmetic(self):
        be = SealedIntegerBackend()

        self.assertEqual(be.decrypt(be.add(be.encrypt(2 ** 32 - 1), be.encrypt(2))), 1)
        self.assertEqual(be.decrypt(be.sub(be.encrypt(0), be.encrypt(1))), 2 ** 32 - 1)


class TestDecryptionProofs(unittest.TestCase):

    def setUp(self):
        self.key = OracleSigningKey.generate("oracle-01")
        self.verifier = OracleProofVerifier.from_trust_store(self.key.trust_store())

    def test_valid_proof(self):
        proof = self.key.sign_decryption("req-1", [1, 2, 0, 0, 3])

        self.assertTrue(self.verifier.verify("req-1", [1, 2, 0, 0, 3], proof))

    def test_tampered_plaintexts(self):
        proof = self.key.sign_decryption("req-1", [1, 2, 0, 0, 3])

        self.assertFalse(self.verifier.verify("req-1", [1, 2, 0, 0, 4], proof))
        self.assertFalse(self.verifier.verify("req-1", [2, 1, 0, 0, 3], proof))

    def test_proof_bound_to_request(self):
        proof = self.key.sign_decryption("req-1", [0])

        self.assertFalse(self.verifier.verify("req-2", [0], proof))

    def test_untrusted_key(self):
        impostor = OracleSigningKey.generate("oracle-01")
        proof = impostor.sign_decryption("req-1", [0])

        self.assertFalse(self.verifier.verify("req-1", [0], proof))

    def test_unknown_kid(self):
        proof = self.key.sign_decryption("req-1", [0])
        proof.kid = "oracle-99"

        self.assertFalse(self.verifier.verify("req-1", [0], proof))

    def test_malformed_proofs(self):
        good = self.key.sign_decryption("req-1", [0])
        for proof in [
            None,
            DecryptionProof(kid="oracle-01", sig_b64="not base64!!"),
            DecryptionProof(kid="oracle-01", sig_b64=b64e(b"short")),
            DecryptionProof(kid="oracle-01", sig_b64=good.sig_b64, alg="rsa"),
        ]:
            self.assertFalse(self.verifier.verify("req-1", [0], proof))

    def test_proof_dict_round_trip(self):
        proof = self.key.sign_decryption("req-1", [7])

        restored = DecryptionProof.from_dict(proof.to_dict())

        self.assertTrue(self.verifier.verify("req-1", [7], restored))

    def test_key_file_round_trip(self):
        tmp = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tmp)
        path = os.path.join(tmp, "secrets", "oracle.json")

        self.key.to_file(path)
        loaded = OracleSigningKey.from_file(path)

        self.assertEqual(loaded.kid, "oracle-01")
        self.assertEqual(loaded.public_key_b64, self.key.public_key_b64)
        self.assertTrue(self.verifier.verify("r", [5], loaded.sign_decryption("r", [5])))


class TestLocalOracle(unittest.TestCase):

    def setUp(self):
        self.backend = SealedIntegerBackend()
        self.key = OracleSigningKey.generate("oracle-01")
        self.verifier = OracleProofVerifier.from_trust_store(self.key.trust_store())
        self.delivered = []
        self.oracle = LocalDecryptionOracle(
            self.backend, self.key,
            callback=lambda *args: self.delivered.append(args)
        )

    def _batch(self, *values):
        return [self.backend.encrypt(v) for v in values]

    def test_request_returns_immediately(self):
        request_id = self.oracle.request_decryption(self._batch(1, 2))

        self.assertEqual(self.oracle.pending(), [request_id])
        self.assertEqual(self.delivered, [])

    def test_fulfill_delivers_signed_plaintexts(self):
        request_id = self.oracle.request_decryption(self._batch(4, 5, 6))

        self.oracle.fulfill(request_id)

        (rid, plaintexts, proof), = self.delivered
        self.assertEqual(rid, request_id)
        self.assertEqual(plaintexts, [4, 5, 6])
        self.assertTrue(self.verifier.verify(rid, plaintexts, proof))
        self.assertEqual(self.oracle.pending(), [])

    def test_request_ids_unique(self):
        ids = {self.oracle.request_decryption(self._batch(0)) for _ in range(20)}

        self.assertEqual(len(ids), 20)

    def test_fulfill_all_in_order(self):
        first = self.oracle.request_decryption(self._batch(1))
        second = self.oracle.request_decryption(self._batch(2))

        self.assertEqual(self.oracle.fulfill_all(), 2)
        self.assertEqual([d[0] for d in self.delivered], [first, second])

    def test_failed_delivery_stays_queued(self):
        def refuse(*args):
            raise InvalidRequest("busy")

        self.oracle.set_callback(refuse)
        request_id = self.oracle.request_decryption(self._batch(1))

        with self.assertRaises(InvalidRequest):
            self.oracle.fulfill(request_id)
        self.assertEqual(self.oracle.pending(), [request_id])

    def test_unknown_request(self):
        with self.assertRaises(InvalidRequest):
            self.oracle.decrypt("nope")

    def test_discard(self):
        request_id = self.oracle.request_decryption(self._batch(1))

        self.oracle.discard(request_id)

        self.assertEqual(self.oracle.pending(), [])


class FakeResponse:

    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        if self.error is not None:
            raise self.error
        return self.response


class TestHttpOracle(unittest.TestCase):

    def setUp(self):
        self.backend = SealedIntegerBackend()
        self.batch = [self.backend.encrypt(1), self.backend.encrypt(2)]

    def _oracle(self, session):
        return HttpDecryptionOracle("https://gateway.example/", "https://ringguard.example/oracle/callback",
                                    timeout_seconds=2.0, session=session)

    def test_posts_batch_and_returns_request_id(self):
        session = FakeSession(FakeResponse(200, {"request_id": "gw-123"}))

        request_id = self._oracle(session).request_decryption(self.batch)

        self.assertEqual(request_id, "gw-123")
        (url, body, timeout), = session.calls
        self.assertEqual(url, "https://gateway.example/decryptions")
        self.assertEqual(body["ciphertexts"], [ct.to_hex() for ct in self.batch])
        self.assertEqual(body["callback_url"], "https://ringguard.example/oracle/callback")
        self.assertEqual(timeout, 2.0)

    def test_transport_errors_become_oracle_unavailable(self):
        for session in [
            FakeSession(error=requests.ConnectionError("refused")),
            FakeSession(FakeResponse(503, {"error": "down"})),
            FakeSession(FakeResponse(200, None)),
            FakeSession(FakeResponse(200, {"status": "queued"})),
            FakeSession(FakeResponse(200, {"request_id": ""})),
        ]:
            with self.assertRaises(OracleUnavailable):
                self._oracle(session).request_decryption(self.batch)

    def test_requires_base_url(self):
        with self.assertRaises(ValueError):
            HttpDecryptionOracle("", "https://ringguard.example/oracle/callback")


if __name__ == "__main__":
    unittest.main(verbosity=2)
