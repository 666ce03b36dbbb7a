"""
RingGuard service facade.

One ``RingGuard`` owns one object graph: backend, ledger, matrix, engine,
result store, oracle and reveal protocol. Nothing is a module-level
singleton; tests build as many independent instances as they need.
"""

import logging
import os
import secrets
import sqlite3
import time
from typing import Any, Callable, Dict, List, Optional

from . import config
from .engine import EncryptedBundle, RingDetectionEngine
from .errors import DuplicateAnalysis
from .fhe import Ciphertext, EncryptedIntegerBackend, SealedIntegerBackend
from .keys import DecryptionProof, OracleProofVerifier, OracleSigningKey
from .ledger import TransactionLedger, create_ledger
from .logging_config import audit_log
from .matrix import AdjacencyMatrix
from .oracle import DecryptionOracle, HttpDecryptionOracle, LocalDecryptionOracle
from .results import AnalysisResultStore, DecryptedResult, RingStatus
from .reveal import PendingRequest, RevealProtocol

logger = logging.getLogger(__name__)


class RingGuard:
    """
    Confidential ring detection service.

    Usage:
        guard = RingGuard.local()
        guard.initialize_matrix(4)
        guard.set_edge(0, 1, guard.backend.encrypt(1))
        analysis_id = guard.run_ring_detection(guard.backend.encrypt(0))
        guard.request_reveal(analysis_id)
        guard.oracle.fulfill_all()
        guard.get_decrypted_result(analysis_id)
    """

    def __init__(
        self,
        backend: EncryptedIntegerBackend,
        oracle: DecryptionOracle,
        verifier: OracleProofVerifier,
        ledger: Optional[TransactionLedger] = None,
        request_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        max_matrix_size: Optional[int] = None
    ):
        self.backend = backend
        self.ledger = ledger if ledger is not None else create_ledger("memory")
        self.matrix = AdjacencyMatrix(backend, max_size=max_matrix_size)
        self.engine = RingDetectionEngine(self.matrix, backend)
        self.results = AnalysisResultStore()
        self.oracle = oracle
        self.reveal = RevealProtocol(
            self.results,
            oracle,
            verifier,
            request_ttl_seconds=request_ttl_seconds,
            clock=clock
        )
        if isinstance(oracle, LocalDecryptionOracle):
            oracle.set_callback(self._local_callback)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def local(
        cls,
        kid: str = "oracle-local-ed25519",
        ledger: Optional[TransactionLedger] = None,
        request_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ) -> "RingGuard":
        """Self-contained instance with a sealed backend and an in-process oracle."""
        backend = SealedIntegerBackend()
        signing_key = OracleSigningKey.generate(kid)
        oracle = LocalDecryptionOracle(backend, signing_key)
        verifier = OracleProofVerifier.from_trust_store(signing_key.trust_store())
        return cls(backend, oracle, verifier, ledger=ledger,
                   request_ttl_seconds=request_ttl_seconds, clock=clock)

    @classmethod
    def from_config(cls) -> "RingGuard":
        """Build the instance described by the environment (see ``config``)."""
        backend = SealedIntegerBackend()
        ledger = create_ledger(config.LEDGER_BACKEND, config.LEDGER_DB_PATH)

        if config.ORACLE_BACKEND == "http":
            oracle: DecryptionOracle = HttpDecryptionOracle(
                config.ORACLE_URL,
                config.ORACLE_CALLBACK_URL,
                timeout_seconds=config.ORACLE_TIMEOUT_SECONDS
            )
            verifier = OracleProofVerifier.from_trust_store(config.load_trust_store())
        elif config.ORACLE_BACKEND == "local":
            if config.is_production():
                logger.warning("local decryption oracle configured in production")
            if os.path.exists(config.ORACLE_KEY_PATH):
                signing_key = OracleSigningKey.from_file(config.ORACLE_KEY_PATH)
            else:
                logger.warning("no oracle key at %s, generating an ephemeral one", config.ORACLE_KEY_PATH)
                signing_key = OracleSigningKey.generate(config.ORACLE_KID)
            oracle = LocalDecryptionOracle(backend, signing_key)
            verifier = OracleProofVerifier.from_trust_store(signing_key.trust_store())
        else:
            raise ValueError(f"Unknown oracle backend: {config.ORACLE_BACKEND}")

        return cls(backend, oracle, verifier, ledger=ledger,
                   request_ttl_seconds=config.request_ttl(),
                   max_matrix_size=config.MATRIX_MAX_SIZE)

    # ------------------------------------------------------------------
    # Ledger and matrix
    # ------------------------------------------------------------------

    def submit_transaction(
        self,
        trader_id: Ciphertext,
        counterparty_id: Ciphertext,
        security_id: Ciphertext,
        amount: Ciphertext,
        timestamp: Ciphertext
    ) -> int:
        """Append one encrypted trade. Raises InvalidCiphertext before appending anything unusable."""
        for ct in (trader_id, counterparty_id, security_id, amount, timestamp):
            self.backend.validate(ct)
        record_id = self.ledger.submit(trader_id, counterparty_id, security_id, amount, timestamp)
        audit_log.transaction_submitted(record_id)
        return record_id

    def initialize_matrix(self, size: int) -> None:
        self.matrix.initialize(size)
        audit_log.matrix_initialized(size)

    def set_edge(self, from_node: int, to_node: int, weight: Ciphertext) -> None:
        self.matrix.set_edge(from_node, to_node, weight)

    def get_edge(self, i: int, j: int) -> Ciphertext:
        return self.matrix.get_edge(i, j)

    def ingest_ledger(self) -> int:
        """Fold every ledger record into the current matrix as encrypted trade counts."""
        count = self.engine.ingest(self.ledger.records())
        audit_log.ledger_ingested(count, self.matrix.size)
        return count

    # ------------------------------------------------------------------
    # Analyses
    # ------------------------------------------------------------------

    def run_ring_detection(self, start_node: Ciphertext, analysis_id: Optional[str] = None) -> str:
        """
        Run one analysis and store its encrypted result.

        Raises:
            MatrixNotInitialized: if no matrix exists
            DuplicateAnalysis: if ``analysis_id`` already has a result
            InvalidCiphertext: if ``start_node`` is not usable by the backend
        """
        self.backend.validate(start_node)
        analysis_id = analysis_id or secrets.token_hex(8)
        if self.results.has(analysis_id):
            raise DuplicateAnalysis(f"analysis {analysis_id} already has a result")
        bundle = self.engine.detect(start_node)
        self.results.store_bundle(analysis_id, bundle)
        audit_log.analysis_complete(analysis_id, bundle.rounds)
        return analysis_id

    def get_encrypted_result(self, analysis_id: str) -> EncryptedBundle:
        return self.results.get_encrypted(analysis_id)

    def get_decrypted_result(self, analysis_id: str) -> DecryptedResult:
        return self.results.get_decrypted(analysis_id)

    # ------------------------------------------------------------------
    # Reveal
    # ------------------------------------------------------------------

    def request_reveal(self, analysis_id: str) -> PendingRequest:
        return self.reveal.request_reveal(analysis_id)

    def on_decryption_callback(
        self,
        request_id: str,
        plaintexts: List[int],
        proof: Optional[DecryptionProof]
    ) -> DecryptedResult:
        return self.reveal.on_decryption_callback(request_id, plaintexts, proof)

    def cancel_reveal(self, analysis_id: str) -> PendingRequest:
        return self.reveal.cancel_request(analysis_id)

    def _local_callback(self, request_id, plaintexts, proof):
        return self.on_decryption_callback(request_id, plaintexts, proof)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def review_ring(self, analysis_id: str, status: RingStatus) -> RingStatus:
        status = self.results.review(analysis_id, status)
        audit_log.review_recorded(analysis_id, status.value)
        return status

    def ring_status(self, analysis_id: str) -> RingStatus:
        return self.results.status(analysis_id)

    def ring_summary(self) -> Dict[str, int]:
        return self.results.summary()

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        """True if the ledger can be read."""
        try:
            len(self.ledger)
        except sqlite3.Error:
            logger.exception("ledger unavailable")
            return False
        return True

    def health(self) -> Dict[str, Any]:
        available = self.is_available()
        return {
            "status": "ok" if available else "degraded",
            "ledger_records": len(self.ledger) if available else None,
            "matrix_initialized": self.matrix.is_initialized,
            "matrix_size": self.matrix.size,
            "pending_reveals": len(self.reveal.pending_requests()),
            "oracle": type(self.oracle).__name__,
        }
