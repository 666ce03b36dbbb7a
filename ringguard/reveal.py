"""
RingGuard Decryption Request/Reveal Protocol

Per analysis:  Complete(unrevealed) -> RequestIssued -> Revealed

Two independent entry points, neither of which waits for the other:

    request_reveal(analysis_id)                      -> PendingRequest
    on_decryption_callback(request_id, plaintexts, proof) -> DecryptedResult

The batch sent to the oracle is the ring members followed by the risk score.
The callback decodes purely by position: everything but the last plaintext
is a member slot, the last one is the score.

Token consumption is an atomic pop on the request map, so of two concurrent
deliveries of one callback exactly one can reveal. A callback whose proof
fails verification changes nothing and leaves the request pending for a
correctly proved redelivery.

Stale requests: with a TTL configured, a request pending longer than the TTL
may be replaced by a fresh ``request_reveal``; the old request id is then
dead and its late callback fails with InvalidRequest. Without a TTL a request
stays pending until answered or cancelled.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .canonicalization import batch_digest
from .errors import (
    AlreadyRevealed,
    InvalidRequest,
    ProofVerificationFailed,
    RequestAlreadyPending,
)
from .keys import DecryptionProof, OracleProofVerifier
from .logging_config import audit_log
from .oracle import DecryptionOracle
from .results import AnalysisResultStore, DecryptedResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingRequest:
    """One outstanding decryption round-trip."""
    request_id: str
    analysis_id: str
    batch_size: int
    batch_digest: str
    issued_at: float

    def to_dict(self):
        return {
            "request_id": self.request_id,
            "analysis_id": self.analysis_id,
            "batch_size": self.batch_size,
            "batch_digest": self.batch_digest,
            "issued_at": self.issued_at,
        }


def split_plaintexts(plaintexts: Sequence[int]):
    """
    Decode a revealed batch into (members, score).

    Real members form a prefix of the member slots and the score is the ring
    length, so slots past the score are padding and are dropped.
    """
    members, score = list(plaintexts[:-1]), plaintexts[-1]
    keep = max(0, min(score, len(members)))
    return members[:keep], score


class RevealProtocol:
    """Coordinates one-shot, proof-checked reveals of analysis results."""

    def __init__(
        self,
        results: AnalysisResultStore,
        oracle: DecryptionOracle,
        verifier: OracleProofVerifier,
        request_ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time
    ):
        self.results = results
        self.oracle = oracle
        self.verifier = verifier
        self.request_ttl_seconds = request_ttl_seconds
        self._clock = clock
        self._requests: Dict[str, PendingRequest] = {}
        # analysis id -> request id; None while the oracle call is in flight,
        # a consumed request id while its reveal is being committed
        self._by_analysis: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_reveal(self, analysis_id: str) -> PendingRequest:
        """
        Ask the oracle to decrypt an analysis result.

        Raises:
            AnalysisNotComplete: no encrypted result for ``analysis_id``
            AlreadyRevealed: the result was already revealed
            RequestAlreadyPending: a live request exists for ``analysis_id``
            OracleUnavailable: the oracle refused the batch (nothing recorded)
        """
        bundle = self.results.get_encrypted(analysis_id)

        with self._lock:
            if self.results.is_revealed(analysis_id):
                raise AlreadyRevealed(f"analysis {analysis_id} is already revealed")
            if analysis_id in self._by_analysis:
                current = self._requests.get(self._by_analysis[analysis_id] or "")
                if current is None or not self._is_stale(current):
                    raise RequestAlreadyPending(f"analysis {analysis_id} has a pending decryption request")
                self._drop(current)
                audit_log.security_event(
                    "STALE_REVEAL_REQUEST_REPLACED",
                    severity="low",
                    analysis_id=analysis_id,
                    oracle_request_id=current.request_id
                )
            self._by_analysis[analysis_id] = None

        batch = bundle.decryption_batch()
        digest = batch_digest([ct.to_hex() for ct in batch])
        try:
            request_id = self.oracle.request_decryption(batch)
        except Exception:
            with self._lock:
                self._by_analysis.pop(analysis_id, None)
            raise

        pending = PendingRequest(
            request_id=request_id,
            analysis_id=analysis_id,
            batch_size=len(batch),
            batch_digest=digest,
            issued_at=self._clock(),
        )
        with self._lock:
            self._requests[request_id] = pending
            self._by_analysis[analysis_id] = request_id

        audit_log.reveal_requested(analysis_id, request_id, len(batch), digest)
        return pending

    def cancel_request(self, analysis_id: str) -> PendingRequest:
        """Clear the pending request of ``analysis_id`` so a fresh one may be issued."""
        with self._lock:
            request_id = self._by_analysis.get(analysis_id)
            pending = self._requests.get(request_id) if request_id else None
            if pending is None:
                raise InvalidRequest(f"analysis {analysis_id} has no pending request")
            self._drop(pending)
        audit_log.security_event(
            "REVEAL_REQUEST_CANCELLED",
            severity="low",
            analysis_id=analysis_id,
            oracle_request_id=pending.request_id
        )
        return pending

    def expire_stale(self) -> List[PendingRequest]:
        """Drop every request older than the TTL. Returns the dropped requests."""
        with self._lock:
            stale = [p for p in self._requests.values() if self._is_stale(p)]
            for pending in stale:
                self._drop(pending)
        for pending in stale:
            audit_log.security_event(
                "STALE_REVEAL_REQUEST_EXPIRED",
                severity="low",
                analysis_id=pending.analysis_id,
                oracle_request_id=pending.request_id
            )
        return stale

    def pending_requests(self) -> List[PendingRequest]:
        with self._lock:
            return list(self._requests.values())

    def pending_for(self, analysis_id: str) -> Optional[PendingRequest]:
        with self._lock:
            request_id = self._by_analysis.get(analysis_id)
            return self._requests.get(request_id) if request_id else None

    def _is_stale(self, pending: PendingRequest) -> bool:
        if self.request_ttl_seconds is None or self.request_ttl_seconds <= 0:
            return False
        return self._clock() - pending.issued_at >= self.request_ttl_seconds

    def _drop(self, pending: PendingRequest) -> None:
        # Caller holds self._lock.
        self._requests.pop(pending.request_id, None)
        if self._by_analysis.get(pending.analysis_id) == pending.request_id:
            del self._by_analysis[pending.analysis_id]

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def on_decryption_callback(
        self,
        request_id: str,
        plaintexts: Sequence[int],
        proof: Optional[DecryptionProof]
    ) -> DecryptedResult:
        """
        Accept the oracle's answer to a decryption request.

        Raises:
            InvalidRequest: unknown, consumed or expired request id, or a batch
                of the wrong shape
            ProofVerificationFailed: the proof does not authenticate
                ``(request_id, plaintexts)``; the request stays pending
            AlreadyRevealed: the analysis was revealed by another path
        """
        with self._lock:
            pending = self._requests.get(request_id)
        if pending is None:
            audit_log.security_event(
                "UNKNOWN_DECRYPTION_CALLBACK",
                severity="medium",
                oracle_request_id=request_id
            )
            raise InvalidRequest(f"no pending decryption request {request_id}")

        values = list(plaintexts)
        if any(not isinstance(v, int) or isinstance(v, bool) or v < 0 for v in values):
            raise InvalidRequest("plaintexts must be non-negative integers")
        if len(values) != pending.batch_size:
            raise InvalidRequest(
                f"expected {pending.batch_size} plaintexts for {request_id}, got {len(values)}"
            )

        if not self.verifier.verify(request_id, values, proof):
            audit_log.security_event(
                "DECRYPTION_PROOF_REJECTED",
                severity="high",
                analysis_id=pending.analysis_id,
                oracle_request_id=request_id,
                kid=getattr(proof, "kid", None)
            )
            raise ProofVerificationFailed(f"proof for {request_id} did not verify")

        with self._lock:
            claimed = self._requests.pop(request_id, None)
            if claimed is None:
                raise InvalidRequest(f"decryption request {request_id} was already consumed")
        # The analysis stays mapped to the consumed id until the reveal is
        # committed, so a concurrent request_reveal fails RequestAlreadyPending.

        members, score = split_plaintexts(values)
        try:
            revealed = self.results.mark_revealed(claimed.analysis_id, members, score)
        finally:
            with self._lock:
                if self._by_analysis.get(claimed.analysis_id) == request_id:
                    del self._by_analysis[claimed.analysis_id]
        audit_log.reveal_completed(claimed.analysis_id, request_id, len(members))
        return revealed
