"""
RingGuard Analysis Result Store

Holds, per analysis id, the encrypted bundle written once by the engine and
the paired decrypted result written once by the reveal protocol. After a
reveal, an analyst records a review verdict on the ring.
"""

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .engine import EncryptedBundle
from .errors import AlreadyRevealed, AnalysisNotComplete, DuplicateAnalysis, InvalidReview
from .events import EventSource
from .fhe import Ciphertext


class RingStatus(str, Enum):
    """
    Review state of a detected ring.

    SUSPECTED: analysis stored, no verdict yet
    CONFIRMED: analyst confirmed the revealed ring (terminal)
    DISMISSED: analyst dismissed the revealed ring (terminal)
    """
    SUSPECTED = "suspected"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


@dataclass
class DecryptedResult:
    ring_members: List[int] = field(default_factory=list)
    risk_score: int = 0
    revealed: bool = False
    revealed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "ring_members": list(self.ring_members),
            "risk_score": self.risk_score,
            "revealed": self.revealed,
        }
        if self.revealed_at:
            d["revealed_at"] = self.revealed_at.isoformat().replace("+00:00", "Z")
        return d


def _copy(bundle: EncryptedBundle) -> EncryptedBundle:
    # Ciphertexts are frozen; only the member list needs copying.
    return replace(bundle, ring_members=list(bundle.ring_members))


@dataclass
class _Entry:
    bundle: EncryptedBundle
    decrypted: DecryptedResult
    status: RingStatus
    created_at: datetime


class AnalysisResultStore(EventSource):
    """Thread-safe store of analysis results keyed by analysis id."""

    def __init__(self):
        super().__init__()
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.RLock()

    def store(self, analysis_id: str, ring_members: List[Ciphertext], risk_score: Ciphertext) -> EncryptedBundle:
        bundle = EncryptedBundle(ring_members=list(ring_members), risk_score=risk_score, complete=True)
        return self.store_bundle(analysis_id, bundle)

    def store_bundle(self, analysis_id: str, bundle: EncryptedBundle) -> EncryptedBundle:
        """Store a copy of ``bundle``, marked complete. The caller's object is not touched."""
        stored = replace(bundle, ring_members=list(bundle.ring_members), complete=True)
        with self._lock:
            existing = self._entries.get(analysis_id)
            if existing is not None and existing.bundle.complete:
                raise DuplicateAnalysis(f"analysis {analysis_id} already has a result")
            self._entries[analysis_id] = _Entry(
                bundle=stored,
                decrypted=DecryptedResult(),
                status=RingStatus.SUSPECTED,
                created_at=datetime.now(timezone.utc),
            )
        self._emit("analysis_stored", analysis_id=analysis_id, member_slots=len(stored.ring_members))
        return _copy(stored)

    def has(self, analysis_id: str) -> bool:
        with self._lock:
            return analysis_id in self._entries

    def get_encrypted(self, analysis_id: str) -> EncryptedBundle:
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None or not entry.bundle.complete:
                raise AnalysisNotComplete(f"no completed analysis {analysis_id}")
            return _copy(entry.bundle)

    def get_decrypted(self, analysis_id: str) -> DecryptedResult:
        """Never fails: unknown or unrevealed analyses read as not revealed."""
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None:
                return DecryptedResult()
            d = entry.decrypted
            return DecryptedResult(
                ring_members=list(d.ring_members),
                risk_score=d.risk_score,
                revealed=d.revealed,
                revealed_at=d.revealed_at,
            )

    def is_revealed(self, analysis_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(analysis_id)
            return entry is not None and entry.decrypted.revealed

    def mark_revealed(self, analysis_id: str, ring_members: List[int], risk_score: int) -> DecryptedResult:
        """One-way transition to revealed. Only the reveal protocol calls this."""
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None:
                raise AnalysisNotComplete(f"no completed analysis {analysis_id}")
            if entry.decrypted.revealed:
                raise AlreadyRevealed(f"analysis {analysis_id} is already revealed")
            entry.decrypted = DecryptedResult(
                ring_members=list(ring_members),
                risk_score=risk_score,
                revealed=True,
                revealed_at=datetime.now(timezone.utc),
            )
            revealed = entry.decrypted
        self._emit("result_revealed", analysis_id=analysis_id, member_count=len(ring_members))
        return revealed

    def status(self, analysis_id: str) -> RingStatus:
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None:
                raise AnalysisNotComplete(f"no completed analysis {analysis_id}")
            return entry.status

    def review(self, analysis_id: str, status: RingStatus) -> RingStatus:
        """Record an analyst verdict. Only revealed, unreviewed rings can be reviewed."""
        status = RingStatus(status)
        with self._lock:
            entry = self._entries.get(analysis_id)
            if entry is None:
                raise AnalysisNotComplete(f"no completed analysis {analysis_id}")
            if not entry.decrypted.revealed:
                raise InvalidReview(f"analysis {analysis_id} must be revealed before review")
            if status == RingStatus.SUSPECTED or entry.status != RingStatus.SUSPECTED:
                raise InvalidReview(f"cannot move {analysis_id} from {entry.status.value} to {status.value}")
            entry.status = status
        self._emit("ring_reviewed", analysis_id=analysis_id, status=status.value)
        return status

    def summary(self) -> Dict[str, int]:
        with self._lock:
            counts = {s.value: 0 for s in RingStatus}
            revealed = 0
            for entry in self._entries.values():
                counts[entry.status.value] += 1
                if entry.decrypted.revealed:
                    revealed += 1
            counts["total"] = len(self._entries)
            counts["revealed"] = revealed
            return counts

    def analysis_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())
