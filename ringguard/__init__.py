"""
RingGuard: Confidential Trading-Ring Detection

Version: 0.1.0

Detects cyclic trading relationships ("rings") across encrypted transaction
records without ever decrypting trader identities mid-analysis. Only the
final ring membership and risk score are disclosed, once, under a decryption
proof signed by a trusted oracle.

Components:
- EncryptedIntegerBackend: the abstract encrypted-integer capability
- TransactionLedger: append-only store of encrypted trades
- AdjacencyMatrix: encrypted trading graph behind a readers/writer lock
- RingDetectionEngine: oblivious, fixed-round ring traversal
- AnalysisResultStore: encrypted and revealed results, ring review status
- RevealProtocol: one-shot, proof-checked decryption of a result

Usage:
    from ringguard import RingGuard

    guard = RingGuard.local()
    be = guard.backend

    guard.initialize_matrix(4)
    guard.set_edge(0, 1, be.encrypt(1))
    guard.set_edge(1, 2, be.encrypt(1))
    guard.set_edge(2, 0, be.encrypt(1))

    analysis_id = guard.run_ring_detection(be.encrypt(0))
    guard.request_reveal(analysis_id)
    guard.oracle.fulfill_all()          # the oracle answers out of band

    result = guard.get_decrypted_result(analysis_id)
    # result.ring_members == [1, 2, 0], result.risk_score == 3
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

# Capability
from .fhe import (
    Ciphertext,
    EncryptedIntegerBackend,
    SealedIntegerBackend,
    EUINT32,
    EBOOL,
)

# Errors
from .errors import (
    RingGuardError,
    InvalidSize,
    IndexOutOfRange,
    MatrixNotInitialized,
    DuplicateAnalysis,
    AnalysisNotComplete,
    AlreadyRevealed,
    RequestAlreadyPending,
    InvalidRequest,
    ProofVerificationFailed,
    InvalidReview,
    OracleUnavailable,
    InvalidCiphertext,
)

# Stores
from .ledger import (
    TransactionRecord,
    TransactionLedger,
    InMemoryTransactionLedger,
    SqliteTransactionLedger,
    create_ledger,
)
from .matrix import AdjacencyMatrix
from .results import AnalysisResultStore, DecryptedResult, RingStatus

# Engine
from .engine import RingDetectionEngine, EncryptedBundle, SENTINEL

# Reveal
from .keys import DecryptionProof, OracleSigningKey, OracleProofVerifier
from .oracle import DecryptionOracle, LocalDecryptionOracle, HttpDecryptionOracle
from .reveal import RevealProtocol, PendingRequest

# Facade
from .service import RingGuard


__all__ = [
    "__version__",

    # Capability
    "Ciphertext",
    "EncryptedIntegerBackend",
    "SealedIntegerBackend",
    "EUINT32",
    "EBOOL",

    # Errors
    "RingGuardError",
    "InvalidSize",
    "IndexOutOfRange",
    "MatrixNotInitialized",
    "DuplicateAnalysis",
    "AnalysisNotComplete",
    "AlreadyRevealed",
    "RequestAlreadyPending",
    "InvalidRequest",
    "ProofVerificationFailed",
    "InvalidReview",
    "OracleUnavailable",
    "InvalidCiphertext",

    # Stores
    "TransactionRecord",
    "TransactionLedger",
    "InMemoryTransactionLedger",
    "SqliteTransactionLedger",
    "create_ledger",
    "AdjacencyMatrix",
    "AnalysisResultStore",
    "DecryptedResult",
    "RingStatus",

    # Engine
    "RingDetectionEngine",
    "EncryptedBundle",
    "SENTINEL",

    # Reveal
    "DecryptionProof",
    "OracleSigningKey",
    "OracleProofVerifier",
    "DecryptionOracle",
    "LocalDecryptionOracle",
    "HttpDecryptionOracle",
    "RevealProtocol",
    "PendingRequest",

    # Facade
    "RingGuard",
]
