"""
RingGuard Error Taxonomy

Every core operation fails fast with one of these errors and commits no
partial state. Each error carries a stable ``code`` (used in logs and API
responses) and the HTTP status the API layer maps it to.
"""

from typing import Optional


class RingGuardError(Exception):
    """Base class for all core failures."""

    code = "RINGGUARD_ERROR"
    http_status = 400

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.code, "detail": self.message}


class InvalidSize(RingGuardError):
    code = "INVALID_SIZE"
    http_status = 400


class IndexOutOfRange(RingGuardError):
    code = "INDEX_OUT_OF_RANGE"
    http_status = 400


class MatrixNotInitialized(RingGuardError):
    code = "MATRIX_NOT_INITIALIZED"
    http_status = 409


class DuplicateAnalysis(RingGuardError):
    code = "DUPLICATE_ANALYSIS"
    http_status = 409


class AnalysisNotComplete(RingGuardError):
    code = "ANALYSIS_NOT_COMPLETE"
    http_status = 404


class AlreadyRevealed(RingGuardError):
    code = "ALREADY_REVEALED"
    http_status = 409


class RequestAlreadyPending(RingGuardError):
    code = "REQUEST_ALREADY_PENDING"
    http_status = 409


class InvalidRequest(RingGuardError):
    code = "INVALID_REQUEST"
    http_status = 404


class ProofVerificationFailed(RingGuardError):
    """
    Security-relevant rejection of a decryption callback.

    Raised before any state is touched; the request stays pending.
    """

    code = "PROOF_VERIFICATION_FAILED"
    http_status = 403


class InvalidReview(RingGuardError):
    code = "INVALID_REVIEW"
    http_status = 409


class OracleUnavailable(RingGuardError):
    """The decryption oracle could not accept a batch. Nothing was recorded."""

    code = "ORACLE_UNAVAILABLE"
    http_status = 503


class InvalidCiphertext(RingGuardError):
    """A ciphertext could not be decoded or has the wrong kind for an operation."""

    code = "INVALID_CIPHERTEXT"
    http_status = 400
