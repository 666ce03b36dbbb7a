from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from . import config
from .errors import InvalidCiphertext
from .fhe import EUINT32, Ciphertext
from .keys import DecryptionProof
from .results import RingStatus


def _ciphertext(value: str) -> str:
    try:
        ct = Ciphertext.from_hex(value)
    except InvalidCiphertext as e:
        raise ValueError(e.message)
    if ct.kind != EUINT32:
        raise ValueError(f"expected an {EUINT32} ciphertext, got {ct.kind}")
    return value


class TransactionRequest(BaseModel):
    trader_id: str
    counterparty_id: str
    security_id: str
    amount: str
    timestamp: str

    @field_validator("trader_id", "counterparty_id", "security_id", "amount", "timestamp")
    @classmethod
    def _check_ciphertext(cls, v: str) -> str:
        return _ciphertext(v)

    def ciphertexts(self):
        return {name: Ciphertext.from_hex(value) for name, value in self.model_dump().items()}


class MatrixRequest(BaseModel):
    # Non-positive sizes reach the matrix and fail there as INVALID_SIZE.
    size: int = Field(le=config.MATRIX_MAX_SIZE)


class EdgeRequest(BaseModel):
    from_node: int
    to_node: int
    weight: str

    @field_validator("weight")
    @classmethod
    def _check_ciphertext(cls, v: str) -> str:
        return _ciphertext(v)


class AnalysisRequest(BaseModel):
    start_node: str
    analysis_id: Optional[str] = Field(default=None, pattern=r'^[a-zA-Z0-9_-]{1,64}$')

    @field_validator("start_node")
    @classmethod
    def _check_ciphertext(cls, v: str) -> str:
        return _ciphertext(v)


class ReviewRequest(BaseModel):
    status: RingStatus


class ProofModel(BaseModel):
    kid: str
    alg: str = "ed25519"
    sig_b64: str

    def to_proof(self) -> DecryptionProof:
        return DecryptionProof(kid=self.kid, sig_b64=self.sig_b64, alg=self.alg)


class DecryptionCallbackRequest(BaseModel):
    request_id: str
    plaintexts: List[int] = Field(default_factory=list)
    proof: ProofModel
