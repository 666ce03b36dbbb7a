"""
Key handling for decryption proofs.

A decryption oracle proves a decryption by signing the canonical bytes of
``{"request_id": ..., "plaintexts": [...]}`` with Ed25519 (PyNaCl). The core
only ever holds oracle public keys, loaded from a trust store.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import decryption_message


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode('ascii'), validate=True)


@dataclass
class DecryptionProof:
    """Attestation returned by the oracle alongside a plaintext batch."""
    kid: str
    sig_b64: str
    alg: str = "ed25519"

    def to_dict(self) -> Dict[str, str]:
        return {"kid": self.kid, "alg": self.alg, "sig_b64": self.sig_b64}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecryptionProof":
        return cls(
            kid=str(data.get("kid", "")),
            sig_b64=str(data.get("sig_b64", "")),
            alg=str(data.get("alg", "ed25519")),
        )


class OracleSigningKey:
    """Ed25519 key of a decryption oracle, stored as ``{"kid", "private_key_b64"}`` JSON."""

    def __init__(self, kid: str, signing_key: SigningKey):
        self.kid = kid
        self._sk = signing_key

    @classmethod
    def generate(cls, kid: str) -> "OracleSigningKey":
        return cls(kid, SigningKey.generate())

    @classmethod
    def from_file(cls, path: str) -> "OracleSigningKey":
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(raw["kid"], SigningKey(b64d(raw["private_key_b64"])))

    def to_file(self, path: str) -> None:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"kid": self.kid, "private_key_b64": b64e(bytes(self._sk))}, f, indent=2)

    @property
    def public_key_b64(self) -> str:
        return b64e(bytes(self._sk.verify_key))

    def trust_store(self) -> Dict[str, Any]:
        return {"oracle_keys": {self.kid: self.public_key_b64}}

    def sign_decryption(self, request_id: str, plaintexts: Sequence[int]) -> DecryptionProof:
        signature = self._sk.sign(decryption_message(request_id, plaintexts)).signature
        return DecryptionProof(kid=self.kid, sig_b64=b64e(signature))


def verify_ed25519(signature_b64: str, payload: bytes, public_key_b64: str) -> bool:
    """True if ``signature_b64`` is a valid Ed25519 signature of ``payload``."""
    try:
        vk = VerifyKey(b64d(public_key_b64))
        vk.verify(payload, b64d(signature_b64))
        return True
    except (BadSignatureError, binascii.Error, ValueError, TypeError):
        return False


class OracleProofVerifier:
    """Checks decryption proofs against the trusted oracle keys."""

    def __init__(self, oracle_keys: Dict[str, str]):
        self._keys = dict(oracle_keys)

    @classmethod
    def from_trust_store(cls, trust_store: Dict[str, Any]) -> "OracleProofVerifier":
        return cls(trust_store.get("oracle_keys", {}))

    def verify(self, request_id: str, plaintexts: Sequence[int], proof: Optional[DecryptionProof]) -> bool:
        if proof is None or proof.alg != "ed25519":
            return False
        public_key = self._keys.get(proof.kid)
        if not public_key:
            return False
        try:
            message = decryption_message(request_id, plaintexts)
        except (TypeError, ValueError):
            return False
        return verify_ed25519(proof.sig_b64, message, public_key)
