"""
RingGuard Canonical JSON Encoding

The decryption proof signs bytes, so the oracle and the verifier must agree
on one byte representation of a callback. Rules:

- Object keys sorted lexicographically (Unicode code point order)
- Compact form, no whitespace between tokens
- UTF-8, no ASCII escaping
- Arrays keep their order (the plaintext batch is positional)
- Integers only; floats are rejected because a decrypted value is an integer
"""

import hashlib
import json
from typing import Any, Dict, List, Sequence, Union


def canonicalize(obj: Any) -> bytes:
    """Encode ``obj`` as canonical JSON bytes."""
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    elif isinstance(value, int):
        return value
    elif isinstance(value, dict):
        return {k: _canonicalize_value(value[k]) for k in sorted(value.keys())}
    elif isinstance(value, (list, tuple)):
        return [_canonicalize_value(item) for item in value]
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def sha256_hash(data: Union[bytes, str]) -> str:
    """SHA-256 with the ``sha256:`` prefix used in audit records."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def decryption_message(request_id: str, plaintexts: Sequence[int]) -> bytes:
    """
    Bytes an oracle signs to attest a decryption.

    Binding the request id stops a proof from one batch being replayed
    against another.
    """
    body: Dict[str, Any] = {
        "request_id": request_id,
        "plaintexts": [int(p) for p in plaintexts],
    }
    return canonicalize(body)


def batch_digest(ciphertext_hexes: List[str]) -> str:
    """Digest of an ordered ciphertext batch, recorded with each pending request."""
    return sha256_hash(canonicalize(list(ciphertext_hexes)))
