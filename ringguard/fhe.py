"""
RingGuard Encrypted Integer Capability

The engine never sees plaintext. It consumes this contract only:

    encrypt(plain) -> ct            encrypt_bool(flag) -> ebool
    add(ct, ct) / sub(ct, ct)       -> ct
    eq / ne / gt (ct, ct)           -> ebool
    and_ / or_ (ebool, ebool), not_ -> ebool
    select(ebool, ct, ct)           -> ct

Operations are total and side-effect free. Decryption is not part of the
contract; it belongs to the decryption oracle (see ``oracle.py``).

``SealedIntegerBackend`` is the reference backend used in development and
tests. Values are 32-bit unsigned integers with wrapping arithmetic, sealed in
PyNaCl SecretBox envelopes under a random nonce, so two encryptions of the
same value never compare equal as bytes.
"""

import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Optional

from nacl.exceptions import CryptoError
from nacl.secret import SecretBox
from nacl.utils import random as random_bytes

from .errors import InvalidCiphertext


EUINT32 = "euint32"
EBOOL = "ebool"

UINT32_MODULUS = 2 ** 32


@dataclass(frozen=True)
class Ciphertext:
    """Opaque encrypted value. ``kind`` is the plaintext type, ``data`` the envelope."""
    kind: str
    data: bytes

    def to_hex(self) -> str:
        """Wire form: ``<kind>:<hex envelope>``."""
        return f"{self.kind}:{self.data.hex()}"

    @classmethod
    def from_hex(cls, value: str) -> "Ciphertext":
        kind, sep, payload = (value or "").partition(":")
        if not sep or kind not in (EUINT32, EBOOL):
            raise InvalidCiphertext(f"unrecognised ciphertext encoding: {str(value)[:16]!r}")
        try:
            data = bytes.fromhex(payload)
        except ValueError:
            raise InvalidCiphertext("ciphertext payload is not hexadecimal")
        if not data:
            raise InvalidCiphertext("empty ciphertext payload")
        return cls(kind=kind, data=data)

    def __repr__(self) -> str:
        return f"Ciphertext({self.kind}, {self.data[:6].hex()}...)"


class EncryptedIntegerBackend(ABC):
    """Abstract encrypted-integer capability consumed by the core."""

    @abstractmethod
    def encrypt(self, plain: int) -> Ciphertext:
        pass

    @abstractmethod
    def encrypt_bool(self, flag: bool) -> Ciphertext:
        pass

    @abstractmethod
    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def sub(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def eq(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def ne(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def gt(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def and_(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def or_(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def not_(self, a: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def select(self, cond: Ciphertext, if_true: Ciphertext, if_false: Ciphertext) -> Ciphertext:
        """Oblivious ``if_true if cond else if_false``."""
        pass

    def zero(self) -> Ciphertext:
        return self.encrypt(0)

    def validate(self, ct: Ciphertext, kind: str = EUINT32) -> Ciphertext:
        """
        Check that ``ct`` is a ``kind`` ciphertext this backend can operate on.

        Not a capability call: it reveals nothing about the plaintext and is
        not counted. Raises InvalidCiphertext.
        """
        if not isinstance(ct, Ciphertext) or ct.kind != kind:
            found = getattr(ct, "kind", type(ct).__name__)
            raise InvalidCiphertext(f"expected {kind}, got {found}")
        return ct


class SealedIntegerBackend(EncryptedIntegerBackend):
    """
    Reference backend: SecretBox-sealed 32-bit integers.

    The box key plays the role of the evaluation key of a real FHE scheme: it
    lives inside the backend and is never handed to the engine. ``decrypt`` is
    exposed for the decryption oracle only.

    ``operations`` counts every capability call by name. Tests use it to show
    that traversal work does not depend on the encrypted graph.
    """

    def __init__(self, key: Optional[bytes] = None):
        self._box = SecretBox(key or random_bytes(SecretBox.KEY_SIZE))
        self._lock = threading.Lock()
        self.operations: Counter = Counter()

    # -- sealing -----------------------------------------------------------

    def _seal(self, kind: str, value: int) -> Ciphertext:
        if kind == EBOOL:
            raw = bytes([1 if value else 0])
        else:
            raw = (value % UINT32_MODULUS).to_bytes(4, "big")
        return Ciphertext(kind=kind, data=bytes(self._box.encrypt(raw)))

    def _open(self, ct: Ciphertext, kind: str) -> int:
        if not isinstance(ct, Ciphertext) or ct.kind != kind:
            found = getattr(ct, "kind", type(ct).__name__)
            raise InvalidCiphertext(f"expected {kind}, got {found}")
        try:
            raw = self._box.decrypt(ct.data)
        except CryptoError:
            raise InvalidCiphertext("ciphertext was not produced by this backend")
        return int.from_bytes(raw, "big")

    def _count(self, op: str) -> None:
        with self._lock:
            self.operations[op] += 1

    def validate(self, ct, kind=EUINT32):
        # Envelopes sealed under another key fail authentication here.
        self._open(ct, kind)
        return ct

    def reset_counters(self) -> None:
        with self._lock:
            self.operations.clear()

    # -- capability --------------------------------------------------------

    def encrypt(self, plain: int) -> Ciphertext:
        self._count("encrypt")
        return self._seal(EUINT32, int(plain))

    def encrypt_bool(self, flag: bool) -> Ciphertext:
        self._count("encrypt_bool")
        return self._seal(EBOOL, 1 if flag else 0)

    def add(self, a, b):
        self._count("add")
        return self._seal(EUINT32, self._open(a, EUINT32) + self._open(b, EUINT32))

    def sub(self, a, b):
        self._count("sub")
        return self._seal(EUINT32, self._open(a, EUINT32) - self._open(b, EUINT32))

    def eq(self, a, b):
        self._count("eq")
        return self._seal(EBOOL, self._open(a, EUINT32) == self._open(b, EUINT32))

    def ne(self, a, b):
        self._count("ne")
        return self._seal(EBOOL, self._open(a, EUINT32) != self._open(b, EUINT32))

    def gt(self, a, b):
        self._count("gt")
        return self._seal(EBOOL, self._open(a, EUINT32) > self._open(b, EUINT32))

    def and_(self, a, b):
        self._count("and")
        return self._seal(EBOOL, self._open(a, EBOOL) & self._open(b, EBOOL))

    def or_(self, a, b):
        self._count("or")
        return self._seal(EBOOL, self._open(a, EBOOL) | self._open(b, EBOOL))

    def not_(self, a):
        self._count("not")
        return self._seal(EBOOL, 1 - self._open(a, EBOOL))

    def select(self, cond, if_true, if_false):
        self._count("select")
        if if_true.kind != if_false.kind:
            raise InvalidCiphertext("select branches must share a kind")
        flag = self._open(cond, EBOOL)
        # Both branches are opened so a foreign ciphertext fails either way.
        when_true = self._open(if_true, if_true.kind)
        when_false = self._open(if_false, if_false.kind)
        return self._seal(if_true.kind, when_true if flag else when_false)

    # -- oracle side -------------------------------------------------------

    def decrypt(self, ct: Ciphertext) -> int:
        """Plaintext of ``ct``. Reserved for the decryption oracle."""
        return self._open(ct, ct.kind)

    def operation_snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.operations)
