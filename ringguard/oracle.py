"""
RingGuard Decryption Oracles

The oracle sits across the trust boundary. The core hands it an ordered
ciphertext batch and gets a request id back immediately; the plaintexts
arrive later through a separate callback carrying a ``DecryptionProof``.

Implementations:
- LocalDecryptionOracle: in-process, for development/testing. Requests queue
  until ``fulfill`` delivers them, so tests control the delay.
- HttpDecryptionOracle: posts the batch to a remote decryption gateway, which
  calls back the RingGuard API at ``/oracle/callback``.
"""

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .errors import InvalidRequest, OracleUnavailable
from .fhe import Ciphertext, SealedIntegerBackend
from .keys import DecryptionProof, OracleSigningKey

logger = logging.getLogger(__name__)

DecryptionCallback = Callable[[str, List[int], DecryptionProof], Any]


class DecryptionOracle(ABC):
    """Fire-and-forget decryption: returns a request id, answers out of band."""

    @abstractmethod
    def request_decryption(self, batch: List[Ciphertext]) -> str:
        """
        Submit an ordered ciphertext batch.

        Raises:
            OracleUnavailable: if the batch was not accepted
        """
        pass


class LocalDecryptionOracle(DecryptionOracle):
    """
    In-process oracle backed by the sealed reference backend.

    WARNING: Not suitable for production. It holds both the decryption
    capability and the attestation key in the same process as the core.
    """

    def __init__(
        self,
        backend: SealedIntegerBackend,
        signing_key: OracleSigningKey,
        callback: Optional[DecryptionCallback] = None
    ):
        self._backend = backend
        self._signing_key = signing_key
        self._callback = callback
        self._jobs: "OrderedDict[str, List[Ciphertext]]" = OrderedDict()
        self._lock = threading.Lock()

    def set_callback(self, callback: DecryptionCallback) -> None:
        self._callback = callback

    def request_decryption(self, batch: List[Ciphertext]) -> str:
        request_id = secrets.token_hex(16)
        with self._lock:
            self._jobs[request_id] = list(batch)
        logger.debug("queued decryption %s (%d ciphertexts)", request_id, len(batch))
        return request_id

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._jobs.keys())

    def decrypt(self, request_id: str) -> Tuple[List[int], DecryptionProof]:
        """Decrypt and sign a queued batch without delivering it."""
        with self._lock:
            batch = self._jobs.get(request_id)
        if batch is None:
            raise InvalidRequest(f"oracle has no queued request {request_id}")
        plaintexts = [self._backend.decrypt(ct) for ct in batch]
        return plaintexts, self._signing_key.sign_decryption(request_id, plaintexts)

    def fulfill(self, request_id: str) -> Any:
        """
        Deliver one queued request to the callback.

        The job stays queued if delivery raises, so it can be delivered again.
        """
        if self._callback is None:
            raise RuntimeError("LocalDecryptionOracle has no callback registered")
        plaintexts, proof = self.decrypt(request_id)
        result = self._callback(request_id, plaintexts, proof)
        with self._lock:
            self._jobs.pop(request_id, None)
        return result

    def fulfill_all(self) -> int:
        """Deliver every queued request in submission order. Returns the count delivered."""
        delivered = 0
        for request_id in self.pending():
            self.fulfill(request_id)
            delivered += 1
        return delivered

    def discard(self, request_id: str) -> None:
        """Drop a queued request, simulating an oracle that never answers."""
        with self._lock:
            self._jobs.pop(request_id, None)


class HttpDecryptionOracle(DecryptionOracle):
    """
    Remote decryption gateway client.

    POST {base_url}/decryptions
        {"ciphertexts": ["euint32:...", ...], "callback_url": "..."}
    -> {"request_id": "..."}
    """

    def __init__(
        self,
        base_url: str,
        callback_url: str,
        timeout_seconds: float = 5.0,
        session: Optional[requests.Session] = None
    ):
        if not base_url:
            raise ValueError("ORACLE_URL required for the http oracle")
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def request_decryption(self, batch: List[Ciphertext]) -> str:
        payload: Dict[str, Any] = {
            "ciphertexts": [ct.to_hex() for ct in batch],
            "callback_url": self.callback_url,
        }
        try:
            response = self._session.post(
                f"{self.base_url}/decryptions",
                json=payload,
                timeout=self.timeout_seconds
            )
            response.raise_for_status()
            request_id = response.json()["request_id"]
        except (requests.RequestException, KeyError, ValueError) as e:
            raise OracleUnavailable(f"decryption gateway rejected batch: {e}") from e
        if not isinstance(request_id, str) or not request_id:
            raise OracleUnavailable("decryption gateway returned an empty request id")
        return request_id
