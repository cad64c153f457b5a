"""
Pluggable webhook signature verifiers.

Usage:
    verifier = HmacSignatureVerifier(secret="whsec_...", header="X-Signature")
    if not verifier.verify(request.body, request.headers):
        ...
"""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from collections.abc import Mapping


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup for plain dicts and HttpHeaders."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class SignatureVerifier(ABC):
    @abstractmethod
    def verify(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """Return True only for an authentic payload."""


class HmacSignatureVerifier(SignatureVerifier):
    """
    Hex HMAC over the raw body, compared in constant time.

    An empty secret or missing header never verifies.
    """

    def __init__(self, secret: str, header: str, digestmod=hashlib.sha256):
        self.secret = secret
        self.header = header
        self.digestmod = digestmod

    def compute(self, payload: bytes) -> str:
        return hmac.new(self.secret.encode(), payload, self.digestmod).hexdigest()

    def verify(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        signature = get_header(headers, self.header)
        if not self.secret or not signature:
            return False
        return hmac.compare_digest(self.compute(payload), signature)
