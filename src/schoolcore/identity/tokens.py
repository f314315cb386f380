"""Signed bearer tokens.

Wire format (3 parts, always):

    kid.payload_b64.signature_b64

``payload`` is URL-safe base64 JSON ``{"auth_id", "iat", "exp"}``;
``signature`` is HMAC-SHA256 over the encoded payload with the server
secret. Tokens are long-lived because there is no refresh flow.

Verification never raises: a malformed, tampered, foreign-kid or expired
token verifies to ``None``, so callers can treat every failure as
"unauthenticated".
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


@dataclass(frozen=True)
class SignedToken:
    """Result of a signing operation.

    Attributes:
        payload: base64-encoded claims.
        signature: base64-encoded HMAC signature.
        kid: key identifier (for rotation support).
    """

    payload: str
    signature: str
    kid: str

    def serialize(self) -> str:
        return f"{self.kid}.{self.payload}.{self.signature}"


class TokenSigner:
    """HMAC-SHA256 token issuer and verifier."""

    def __init__(
        self,
        secret: str,
        *,
        kid: str = "hmac-001",
        ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("TokenSigner requires a secret")
        if "." in kid:
            raise ValueError("kid must not contain '.'")
        self._secret = secret.encode()
        self._kid = kid
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def kid(self) -> str:
        return self._kid

    def _sign(self, payload_b64: str) -> str:
        return _b64encode(hmac.new(self._secret, payload_b64.encode(), hashlib.sha256).digest())

    def issue(self, auth_id: str) -> str:
        now = int(self._clock())
        claims = {"auth_id": auth_id, "iat": now, "exp": now + self._ttl}
        payload_b64 = _b64encode(json.dumps(claims, separators=(",", ":")).encode())
        return SignedToken(payload=payload_b64, signature=self._sign(payload_b64), kid=self._kid).serialize()

    def verify(self, token_str: str) -> Optional[dict[str, Any]]:
        """Verify a token and return its claims, or ``None``."""
        if not isinstance(token_str, str) or not token_str.strip():
            return None

        parts = token_str.strip().split(".")
        if len(parts) != 3:
            return None
        kid, payload_b64, sig_b64 = parts
        if kid != self._kid or not sig_b64:
            return None

        try:
            if not hmac.compare_digest(self._sign(payload_b64), sig_b64):
                logger.warning("Token signature verification failed")
                return None
            claims = json.loads(_b64decode(payload_b64))
        except (ValueError, TypeError):
            logger.warning("Token payload decode failed")
            return None

        if not isinstance(claims, dict) or not isinstance(claims.get("auth_id"), str):
            return None
        exp = claims.get("exp")
        if not isinstance(exp, (int, float)) or self._clock() >= exp:
            return None
        return claims


__all__ = ["SignedToken", "TokenSigner"]
