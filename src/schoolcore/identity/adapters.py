"""Auth identity adapters.

Credentials (email + password hash) live apart from the user profile, keyed
by an opaque ``auth_id``; the profile only stores that id. Any provider that
can register, log in, verify a bearer token and delete an identity can be
swapped in through ``get_auth_adapter`` without touching profiles.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import bcrypt

from ..config import AuthProvider, SchoolCoreConfig
from ..exceptions import ConfigurationError, DuplicateKeyError, ErrorKind, Failure, Ok, Result
from ..store import Collections, DocumentStore, new_id
from .tokens import TokenSigner

logger = logging.getLogger(__name__)


@runtime_checkable
class AuthAdapter(Protocol):
    """Identity provider interface."""

    async def register(self, email: str, password: str) -> Result[dict[str, str]]:
        """Create an identity. ``Ok({auth_id, email, token})`` or ``DUPLICATE``."""
        ...

    async def login(self, email: str, password: str) -> Result[dict[str, str]]:
        """Check credentials. ``Ok({auth_id, email, token})`` or ``UNAUTHORIZED``."""
        ...

    def verify_token(self, token: str) -> Optional[dict[str, str]]:
        """``{"auth_id": ...}`` for a valid token, ``None`` for anything else."""
        ...

    async def delete_user(self, auth_id: str) -> None:
        ...


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class LocalAuthAdapter:
    """Email/password identities with bcrypt hashes and HMAC-signed tokens."""

    def __init__(self, store: DocumentStore, signer: TokenSigner, *, bcrypt_rounds: int = 10) -> None:
        self._store = store
        self._signer = signer
        self._rounds = bcrypt_rounds

    def _hash(self, password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self._rounds)).decode()

    @staticmethod
    def _check(password: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode(), hashed.encode())
        except ValueError:
            return False

    async def register(self, email: str, password: str) -> Result[dict[str, str]]:
        email = _normalize_email(email)
        if await self._store.find_one(Collections.IDENTITIES, {"email": email}):
            return Failure(ErrorKind.DUPLICATE, "email already exists")

        try:
            hashed = await asyncio.to_thread(self._hash, password)
        except ValueError:
            return Failure(ErrorKind.VALIDATION, "password is too long")

        auth_id = new_id()
        try:
            await self._store.insert(
                Collections.IDENTITIES,
                {"auth_id": auth_id, "email": email, "password": hashed},
            )
        except DuplicateKeyError:
            return Failure(ErrorKind.DUPLICATE, "email already exists")

        return Ok({"auth_id": auth_id, "email": email, "token": self._signer.issue(auth_id)})

    async def login(self, email: str, password: str) -> Result[dict[str, str]]:
        identity = await self._store.find_one(Collections.IDENTITIES, {"email": _normalize_email(email)})
        if identity is None:
            return Failure(ErrorKind.UNAUTHORIZED, "invalid credentials")

        if not await asyncio.to_thread(self._check, password, identity["password"]):
            return Failure(ErrorKind.UNAUTHORIZED, "invalid credentials")

        auth_id = identity["auth_id"]
        return Ok({"auth_id": auth_id, "email": identity["email"], "token": self._signer.issue(auth_id)})

    def verify_token(self, token: str) -> Optional[dict[str, str]]:
        claims = self._signer.verify(token)
        if claims is None:
            return None
        return {"auth_id": claims["auth_id"]}

    async def delete_user(self, auth_id: str) -> None:
        await self._store.delete_one(Collections.IDENTITIES, {"auth_id": auth_id})

    async def find_identity(self, email: str) -> Optional[dict[str, Any]]:
        return await self._store.find_one(Collections.IDENTITIES, {"email": _normalize_email(email)})


def _local_adapter(config: SchoolCoreConfig, store: DocumentStore) -> LocalAuthAdapter:
    auth = config.auth
    if not auth.token_secret:
        error_msg = "Local auth provider selected (AUTH_PROVIDER=local) but TOKEN_SECRET is not set."
        logger.critical(error_msg)
        raise ConfigurationError(error_msg)
    signer = TokenSigner(auth.token_secret, kid=auth.token_key_id, ttl_seconds=auth.token_ttl_seconds)
    return LocalAuthAdapter(store, signer, bcrypt_rounds=auth.bcrypt_rounds)


ADAPTER_FACTORIES: dict[AuthProvider, Callable[[SchoolCoreConfig, DocumentStore], AuthAdapter]] = {
    AuthProvider.LOCAL: _local_adapter,
}


def get_auth_adapter(config: SchoolCoreConfig, store: DocumentStore) -> AuthAdapter:
    """Build the adapter for ``config.auth.provider``.

    Raises:
        ConfigurationError: unknown provider or missing provider settings.
    """
    factory = ADAPTER_FACTORIES.get(config.auth.provider)
    if factory is None:
        raise ConfigurationError(f"Unsupported auth provider: {config.auth.provider}")
    return factory(config, store)


__all__ = [
    "ADAPTER_FACTORIES",
    "AuthAdapter",
    "LocalAuthAdapter",
    "get_auth_adapter",
]
