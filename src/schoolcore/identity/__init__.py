"""Auth identity adapters and token signing."""

from .adapters import ADAPTER_FACTORIES, AuthAdapter, LocalAuthAdapter, get_auth_adapter
from .tokens import SignedToken, TokenSigner

__all__ = [
    "ADAPTER_FACTORIES",
    "AuthAdapter",
    "LocalAuthAdapter",
    "SignedToken",
    "TokenSigner",
    "get_auth_adapter",
]
