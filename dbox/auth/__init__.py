"""
Authentication helpers for dbox.
Provides the OAuth 2.0 authorization flow, token storage and a client factory.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dbox.auth.client_factory import ClientFactory
    from dbox.auth.oauth_manager import OAuthManager, TokenStorage

__all__ = ["OAuthManager", "TokenStorage", "ClientFactory"]


def __getattr__(name: str) -> object:
    if name == "ClientFactory":
        from dbox.auth.client_factory import ClientFactory

        return ClientFactory
    if name in {"OAuthManager", "TokenStorage"}:
        from dbox.auth.oauth_manager import OAuthManager, TokenStorage

        return {"OAuthManager": OAuthManager, "TokenStorage": TokenStorage}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
