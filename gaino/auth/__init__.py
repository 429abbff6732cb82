"""
Bearer token sources for the document store.
"""

from .token_provider import (
    AccessTokenProvider,
    EnvTokenProvider,
    OAuthRefreshTokenProvider,
    StaticTokenProvider,
)

__all__ = [
    "AccessTokenProvider",
    "EnvTokenProvider",
    "OAuthRefreshTokenProvider",
    "StaticTokenProvider",
]
