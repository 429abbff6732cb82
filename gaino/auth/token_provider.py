"""
Access token providers for the document store.
A provider yields a short-lived bearer token, or None when the client should work offline.
"""

import os
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from loguru import logger

from ..api.base import AsyncBaseAPI
from ..config import DRIVE_APPDATA_SCOPE, OAUTH_TIMEOUT, OAUTH_TOKEN_URL, TOKEN_EXPIRY_MARGIN


class AccessTokenProvider(ABC):
    """Base class for bearer token sources"""

    @abstractmethod
    async def fetch_token(self) -> Optional[str]:
        """Obtain a token; may raise"""

    async def get_access_token(self) -> Optional[str]:
        """
        Get a bearer token for the document store.

        Returns:
            Token string, or None when no token could be obtained
        """
        try:
            token = await self.fetch_token()
        except Exception as e:
            logger.error(f"Failed to get access token: {str(e)}")
            return None

        return token or None


class StaticTokenProvider(AccessTokenProvider):
    """Provider returning a fixed token (or None for a signed-out client)"""

    def __init__(self, token: Optional[str]):
        self.token = token

    async def fetch_token(self) -> Optional[str]:
        return self.token


class EnvTokenProvider(AccessTokenProvider):
    """Provider reading the token from an environment variable on every call"""

    def __init__(self, var_name: str):
        self.var_name = var_name

    async def fetch_token(self) -> Optional[str]:
        return os.getenv(self.var_name)


class OAuthRefreshTokenProvider(AccessTokenProvider, AsyncBaseAPI):
    """
    Exchanges a long-lived refresh token for short-lived access tokens.

    Tokens are reused until shortly before they expire.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = OAUTH_TOKEN_URL,
        scope: str = DRIVE_APPDATA_SCOPE,
        clock: Callable[[], float] = time.time
    ):
        AsyncBaseAPI.__init__(self, base_url=token_url, timeout=OAUTH_TIMEOUT)
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.scope = scope
        self.clock = clock
        self._access_token: Optional[str] = None
        self._expires_at = 0.0

    async def fetch_token(self) -> Optional[str]:
        if self._access_token and self.clock() < self._expires_at:
            return self._access_token

        form = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
            "scope": self.scope,
        }
        response = await self.request("POST", "token", form=form, retries=2)

        token = response.get("access_token")
        if not token:
            logger.warning("Token endpoint returned no access token")
            return None

        expires_in = float(response.get("expires_in", 0))
        self._access_token = token
        self._expires_at = self.clock() + max(expires_in - TOKEN_EXPIRY_MARGIN, 0)
        logger.debug(f"Obtained access token valid for {expires_in:.0f}s")
        return token
