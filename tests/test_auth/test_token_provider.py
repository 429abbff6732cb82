from unittest.mock import AsyncMock

from gaino.api.request_utilities import APIError
from gaino.auth.token_provider import (
    EnvTokenProvider,
    OAuthRefreshTokenProvider,
    StaticTokenProvider,
)


async def test_static_provider():
    assert await StaticTokenProvider("abc").get_access_token() == "abc"
    assert await StaticTokenProvider(None).get_access_token() is None
    assert await StaticTokenProvider("").get_access_token() is None


async def test_env_provider_reads_on_every_call(monkeypatch):
    provider = EnvTokenProvider("GAINO_DRIVE_ACCESS_TOKEN")
    assert await provider.get_access_token() is None

    monkeypatch.setenv("GAINO_DRIVE_ACCESS_TOKEN", "from-env")
    assert await provider.get_access_token() == "from-env"


async def test_oauth_provider_exchanges_and_caches(clock):
    provider = OAuthRefreshTokenProvider("cid", "secret", "refresh", clock=clock)
    provider.request = AsyncMock(return_value={"access_token": "short-lived", "expires_in": 3600})

    assert await provider.get_access_token() == "short-lived"
    clock.advance(3000)
    assert await provider.get_access_token() == "short-lived"
    assert provider.request.await_count == 1

    form = provider.request.call_args.kwargs["form"]
    assert form["grant_type"] == "refresh_token"
    assert form["refresh_token"] == "refresh"


async def test_oauth_provider_refreshes_before_expiry(clock):
    provider = OAuthRefreshTokenProvider("cid", "secret", "refresh", clock=clock)
    provider.request = AsyncMock(side_effect=[
        {"access_token": "first", "expires_in": 3600},
        {"access_token": "second", "expires_in": 3600},
    ])

    assert await provider.get_access_token() == "first"
    clock.advance(3541)
    assert await provider.get_access_token() == "second"


async def test_oauth_provider_failure_yields_none(clock):
    provider = OAuthRefreshTokenProvider("cid", "secret", "refresh", clock=clock)
    provider.request = AsyncMock(side_effect=APIError("invalid_grant", status_code=400))

    assert await provider.get_access_token() is None


async def test_oauth_provider_without_token_in_response(clock):
    provider = OAuthRefreshTokenProvider("cid", "secret", "refresh", clock=clock)
    provider.request = AsyncMock(return_value={"error": "invalid_scope"})

    assert await provider.get_access_token() is None
