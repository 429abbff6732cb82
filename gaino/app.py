"""
Composition root.
Builds the clients, the token provider, the store and the price cache and wires them together.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from .api.drive import AsyncDriveAPI
from .api.prices import AsyncPricesAPI
from .api.request_utilities import get_env_var
from .auth.token_provider import (
    AccessTokenProvider,
    EnvTokenProvider,
    OAuthRefreshTokenProvider,
    StaticTokenProvider,
)
from .config import (
    DEFAULT_CLIENT_ID,
    DEFAULT_DATA_DIR,
    ENV_ACCESS_TOKEN,
    ENV_CLIENT_ID,
    ENV_DATA_DIR,
    ENV_OAUTH_CLIENT_ID,
    ENV_OAUTH_CLIENT_SECRET,
    ENV_OAUTH_REFRESH_TOKEN,
    ENV_PRICES_BASE_URL,
    PORTFOLIO_CACHE_FILE,
    PRICE_CACHE_FILE,
)
from .logging_setup import get_logger, setup_logging
from .portfolio.portfolio_store import PortfolioStore
from .portfolio.price_service import PriceCache, PriceCacheStorage
from .portfolio.state import PortfolioState

logger = get_logger("app")


def build_token_provider() -> AccessTokenProvider:
    """
    Pick a token source from the environment.

    A static token wins, then a refresh-token exchange; otherwise the provider
    keeps reading the static token variable and yields None until it is set.
    """
    static_token = get_env_var(ENV_ACCESS_TOKEN)
    if static_token:
        logger.debug("Using static access token from environment")
        return StaticTokenProvider(static_token)

    client_id = get_env_var(ENV_OAUTH_CLIENT_ID)
    client_secret = get_env_var(ENV_OAUTH_CLIENT_SECRET)
    refresh_token = get_env_var(ENV_OAUTH_REFRESH_TOKEN)
    if client_id and client_secret and refresh_token:
        logger.debug("Using OAuth refresh token exchange")
        return OAuthRefreshTokenProvider(client_id, client_secret, refresh_token)

    logger.warning("No credentials configured; portfolio will load from cache only")
    return EnvTokenProvider(ENV_ACCESS_TOKEN)


def build_portfolio_state(
    data_dir: Optional[str] = None,
    token_provider: Optional[AccessTokenProvider] = None,
    prices_base_url: Optional[str] = None,
    configure_logging: bool = False
) -> PortfolioState:
    """
    Build a ready-to-use PortfolioState.

    Args:
        data_dir: App-private directory for cache files
        token_provider: Token source (chosen from the environment when omitted)
        prices_base_url: Price feed base URL (read from the environment when omitted)
        configure_logging: Install console and rotating file log handlers under data_dir/logs

    Returns:
        The wired state holder
    """
    load_dotenv()

    data_dir = os.path.expanduser(data_dir or get_env_var(ENV_DATA_DIR, DEFAULT_DATA_DIR))
    os.makedirs(data_dir, exist_ok=True)

    if configure_logging:
        setup_logging(log_dir=os.path.join(data_dir, "logs"))

    store = PortfolioStore(
        drive=AsyncDriveAPI(),
        token_provider=token_provider or build_token_provider(),
        cache_path=os.path.join(data_dir, PORTFOLIO_CACHE_FILE)
    )
    price_cache = PriceCache(
        prices_api=AsyncPricesAPI(prices_base_url or get_env_var(ENV_PRICES_BASE_URL)),
        storage=PriceCacheStorage(os.path.join(data_dir, PRICE_CACHE_FILE))
    )

    logger.info(f"Portfolio state ready (data dir: {data_dir})")
    return PortfolioState(
        store=store,
        price_cache=price_cache,
        client_id=get_env_var(ENV_CLIENT_ID, DEFAULT_CLIENT_ID)
    )
