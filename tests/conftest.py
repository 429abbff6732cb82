import os
from typing import Dict, List, Optional

import pytest
from loguru import logger

from gaino.api.drive import DriveFile, DriveResponse
from gaino.api.prices import PricesPayload
from gaino.api.request_utilities import APIError
from gaino.auth.token_provider import StaticTokenProvider
from gaino.portfolio.portfolio_store import PortfolioStore
from gaino.portfolio.price_service import PriceCache, PriceCacheStorage

# Configure logging for tests
logger.remove()
logger.add(lambda msg: print(msg, end=""), level="DEBUG")


class FakeDriveAPI:
    """In-memory document store honouring version tags and If-Match preconditions"""

    def __init__(self):
        self.files: Dict[str, Dict] = {}
        self.calls: List[str] = []
        self.update_preconditions: List[Optional[str]] = []
        self.forced_update_errors: List[APIError] = []
        self.failing: Dict[str, Exception] = {}
        self.download_status = 200
        self.metadata_status = 200
        self.etag_header = "ETag"
        self.omit_etag = False
        self._next_id = 1

    # helpers for tests

    def add_file(self, name: str, content: bytes) -> str:
        file_id = f"file-{self._next_id}"
        self._next_id += 1
        self.files[file_id] = {"name": name, "content": content, "version": 1}
        return file_id

    def etag_of(self, file_id: str) -> str:
        return f'"v{self.files[file_id]["version"]}"'

    def bump(self, file_id: str) -> None:
        """Simulate a write from another install"""
        self.files[file_id]["version"] += 1

    def content_of(self, file_id: str) -> bytes:
        return self.files[file_id]["content"]

    def files_named(self, name: str) -> List[str]:
        return [file_id for file_id, f in self.files.items() if f["name"] == name]

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failing:
            raise self.failing[method]

    # AsyncDriveAPI surface

    async def list_app_data_files(self, token, query, fields="files(id,name,modifiedTime)"):
        self._enter("list")
        name = query.split("'")[1]
        return [DriveFile(id=file_id, name=name) for file_id in self.files_named(name)]

    async def get_metadata(self, token, file_id, fields="id,name,modifiedTime"):
        self._enter("metadata")
        if file_id not in self.files:
            return DriveResponse(404)
        if self.metadata_status != 200:
            return DriveResponse(self.metadata_status)
        headers = {} if self.omit_etag else {self.etag_header: self.etag_of(file_id)}
        return DriveResponse(200, headers, b"{}")

    async def download_file(self, token, file_id):
        self._enter("download")
        if file_id not in self.files:
            return DriveResponse(404)
        if self.download_status != 200:
            return DriveResponse(self.download_status)
        return DriveResponse(200, {}, self.files[file_id]["content"])

    async def create_file(self, token, metadata, media):
        self._enter("create")
        file_id = self.add_file(metadata["name"], media)
        return DriveFile(id=file_id, name=metadata["name"])

    async def update_file(self, token, file_id, metadata, media, if_match=None):
        self._enter("update")
        self.update_preconditions.append(if_match)
        if self.forced_update_errors:
            raise self.forced_update_errors.pop(0)
        if file_id not in self.files:
            raise APIError("Not Found", status_code=404)
        if if_match is not None and if_match != self.etag_of(file_id):
            raise APIError("Precondition Failed", status_code=412)
        self.files[file_id]["content"] = media
        self.files[file_id]["version"] += 1
        return DriveFile(id=file_id, name=metadata["name"])


class FakePricesAPI:
    """Price feed returning queued payloads or raising queued errors"""

    def __init__(self, prices: Optional[Dict[str, float]] = None):
        self.prices = prices or {}
        self.error: Optional[Exception] = None
        self.calls = 0

    async def get_stocks(self, tab="stocks"):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return PricesPayload(tab=tab, as_of="2024-01-01T10:00:00Z", prices=dict(self.prices))


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_drive():
    """Fixture for an empty in-memory document store"""
    return FakeDriveAPI()


@pytest.fixture
def token_provider():
    return StaticTokenProvider("test-token")


@pytest.fixture
def cache_path(tmp_path):
    return str(tmp_path / "portfolio_cache.json")


@pytest.fixture
def store(fake_drive, token_provider, cache_path):
    """Fixture for a PortfolioStore backed by the fake document store"""
    return PortfolioStore(drive=fake_drive, token_provider=token_provider, cache_path=cache_path)


@pytest.fixture
def offline_store(fake_drive, cache_path):
    return PortfolioStore(drive=fake_drive, token_provider=StaticTokenProvider(None), cache_path=cache_path)


@pytest.fixture
def fake_prices():
    return FakePricesAPI({"NSE:INFY": 110.0, "NSE:TCS": 3500.0})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def price_cache(fake_prices, tmp_path, clock):
    storage = PriceCacheStorage(str(tmp_path / "prices_cache.json"))
    return PriceCache(prices_api=fake_prices, storage=storage, clock=clock)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer credentials out of the tests"""
    for key in list(os.environ):
        if key.startswith("GAINO_"):
            monkeypatch.delenv(key, raising=False)
    yield
