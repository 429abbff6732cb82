"""
Storage manager for the synchronized portfolio document.
Keeps one JSON document consistent between the remote store and a local cache file,
using version-tag preconditions for conflict-safe writes.
"""

import os
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from loguru import logger

from ..api.drive import AsyncDriveAPI
from ..api.request_utilities import APIError
from ..auth.token_provider import AccessTokenProvider
from ..config import APP_DATA_SPACE, PORTFOLIO_FILE_NAME, PORTFOLIO_MIME_TYPE
from .models import Portfolio, PortfolioParseError
from .repair import parse_portfolio, sanitize, serialize_portfolio

PRECONDITION_FAILED = 412


class SaveOutcome(Enum):
    """Result of a save attempt"""
    SAVED = "saved"
    NO_CREDENTIAL = "no_credential"
    NO_FILE = "no_file"
    CONFLICT = "conflict"
    TRANSPORT_ERROR = "transport_error"
    CACHE_ERROR = "cache_error"


class PortfolioStore:
    """
    Remote-first store for the portfolio document with a local cache fallback.

    The resolved file id and the last seen version tag are held in memory and
    rediscovered on every cold start. One instance must not serve overlapping
    load/save calls; callers serialize their writes.
    """

    def __init__(
        self,
        drive: AsyncDriveAPI,
        token_provider: AccessTokenProvider,
        cache_path: str,
        file_name: str = PORTFOLIO_FILE_NAME
    ):
        """
        Initialize the portfolio store.

        Args:
            drive: Document store client
            token_provider: Source of bearer tokens
            cache_path: Path of the local cache file
            file_name: Name of the remote document
        """
        self.drive = drive
        self.token_provider = token_provider
        self.cache_path = cache_path
        self.file_name = file_name
        self._file_id: Optional[str] = None
        self._etag: Optional[str] = None
        logger.debug(f"Initialized PortfolioStore with cache: {cache_path}")

    @property
    def file_id(self) -> Optional[str]:
        return self._file_id

    @property
    def etag(self) -> Optional[str]:
        return self._etag

    # ------------------------------------------------------------------ load

    async def load(self) -> Portfolio:
        """
        Load the portfolio, preferring the remote document over the cache.

        Never raises: remote failures fall back to the cache, and a missing or
        unreadable cache yields an empty portfolio.

        Returns:
            The current portfolio
        """
        token = await self.token_provider.get_access_token()

        if token:
            try:
                portfolio = await self._load_remote(token)
                if portfolio is not None:
                    return portfolio
            except Exception as e:
                logger.error(f"Remote load failed: {str(e)}")
        else:
            logger.warning("No bearer token; using cache")

        return self._load_cache()

    async def _load_remote(self, token: str) -> Optional[Portfolio]:
        file_id = await self._resolve_file_id(token)
        if not file_id:
            logger.error(f"Could not resolve an id for {self.file_name}")
            return None

        # The store may omit the version tag; a missing tag means unconditional writes
        meta = await self.drive.get_metadata(token, file_id)
        if meta.ok:
            self._etag = meta.etag
            logger.debug(f"Fetched ETag: {self._etag}")

        download = await self.drive.download_file(token, file_id)
        if not download.ok:
            logger.error(f"Download failed: {download.status_code}")
            return None

        if not download.content.strip():
            logger.warning(f"Remote {self.file_name} is empty; using cache")
            return None

        try:
            portfolio, sanitized = self._decode(download.content)
        except PortfolioParseError as e:
            logger.error(f"Remote JSON malformed; self-healing to empty portfolio: {str(e)}")
            await self._self_heal(token, file_id)
            return Portfolio()

        self._write_cache_quietly(sanitized)
        logger.debug(f"Loaded (remote) portfolio with {len(portfolio.holdings)} holdings")
        return portfolio

    async def _resolve_file_id(self, token: str) -> Optional[str]:
        """Find the document by name, creating an empty one when none exists"""
        files = await self.drive.list_app_data_files(token, query=f"name = '{self.file_name}'")
        existing_id = next((f.id for f in files if f.id), None)

        if existing_id:
            if existing_id != self._file_id:
                logger.info(f"Resolved {self.file_name} to id {existing_id}")
            self._file_id = existing_id
        else:
            self._file_id = await self._create_empty(token)

        return self._file_id

    async def _create_empty(self, token: str) -> Optional[str]:
        empty = serialize_portfolio(Portfolio())
        created = await self.drive.create_file(
            token,
            metadata=self._metadata(create=True),
            media=empty.encode("utf-8")
        )
        logger.info(f"Created {self.file_name} with id: {created.id}")
        self._write_cache_quietly(empty)
        return created.id

    async def _self_heal(self, token: str, file_id: str) -> None:
        """
        Overwrite the remote document and the cache with an empty portfolio.

        The write carries no precondition: corrupt content is not worth preserving.
        Failures are logged and absorbed.
        """
        empty = serialize_portfolio(Portfolio())
        try:
            updated = await self.drive.update_file(
                token,
                file_id,
                metadata=self._metadata(),
                media=empty.encode("utf-8"),
                if_match=None
            )
            await self._refresh_etag(token, updated.id or file_id)
            self._write_cache(empty)
            logger.info(f"Self-heal complete; new ETag: {self._etag}")
        except Exception as e:
            logger.error(f"Self-heal failed; continuing with empty in-memory portfolio: {str(e)}")

    def _load_cache(self) -> Portfolio:
        cached = self._read_cache()
        if cached is None or not cached.strip():
            return Portfolio()

        try:
            portfolio, _ = self._decode(cached)
        except PortfolioParseError as e:
            logger.error(f"Cache JSON malformed; resetting to empty: {str(e)}")
            self._write_cache_quietly(serialize_portfolio(Portfolio()))
            return Portfolio()

        logger.debug(f"Loaded (cache) portfolio with {len(portfolio.holdings)} holdings")
        return portfolio

    # ------------------------------------------------------------------ save

    async def save(self, portfolio: Portfolio) -> bool:
        """
        Save the portfolio with a version-tag precondition.

        Returns:
            Whether the document was written remotely and cached
        """
        outcome = await self.save_with_outcome(portfolio)
        return outcome is SaveOutcome.SAVED

    async def save_with_outcome(self, portfolio: Portfolio) -> SaveOutcome:
        """
        Save the portfolio and report why a failed save failed.

        A precondition failure refreshes the tag and retries exactly once. The
        cache is only written after the remote write succeeded.

        Args:
            portfolio: Document to write

        Returns:
            SaveOutcome describing the result
        """
        token = await self.token_provider.get_access_token()
        if not token:
            logger.warning("Save skipped: no bearer token")
            return SaveOutcome.NO_CREDENTIAL

        file_id = self._file_id
        if not file_id:
            logger.warning(f"Save skipped: {self.file_name} has not been resolved yet")
            return SaveOutcome.NO_FILE

        content = serialize_portfolio(portfolio)
        media = content.encode("utf-8")
        sent_etag = self._etag

        try:
            await self._write_remote(token, file_id, media, sent_etag)
        except APIError as e:
            logger.error(f"Save failed (code={e.status_code}, etag={sent_etag}): {e.message}")
            if e.status_code != PRECONDITION_FAILED:
                return SaveOutcome.TRANSPORT_ERROR

            outcome = await self._retry_after_conflict(token, file_id, media)
            if outcome is not SaveOutcome.SAVED:
                return outcome
        except Exception as e:
            logger.error(f"Save failed (etag={sent_etag}): {str(e)}")
            return SaveOutcome.TRANSPORT_ERROR

        try:
            self._write_cache(content)
        except OSError as e:
            logger.error(f"Remote save succeeded but cache write failed: {str(e)}")
            return SaveOutcome.CACHE_ERROR

        logger.info(f"Save success; new ETag: {self._etag}")
        return SaveOutcome.SAVED

    async def _retry_after_conflict(self, token: str, file_id: str, media: bytes) -> SaveOutcome:
        """Refresh the version tag and try the write one more time"""
        try:
            meta = await self.drive.get_metadata(token, file_id)
            if not meta.ok:
                logger.error(f"Could not refresh ETag after conflict: {meta.status_code}")
                return SaveOutcome.TRANSPORT_ERROR

            self._etag = meta.etag
            await self._write_remote(token, file_id, media, self._etag)
        except APIError as e:
            logger.error(f"Retry after {PRECONDITION_FAILED} failed (code={e.status_code}): {e.message}")
            if e.status_code == PRECONDITION_FAILED:
                return SaveOutcome.CONFLICT
            return SaveOutcome.TRANSPORT_ERROR
        except Exception as e:
            logger.error(f"Retry after {PRECONDITION_FAILED} failed: {str(e)}")
            return SaveOutcome.TRANSPORT_ERROR

        logger.debug("Save succeeded after conflict retry")
        return SaveOutcome.SAVED

    async def _write_remote(self, token: str, file_id: str, media: bytes, if_match: Optional[str]) -> None:
        updated = await self.drive.update_file(
            token,
            file_id,
            metadata=self._metadata(),
            media=media,
            if_match=if_match
        )
        try:
            await self._refresh_etag(token, updated.id or file_id)
        except Exception as e:
            # The write went through; a stale tag only costs one conflict retry later
            logger.warning(f"Could not refresh ETag after write: {str(e)}")

    async def _refresh_etag(self, token: str, file_id: str) -> None:
        meta = await self.drive.get_metadata(token, file_id)
        if meta.ok:
            self._etag = meta.etag

    # --------------------------------------------------------------- helpers

    def _metadata(self, create: bool = False) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": self.file_name, "mimeType": PORTFOLIO_MIME_TYPE}
        if create:
            metadata["parents"] = [APP_DATA_SPACE]
        return metadata

    @staticmethod
    def _decode(content: Any) -> Tuple[Portfolio, str]:
        """Sanitize and parse raw content, returning the portfolio and the repaired text"""
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8")
            except UnicodeDecodeError as e:
                raise PortfolioParseError(f"Portfolio content is not UTF-8: {e}")

        sanitized = sanitize(content)
        return parse_portfolio(sanitized), sanitized

    def _read_cache(self) -> Optional[bytes]:
        """Raw cache bytes, or None when the file is absent or unreadable"""
        if not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "rb") as f:
                return f.read()
        except OSError as e:
            logger.error(f"Error reading portfolio cache: {str(e)}")
            return None

    def _write_cache(self, content: str) -> None:
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(self.cache_path, "w", encoding="utf-8") as f:
            f.write(content)

    def _write_cache_quietly(self, content: str) -> None:
        try:
            self._write_cache(content)
        except OSError as e:
            logger.error(f"Error writing portfolio cache: {str(e)}")
