"""
Asynchronous client for the remote document store.
Wraps the list / metadata / download / create / update file operations; no business logic.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from ..config import APP_DATA_SPACE, DRIVE_BASE_URL, DRIVE_TIMEOUT
from .base import AsyncBaseAPI
from .request_utilities import APIError, find_header


@dataclass
class DriveFile:
    """A file entry as returned by list/create/update"""
    id: Optional[str]
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriveFile":
        return cls(id=data.get("id"), name=data.get("name"))


@dataclass
class DriveResponse:
    """Raw response for calls whose headers or body the caller inspects"""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def etag(self) -> Optional[str]:
        """Version tag of the file; the store does not guarantee header casing"""
        return find_header(self.headers, "ETag")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


def build_multipart_related(
    metadata: Dict[str, Any],
    media: bytes,
    boundary: Optional[str] = None,
    media_type: str = "application/json"
) -> Tuple[bytes, str]:
    """
    Build a multipart/related upload body (metadata part followed by media part).

    Args:
        metadata: File metadata serialized as the first part
        media: File content bytes
        boundary: Part boundary (random when omitted)
        media_type: Content type of the media part

    Returns:
        Tuple of (body bytes, Content-Type header value)
    """
    boundary = boundary or uuid.uuid4().hex
    delimiter = f"--{boundary}".encode("utf-8")

    body = b"\r\n".join([
        delimiter,
        b"Content-Type: application/json; charset=UTF-8",
        b"",
        json.dumps(metadata).encode("utf-8"),
        delimiter,
        f"Content-Type: {media_type}; charset=UTF-8".encode("utf-8"),
        b"",
        media,
        f"--{boundary}--".encode("utf-8"),
        b"",
    ])

    return body, f"multipart/related; boundary={boundary}"


class AsyncDriveAPI(AsyncBaseAPI):
    """
    Asynchronous client for the app-private file store.
    Every call takes the bearer token explicitly; the client holds no credentials.
    """

    def __init__(self, base_url: str = DRIVE_BASE_URL, timeout: int = DRIVE_TIMEOUT):
        super().__init__(base_url=base_url, timeout=timeout)
        logger.debug(f"Initialized AsyncDriveAPI for {base_url}")

    @staticmethod
    def _auth(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def list_app_data_files(
        self,
        token: str,
        query: str,
        fields: str = "files(id,name,modifiedTime)"
    ) -> List[DriveFile]:
        """
        List files in the app-private space matching a query.

        Args:
            token: Bearer token
            query: Store query, e.g. "name = 'portfolio.json'"
            fields: Partial response selector

        Returns:
            Matching files (possibly empty)
        """
        params = {"spaces": APP_DATA_SPACE, "q": query, "fields": fields}
        response = await self.get("drive/v3/files", params=params, headers=self._auth(token))

        success, files, error = await self.process_response(
            response,
            success_path="files",
            default_value=[]
        )

        if not success:
            raise APIError(f"Listing files failed: {error}", response=response)

        return [DriveFile.from_dict(item) for item in files if isinstance(item, dict)]

    async def get_metadata(
        self,
        token: str,
        file_id: str,
        fields: str = "id,name,modifiedTime"
    ) -> DriveResponse:
        """
        Read file metadata. Only the headers (ETag) are of interest.

        HTTP error statuses are returned, not raised.
        """
        response = await self.send(
            "GET",
            f"drive/v3/files/{file_id}",
            params={"fields": fields},
            headers=self._auth(token),
            raise_for_status=False
        )
        return DriveResponse(response.status_code, dict(response.headers), response.content)

    async def download_file(self, token: str, file_id: str) -> DriveResponse:
        """
        Download file content.

        HTTP error statuses are returned, not raised.
        """
        response = await self.send(
            "GET",
            f"drive/v3/files/{file_id}",
            params={"alt": "media"},
            headers=self._auth(token),
            raise_for_status=False
        )
        return DriveResponse(response.status_code, dict(response.headers), response.content)

    async def create_file(self, token: str, metadata: Dict[str, Any], media: bytes) -> DriveFile:
        """
        Create a file with a multipart upload.

        Raises:
            APIError: On failure, with the HTTP status when there is one
        """
        body, content_type = build_multipart_related(metadata, media)
        headers = self._auth(token)
        headers["Content-Type"] = content_type

        response = await self.send(
            "POST",
            "upload/drive/v3/files",
            params={"uploadType": "multipart"},
            body=body,
            headers=headers,
            retries=1
        )
        return DriveFile.from_dict(_json_body(response))

    async def update_file(
        self,
        token: str,
        file_id: str,
        metadata: Dict[str, Any],
        media: bytes,
        if_match: Optional[str] = None
    ) -> DriveFile:
        """
        Replace file content with a multipart upload.

        Args:
            token: Bearer token
            file_id: File to update
            metadata: File metadata
            media: New content
            if_match: Version tag precondition; omitted when None (unconditional write)

        Raises:
            APIError: On failure; status_code 412 means the precondition did not match
        """
        body, content_type = build_multipart_related(metadata, media)
        headers = self._auth(token)
        headers["Content-Type"] = content_type
        if if_match is not None:
            headers["If-Match"] = if_match

        response = await self.send(
            "PATCH",
            f"upload/drive/v3/files/{file_id}",
            params={"uploadType": "multipart"},
            body=body,
            headers=headers,
            retries=1
        )
        return DriveFile.from_dict(_json_body(response))


def _json_body(response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        data = {}
    return data if isinstance(data, dict) else {}
