"""
Base classes for asynchronous API clients.
Provides standardized request handling, error processing, and response formatting.
"""

import asyncio
from abc import ABC
from typing import Any, Dict, Optional, Tuple

import requests
from loguru import logger

from .request_utilities import (
    APIError,
    async_request,
    async_send,
    build_url_with_params,
    process_response,
)


class AsyncBaseAPI(ABC):
    """
    Base class for asynchronous API clients with common functionality.

    Provides:
    - Async HTTP request methods (parsed JSON or raw responses)
    - Standardized error handling
    - Consistent response formatting
    """

    def __init__(self, base_url: str, timeout: int = 10, headers: Optional[Dict[str, str]] = None):
        """
        Initialize the async API client.

        Args:
            base_url: Base URL for API requests
            timeout: Default request timeout in seconds
            headers: Headers sent with every request
        """
        self.base_url = base_url
        self.timeout = timeout
        self.default_headers: Dict[str, str] = dict(headers or {})

    def _merge_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        request_headers = self.default_headers.copy()
        if headers:
            request_headers.update(headers)
        return request_headers

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Dict[str, Any] = None,
        data: Any = None,
        headers: Dict[str, Any] = None,
        timeout: Optional[int] = None,
        retries: int = 3,
        form: Dict[str, Any] = None
    ) -> Dict[str, Any]:
        """
        Make an asynchronous request to the API and return parsed JSON.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint
            params: Query parameters
            data: JSON data for POST/PUT requests
            headers: Additional headers
            timeout: Request timeout in seconds
            retries: Number of retries on failure
            form: Form-encoded body (sent instead of JSON)

        Returns:
            Response data as a dictionary

        Raises:
            APIError: On request failure
        """
        request_headers = self._merge_headers(headers)
        url = build_url_with_params(self.base_url, endpoint, params)

        # Log the request (not including sensitive headers)
        logger.debug(f"API Request: {method} {endpoint}")

        try:
            start_time = asyncio.get_event_loop().time()
            response = await async_request(
                method=method,
                url=url,
                headers=request_headers,
                json_data=data,
                data=form,
                timeout=timeout or self.timeout,
                retries=retries
            )
            elapsed = asyncio.get_event_loop().time() - start_time
            logger.debug(f"API Response received in {elapsed:.2f}s")

            return response

        except APIError as e:
            logger.error(f"API Error: {e.message} (Status: {e.status_code})")

            raise APIError(
                message=f"Error in {method} request to {endpoint}: {e.message}",
                status_code=e.status_code,
                response=e.response
            )

    async def send(
        self,
        method: str,
        endpoint: str,
        params: Dict[str, Any] = None,
        body: bytes = None,
        headers: Dict[str, Any] = None,
        timeout: Optional[int] = None,
        retries: int = 3,
        raise_for_status: bool = True
    ) -> requests.Response:
        """
        Make an asynchronous request and hand back the raw response.

        Used where headers or a non-JSON body matter to the caller.

        Raises:
            APIError: On transport failure, or on HTTP error when raise_for_status is set
        """
        request_headers = self._merge_headers(headers)
        url = build_url_with_params(self.base_url, endpoint, params)

        logger.debug(f"API Request: {method} {endpoint}")

        try:
            response = await async_send(
                method=method,
                url=url,
                headers=request_headers,
                data=body,
                timeout=timeout or self.timeout,
                retries=retries,
                raise_for_status=raise_for_status
            )
            logger.debug(f"API Response: {response.status_code} for {method} {endpoint}")
            return response

        except APIError as e:
            logger.error(f"API Error: {e.message} (Status: {e.status_code})")

            raise APIError(
                message=f"Error in {method} request to {endpoint}: {e.message}",
                status_code=e.status_code,
                response=e.response
            )

    async def get(
        self,
        endpoint: str,
        params: Dict[str, Any] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Make a GET request to the API.

        Args:
            endpoint: API endpoint
            params: Query parameters
            **kwargs: Additional arguments for request method

        Returns:
            Response data
        """
        return await self.request("GET", endpoint, params=params, **kwargs)

    async def process_response(
        self,
        response: Dict[str, Any],
        success_path: str = None,
        default_value: Any = None
    ) -> Tuple[bool, Any, Optional[str]]:
        """
        Process API response to extract data and errors consistently.

        Returns:
            Tuple of (success, data, error_message)
        """
        return process_response(
            response=response,
            success_path=success_path,
            default_value=default_value
        )


class MissingConfigError(Exception):
    """Exception raised when a client is missing required configuration."""
    pass


def require_base_url(func):
    """
    Decorator to ensure the client has somewhere to send requests.

    Raises:
        MissingConfigError: If base URL is not configured
    """
    async def wrapper(self, *args, **kwargs):
        if not getattr(self, 'base_url', None):
            raise MissingConfigError(f"A base URL is required for {func.__name__}")
        return await func(self, *args, **kwargs)
    return wrapper
