"""
Common utilities for API request handling and response processing.
Provides reusable functions for HTTP requests, error mapping and URL building.
"""

import asyncio
import os
import time
import urllib.parse
from typing import Any, Dict, Optional, Tuple

import requests
from loguru import logger


class APIError(Exception):
    """Exception raised for API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Any = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


def get_env_var(key: str, default: str = "", required: bool = False) -> str:
    """
    Get environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set
        required: Whether the variable is required

    Returns:
        Environment variable value or default

    Raises:
        ValueError: If the variable is required but not set
    """
    value = os.getenv(key, default)
    if required and not value:
        logger.error(f"Required environment variable {key} is not set!")
        raise ValueError(f"Required environment variable {key} is not set!")
    return value


def _is_retryable(error: requests.exceptions.RequestException) -> bool:
    """Only connection problems and server-side errors are worth another attempt"""
    response = getattr(error, "response", None)
    if response is None:
        return True
    return response.status_code >= 500


def _error_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def async_send(
    method: str,
    url: str,
    headers: Dict[str, str] = None,
    params: Dict[str, Any] = None,
    json_data: Any = None,
    data: Any = None,
    timeout: int = 10,
    retries: int = 3,
    backoff_factor: float = 0.5,
    raise_for_status: bool = True
) -> requests.Response:
    """
    Make an asynchronous HTTP request and return the raw response.

    Args:
        method: HTTP method (GET, POST, PATCH, etc.)
        url: URL to request
        headers: Optional headers
        params: Optional query parameters
        json_data: Optional JSON body
        data: Optional raw body (bytes or form dict)
        timeout: Request timeout in seconds
        retries: Number of attempts for retryable failures
        backoff_factor: Backoff factor for retries
        raise_for_status: Whether HTTP error statuses raise APIError

    Returns:
        The requests Response object

    Raises:
        APIError: On request failure; status_code is set for HTTP errors
    """
    loop = asyncio.get_event_loop()

    def make_request():
        for attempt in range(retries):
            try:
                response = requests.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    json=json_data,
                    data=data,
                    timeout=timeout
                )

                if raise_for_status:
                    response.raise_for_status()

                return response

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request failed (attempt {attempt+1}/{retries}): {str(e)}")

                if attempt == retries - 1 or not _is_retryable(e):
                    error_response = None
                    status_code = None

                    if getattr(e, "response", None) is not None:
                        status_code = e.response.status_code
                        error_response = _error_body(e.response)

                    raise APIError(
                        message=f"Request failed after {attempt+1} attempt(s): {str(e)}",
                        status_code=status_code,
                        response=error_response
                    )

                sleep_time = backoff_factor * (2 ** attempt)
                time.sleep(sleep_time)

    try:
        return await loop.run_in_executor(None, make_request)
    except APIError:
        raise
    except Exception as e:
        raise APIError(f"Unexpected error during request: {str(e)}")


async def async_request(
    method: str,
    url: str,
    headers: Dict[str, str] = None,
    params: Dict[str, Any] = None,
    json_data: Any = None,
    data: Any = None,
    timeout: int = 10,
    retries: int = 3,
    backoff_factor: float = 0.5
) -> Dict[str, Any]:
    """
    Make an asynchronous HTTP request to an API and parse the JSON body.

    Returns:
        Parsed JSON response

    Raises:
        APIError: On request failure after retries or a non-JSON body
    """
    response = await async_send(
        method=method,
        url=url,
        headers=headers,
        params=params,
        json_data=json_data,
        data=data,
        timeout=timeout,
        retries=retries,
        backoff_factor=backoff_factor
    )

    try:
        return response.json()
    except ValueError:
        raise APIError(
            message=f"Invalid JSON in response from {url}",
            status_code=response.status_code,
            response=response.text
        )


def build_url_with_params(base_url: str, endpoint: str, params: Dict[str, Any] = None) -> str:
    """
    Build a URL with properly encoded query parameters.

    Args:
        base_url: Base URL
        endpoint: API endpoint
        params: Query parameters

    Returns:
        Full URL with encoded parameters
    """
    # Ensure there's no double slash between base_url and endpoint
    if base_url.endswith('/') and endpoint.startswith('/'):
        endpoint = endpoint[1:]
    elif not base_url.endswith('/') and not endpoint.startswith('/'):
        endpoint = '/' + endpoint

    url = base_url + endpoint

    if params:
        # Filter out None values
        filtered_params = {k: v for k, v in params.items() if v is not None}
        if filtered_params:
            query_string = urllib.parse.urlencode(filtered_params)
            url = f"{url}?{query_string}"

    return url


def find_header(headers: Dict[str, str], name: str) -> Optional[str]:
    """
    Look up a header value ignoring the casing of its key.

    Args:
        headers: Header mapping as returned by the server
        name: Header name to look for

    Returns:
        Header value or None if absent
    """
    if not headers:
        return None

    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def process_response(
    response: Dict[str, Any],
    success_path: str = None,
    default_value: Any = None
) -> Tuple[bool, Any, Optional[str]]:
    """
    Process API response to extract data and errors consistently.

    Args:
        response: API response dictionary
        success_path: Dot-separated path to success data (e.g., "data.items")
        default_value: Default value if success_path is not found

    Returns:
        Tuple of (success, data, error_message)
    """
    if not isinstance(response, dict):
        return False, default_value, "No response received"

    error_message = None
    is_success = True
    if 'error' in response:
        is_success = False
        error_message = str(response.get('error'))

    data = default_value
    if success_path and is_success:
        found = _walk(response, success_path)
        data = default_value if found is None else found

    return is_success, data, error_message


def _walk(data: Any, path: str) -> Any:
    for part in path.split('.'):
        if isinstance(data, dict) and part in data:
            data = data[part]
        else:
            return None
    return data
