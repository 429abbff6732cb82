"""
API clients for the remote document store and the price feed.
"""

from .base import AsyncBaseAPI, MissingConfigError
from .drive import AsyncDriveAPI, DriveFile, DriveResponse
from .prices import AsyncPricesAPI, PricesPayload
from .request_utilities import APIError

__all__ = [
    "APIError",
    "AsyncBaseAPI",
    "AsyncDriveAPI",
    "AsyncPricesAPI",
    "DriveFile",
    "DriveResponse",
    "MissingConfigError",
    "PricesPayload",
]
