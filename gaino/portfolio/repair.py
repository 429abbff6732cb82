"""
Encoding and decoding of the portfolio document.

Content is sanitized before parsing: a trailing comma directly before a closing
array bracket (left behind by earlier tooling) is removed. Nothing else is repaired.
"""

import json
import re
from typing import Union

from .models import Portfolio, PortfolioParseError

_TRAILING_COMMA = re.compile(r",(\s*)\]")


def sanitize(text: str) -> str:
    """Strip trailing commas that sit immediately before a closing ']'"""
    return _TRAILING_COMMA.sub(r"\1]", text)


def parse_portfolio(content: Union[str, bytes]) -> Portfolio:
    """
    Decode document content into a Portfolio.

    Args:
        content: Raw JSON text or bytes (sanitize first when repair is wanted)

    Returns:
        Parsed portfolio

    Raises:
        PortfolioParseError: If the content is not JSON or not portfolio-shaped
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PortfolioParseError(f"Portfolio content is not UTF-8: {e}")

    # ValueError also covers integer literals past the digit limit
    try:
        data = json.loads(content)
    except (ValueError, RecursionError) as e:
        raise PortfolioParseError(f"Portfolio content is not valid JSON: {e}")

    return Portfolio.from_dict(data)


def serialize_portfolio(portfolio: Portfolio) -> str:
    """Encode a Portfolio as compact JSON text"""
    return json.dumps(portfolio.to_dict(), separators=(",", ":"))
