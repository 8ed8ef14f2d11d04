import logging
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict
from urllib.parse import urlparse

from config import LOG_LEVEL, ENABLE_DEBUG_LOGGING


def setup_logging(name: str = "order_lookup") -> logging.Logger:
    """
    Configure logging for the application.
    Sets up a named logger with a single console handler.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        logger.handlers = []  # Clear existing handlers to avoid duplicates
    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_level = logging.DEBUG if ENABLE_DEBUG_LOGGING else getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    console_handler.setLevel(console_level)

    console_formatter = logging.Formatter('%(levelname)s - %(message)s')

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)
    logger.propagate = False

    logger.debug("Logging initialized in utils.setup_logging")
    return logger


def normalize_tracking_url(value: Any) -> str:
    """
    Returns an absolute http(s) URL for a raw tracking link, or "" when it cannot be one.
    Only the first whitespace/comma separated token is considered; https:// is assumed
    when the source omits the protocol.
    """
    raw = str(value or "").strip()
    if not raw:
        return ""

    first_token = next((part for part in re.split(r'[\s,]+', raw) if part), "")
    if not first_token:
        return ""

    if re.match(r'^https?://', first_token, re.IGNORECASE):
        with_protocol = first_token
    else:
        with_protocol = f"https://{first_token}"

    try:
        parsed = urlparse(with_protocol)
        # .port raises ValueError for out-of-range or non-numeric ports
        parsed.port
    except ValueError:
        return ""

    if parsed.scheme.lower() not in ('http', 'https') or not parsed.hostname:
        return ""
    return with_protocol


def has_tag(tags: Any, tag: str) -> bool:
    """Substring match on the order's comma/space delimited tag string, case-insensitive."""
    return bool(tag) and tag.lower() in str(tags or "").lower()


def to_json_safe(row: Dict[str, Any]) -> Dict[str, Any]:
    """Converts database values (datetimes, decimals) into JSON-friendly ones."""
    safe = {}
    for key, value in row.items():
        if isinstance(value, (datetime, date)):
            safe[key] = value.isoformat()
        elif isinstance(value, Decimal):
            safe[key] = str(value)
        else:
            safe[key] = value
    return safe
