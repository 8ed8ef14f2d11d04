"""
Input validation and sanitization module for the order lookup service.
Canonicalizes the phone/order-code lookup keys and cleans admin and carrier data.
"""

import re
import logging
import bleach
from typing import Any, Optional
from email.utils import parseaddr
from urllib.parse import urlparse

from error_handler import InvalidInput, InvalidPhone, InvalidOrderCode


ORDER_PREFIX = "ST-"
ORDER_MIN_DIGITS = 3
ORDER_MAX_DIGITS = 9

PHONE_PATTERN = re.compile(r'^\d{10}$')
ORDER_CODE_PATTERN = re.compile(rf'^{ORDER_PREFIX}\d{{{ORDER_MIN_DIGITS},{ORDER_MAX_DIGITS}}}$')


def normalize_phone(raw: Any) -> str:
    """Strips every non-digit and keeps the last 10 digits. Shorter input stays shorter."""
    return re.sub(r'\D', '', str(raw or ""))[-10:]


def normalize_order_code(raw: Any) -> str:
    """Trim and upper-case. The ST- prefix is not stripped here."""
    return str(raw or "").strip().upper()


def validate_request(phone: str, order_code: str) -> None:
    """
    Validates already-normalized lookup keys.

    Raises:
        InvalidPhone: unless phone is exactly 10 digits
        InvalidOrderCode: unless order_code is ST- followed by 3 to 9 digits
    """
    if not PHONE_PATTERN.match(phone or ""):
        raise InvalidPhone()
    if not ORDER_CODE_PATTERN.match(order_code or ""):
        raise InvalidOrderCode()


def format_phone(digits: str) -> str:
    """Display mask used by the lookup form: 55-1234-5678."""
    digits = re.sub(r'\D', '', digits or "")[:10]
    if len(digits) <= 2:
        return digits
    if len(digits) <= 6:
        return f"{digits[:2]}-{digits[2:]}"
    return f"{digits[:2]}-{digits[2:6]}-{digits[6:10]}"


def coerce_order_code(raw: Any) -> str:
    """
    Builds an order code from loosely typed input such as a prefill query parameter
    ("st 1234", "#1234" -> "ST-1234"). Keeps at most ORDER_MAX_DIGITS digits.
    """
    digits = re.sub(r'\D', '', str(raw or ""))[:ORDER_MAX_DIGITS]
    return f"{ORDER_PREFIX}{digits}" if digits else ""


class InputValidator:
    """Validation and sanitization for the catalog admin surface."""

    EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def validate_email_address(self, email: str) -> str:
        """
        Validate and normalize an email address.

        Args:
            email: Email address to validate

        Returns:
            Lower-cased email address

        Raises:
            InvalidInput: If email is invalid
        """
        if not email or not isinstance(email, str):
            raise InvalidInput("Email address is required and must be a string")

        email = email.strip().lower()

        parsed_name, parsed_email = parseaddr(email)
        if parsed_email:
            email = parsed_email

        if not self.EMAIL_PATTERN.match(email):
            raise InvalidInput(f"Invalid email format: {email}")

        if len(email) > 254:  # RFC 5321 limit
            raise InvalidInput("Email address too long")

        return email

    def sanitize_text(self, value: Any, max_length: int = 500) -> str:
        """
        Strips markup and control characters from a free-text catalog field.

        Args:
            value: Raw field value (non-strings are converted)
            max_length: Longest value kept

        Returns:
            Plain text, whitespace collapsed
        """
        if value is None:
            return ""
        if not isinstance(value, str):
            value = str(value)

        cleaned = bleach.clean(value, tags=[], attributes={}, strip=True)
        cleaned = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', cleaned)
        cleaned = ' '.join(cleaned.split())
        return cleaned[:max_length]

    def validate_url(self, url: str) -> str:
        """
        Validate URL format.

        Raises:
            InvalidInput: If URL is not absolute http(s)
        """
        if not url or not isinstance(url, str):
            raise InvalidInput("URL is required and must be a string")

        url = url.strip()
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise InvalidInput(f"Invalid URL format: {url}")
        if parsed.scheme not in ['http', 'https']:
            raise InvalidInput(f"URL must use HTTP or HTTPS: {url}")

        return url


def sanitize_api_response(response_data: Any, logger: Optional[logging.Logger] = None) -> Any:
    """
    Sanitize API response data.

    Args:
        response_data: API response data
        logger: Optional logger instance

    Returns:
        The same structure with control characters removed from every string
    """
    if isinstance(response_data, dict):
        sanitized = {}
        for key, value in response_data.items():
            if isinstance(key, str):
                sanitized[key.strip()] = sanitize_api_response(value, logger)
        return sanitized
    elif isinstance(response_data, list):
        return [sanitize_api_response(item, logger) for item in response_data]
    elif isinstance(response_data, str):
        return re.sub(r'[\x00-\x1f\x7f-\x9f]', '', response_data).strip()
    else:
        return response_data
