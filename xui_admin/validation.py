"""Validation and sanitization of chat input."""
from __future__ import annotations

import re
from typing import Optional, Tuple

MAX_STRING_LENGTH = 500

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 32
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 3650

# Telegram usernames: 5-32 chars, alphanumeric + underscore
TELEGRAM_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{5,32}$")


def sanitize_string(value: str, max_length: int = MAX_STRING_LENGTH) -> str:
    """Sanitize user input by removing potentially dangerous characters.

    Parameters
    ----------
    value : str
        Input string to sanitize
    max_length : int
        Maximum allowed length

    Returns
    -------
    str
        Sanitized string
    """
    if not isinstance(value, str):
        return ""
    value = value[:max_length]
    value = value.replace("\x00", "")
    return value.strip()


def validate_numeric(value: str, min_value: int = 0, max_value: int = 1000000) -> Tuple[bool, Optional[int]]:
    """Validate and parse numeric input.

    Returns
    -------
    tuple
        (is_valid, parsed_value)
    """
    try:
        num = int(value)
        if min_value <= num <= max_value:
            return True, num
        return False, None
    except (ValueError, TypeError):
        return False, None


def parse_duration(value: str) -> Tuple[bool, Optional[int]]:
    """Parse a duration in days (1 to 3650)."""

    return validate_numeric(sanitize_string(value), MIN_DURATION_DAYS, MAX_DURATION_DAYS)


def validate_username(username: str) -> Tuple[bool, Optional[str]]:
    """Validate a member name.

    Returns
    -------
    tuple
        ``(True, None)`` for a valid name, otherwise ``(False, reason)``
        where ``reason`` can be shown to the operator.
    """
    if not isinstance(username, str) or not (MIN_USERNAME_LENGTH <= len(username) <= MAX_USERNAME_LENGTH):
        return False, (
            f"Username must be between {MIN_USERNAME_LENGTH} and {MAX_USERNAME_LENGTH} characters."
        )
    if not USERNAME_PATTERN.match(username):
        return False, "Username can only contain letters, numbers, and underscores."
    return True, None


def validate_telegram_username(username: str) -> bool:
    """Validate Telegram username format (``@`` prefix optional)."""

    if not username:
        return False
    return bool(TELEGRAM_USERNAME_PATTERN.match(username.lstrip("@")))
