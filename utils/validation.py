"""
Input validation utilities for user data and API inputs.
"""

import re
from typing import Any, Optional


def validate_positive_id(value: Any) -> bool:
    """
    Validate a database identifier.

    Args:
        value: Candidate identifier

    Returns:
        True if value is a positive integer, False otherwise
    """
    # bool is an int subclass but never a valid id
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def coerce_id(value: Any) -> Optional[int]:
    """
    Convert a header or query-string identifier to an int.

    Returns:
        The identifier, or None when missing or malformed
    """
    if value is None:
        return None
    if validate_positive_id(value):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def validate_email(email: str) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address string

    Returns:
        True if valid format, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    return bool(re.match(pattern, email))


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r"[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]", "", str(text))

    sanitized = sanitized.strip()

    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
