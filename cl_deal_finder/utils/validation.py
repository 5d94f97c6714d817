"""
Input validation helpers for saved-search intake.
"""

import re

MAX_INPUT_LENGTH = 1000
MAX_EMAIL_LENGTH = 254

_TAG_PATTERN = re.compile(r"<[^>]*>")
_DANGEROUS_CHARS = re.compile(r"[<>\"'`;]")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ZIPCODE_PATTERN = re.compile(r"^\d{5}(-\d{4})?$")


def sanitize_input(value) -> str:
    """Trim, cap length and strip markup from free text."""
    if not isinstance(value, str):
        return ""

    cleaned = value.strip()[:MAX_INPUT_LENGTH]
    cleaned = _TAG_PATTERN.sub("", cleaned)
    return _DANGEROUS_CHARS.sub("", cleaned)


def is_valid_email(email: str) -> bool:
    """Check basic email shape."""
    if not isinstance(email, str):
        return False
    return bool(_EMAIL_PATTERN.match(email)) and len(email) <= MAX_EMAIL_LENGTH


def is_valid_zipcode(zipcode: str) -> bool:
    """Check US ZIP or ZIP+4 format."""
    if not isinstance(zipcode, str):
        return False
    return bool(_ZIPCODE_PATTERN.match(zipcode))
