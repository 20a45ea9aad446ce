"""
Field format validators shared by listings and one-time codes.
"""

from __future__ import annotations

import re
from typing import Final

# Indian mobile numbers in E.164 form: +91 followed by 10 digits starting 6-9
PHONE_PATTERN: Final[re.Pattern] = re.compile(r"^\+91[6-9][0-9]{9}$")

EMAIL_PATTERN: Final[re.Pattern] = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

POSTAL_CODE_PATTERN: Final[re.Pattern] = re.compile(r"^[0-9]{6}$")


def validate_phone(value: str) -> bool:
    """Check a phone number is a +91 mobile number."""
    return bool(value) and bool(PHONE_PATTERN.match(value.strip()))


def validate_email(value: str) -> bool:
    """Loose structural check on an email address."""
    return bool(value) and bool(EMAIL_PATTERN.match(value.strip()))


def validate_postal_code(value: str) -> bool:
    """Check a six-digit postal (PIN) code."""
    return bool(value) and bool(POSTAL_CODE_PATTERN.match(value.strip()))


def normalize_email(value: str) -> str:
    """Canonical form used for comparisons and keys."""
    return value.strip().lower()
