"""
One-Time Code Model

Short-lived six digit codes scoped by purpose. A code is usable only while
it is unused, not flagged expired, before its expiry time and with attempts
left. Everything else about a code is bookkeeping around those four checks.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Final, Optional
from uuid import uuid4

from core.validators import validate_email, validate_phone
from utils.clock import parse_timestamp


# =============================================================================
# Constants
# =============================================================================

CODE_DIGITS: Final[int] = 6

ANONYMOUS_SUBJECT_PREFIX: Final[str] = "anon:"


# =============================================================================
# Enums
# =============================================================================


class CodePurpose(Enum):
    """What a code unlocks."""

    PROPERTY_CONTACT = "property_contact"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    PHONE_VERIFICATION = "phone_verification"


class DestinationKind(Enum):
    """Channel a code is delivered over."""

    EMAIL = "email"
    PHONE = "phone"


# Which channels are accepted for each purpose
ALLOWED_DESTINATIONS: Final[dict[CodePurpose, tuple[DestinationKind, ...]]] = {
    CodePurpose.PROPERTY_CONTACT: (DestinationKind.PHONE, DestinationKind.EMAIL),
    CodePurpose.EMAIL_VERIFICATION: (DestinationKind.EMAIL,),
    CodePurpose.PASSWORD_RESET: (DestinationKind.EMAIL,),
    CodePurpose.PHONE_VERIFICATION: (DestinationKind.PHONE,),
}


def classify_destination(destination: str) -> Optional[DestinationKind]:
    """Return the channel a destination string belongs to, if any."""
    if validate_phone(destination):
        return DestinationKind.PHONE
    if validate_email(destination):
        return DestinationKind.EMAIL
    return None


def generate_numeric_code() -> str:
    """Uniformly random zero-padded six digit code ("000000"-"999999")."""
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


def anonymous_subject(email: str) -> str:
    """Subject id used for codes requested without an account."""
    return f"{ANONYMOUS_SUBJECT_PREFIX}{email.strip().lower()}"


# =============================================================================
# Data Model
# =============================================================================


@dataclass
class OneTimeCode:
    """
    A single issued code.

    Mutable: attempts, is_used, is_expired and verified_at change under the
    repository lock only.
    """

    code_id: str
    subject_id: str
    purpose: CodePurpose
    code: str
    destination: str
    expiry_time: datetime
    created_at: datetime
    target_id: Optional[str] = None
    attempts: int = 0
    is_used: bool = False
    is_expired: bool = False
    verified_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate code data."""
        if not self.code_id:
            raise ValueError("code_id is required")
        if not self.subject_id:
            raise ValueError("subject_id is required")
        if len(self.code) != CODE_DIGITS or not self.code.isdigit():
            raise ValueError("code must be six digits")
        if self.attempts < 0:
            raise ValueError("attempts cannot be negative")

    def is_past_expiry(self, now: datetime) -> bool:
        """Wall-clock expiry, independent of the stored flag."""
        return self.expiry_time <= now

    def attempts_remaining(self, max_attempts: int) -> int:
        """Attempts left before the code locks."""
        return max(0, max_attempts - self.attempts)

    def is_usable(self, now: datetime, max_attempts: int) -> bool:
        """True if a correct submission right now would succeed."""
        return (
            not self.is_used
            and not self.is_expired
            and not self.is_past_expiry(now)
            and self.attempts < max_attempts
        )

    def same_scope(self, subject_id: str, target_id: Optional[str], purpose: CodePurpose) -> bool:
        """True if this code was issued for the given (subject, target, purpose)."""
        return (
            self.subject_id == subject_id
            and self.target_id == target_id
            and self.purpose == purpose
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code_id": self.code_id,
            "subject_id": self.subject_id,
            "target_id": self.target_id,
            "purpose": self.purpose.value,
            "code": self.code,
            "destination": self.destination,
            "attempts": self.attempts,
            "is_used": self.is_used,
            "is_expired": self.is_expired,
            "expiry_time": self.expiry_time.isoformat(),
            "created_at": self.created_at.isoformat(),
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OneTimeCode":
        """Create from dictionary."""
        return cls(
            code_id=data["code_id"],
            subject_id=data["subject_id"],
            target_id=data.get("target_id"),
            purpose=CodePurpose(data["purpose"]),
            code=data["code"],
            destination=data["destination"],
            attempts=data.get("attempts", 0),
            is_used=data.get("is_used", False),
            is_expired=data.get("is_expired", False),
            expiry_time=parse_timestamp(data["expiry_time"]),
            created_at=parse_timestamp(data["created_at"]),
            verified_at=(
                parse_timestamp(data["verified_at"]) if data.get("verified_at") else None
            ),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            context=data.get("context", {}),
        )


def create_one_time_code(
    subject_id: str,
    purpose: CodePurpose,
    destination: str,
    now: datetime,
    lifetime: timedelta,
    target_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    context: Optional[dict[str, Any]] = None,
) -> OneTimeCode:
    """
    Create a fresh, unsaved code.

    Args:
        subject_id: Requester (user id or anonymous subject)
        purpose: What the code unlocks
        destination: Phone or email the code is delivered to
        now: Issue time
        lifetime: Time until expiry
        target_id: Property or account the code is scoped to
        ip_address: Request metadata
        user_agent: Request metadata
        context: Extra data the caller needs at validation time

    Returns:
        New OneTimeCode instance
    """
    return OneTimeCode(
        code_id=f"OTP-{uuid4().hex[:12].upper()}",
        subject_id=subject_id,
        target_id=target_id,
        purpose=purpose,
        code=generate_numeric_code(),
        destination=destination.strip(),
        expiry_time=now + lifetime,
        created_at=now,
        ip_address=ip_address,
        user_agent=user_agent,
        context=dict(context or {}),
    )


# =============================================================================
# Projections
# =============================================================================


@dataclass(frozen=True)
class CodeStatus:
    """Read-only view of a code for its owner."""

    code_id: str
    purpose: CodePurpose
    is_used: bool
    is_expired: bool
    attempts: int
    attempts_remaining: int
    expiry_time: datetime
    can_retry: bool

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "code_id": self.code_id,
            "purpose": self.purpose.value,
            "is_used": self.is_used,
            "is_expired": self.is_expired,
            "attempts": self.attempts,
            "attempts_remaining": self.attempts_remaining,
            "expiry_time": self.expiry_time.isoformat(),
            "can_retry": self.can_retry,
        }
