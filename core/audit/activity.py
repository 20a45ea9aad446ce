"""
Activity Records - Append-Only Audit Entries

Every security or business relevant event in the workflow becomes an
ActivityRecord. Records are immutable and hash chained: each record carries
the SHA-256 of its own content plus the hash of the record before it, so an
edited or removed entry breaks the chain.

Records are observability only. No business decision reads them back.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional

from utils.clock import parse_timestamp


# =============================================================================
# Constants
# =============================================================================

MAX_DETAILS_LENGTH: Final[int] = 500


# =============================================================================
# Enums
# =============================================================================


class ActivityAction(Enum):
    """Closed set of audited actions."""

    PROPERTY_UPLOAD = "property_upload"
    PROPERTY_DELETE = "property_delete"
    PROPERTY_VIEW = "property_view"
    PROPERTY_VERIFICATION = "property_verification"
    PROPERTY_APPROVE = "property_approve"
    PROPERTY_REJECT = "property_reject"
    OTP_REQUEST = "otp_request"
    OTP_VERIFY = "otp_verify"
    CONTACT_REQUEST = "contact_request"
    ADMIN_SETTINGS_UPDATE = "admin_settings_update"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    UNAUTHORIZED_PROPERTY_ACCESS = "unauthorized_property_access"


class ActivityCategory(Enum):
    """Grouping used by audit queries."""

    AUTH = "auth"
    PROPERTY = "property"
    PROPERTY_VERIFICATION = "property_verification"
    ADMIN = "admin"
    SECURITY = "security"
    OTP = "otp"
    USER_ACTION = "user_action"


class Severity(Enum):
    """How much attention an entry deserves."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActivityStatus(Enum):
    """Outcome of the audited action."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


# =============================================================================
# Hash Chain Utilities
# =============================================================================


def _serialize_for_hash(data: dict[str, Any]) -> str:
    """Deterministic JSON for hashing (sorted keys, compact separators)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def compute_record_hash(content: dict[str, Any], previous_hash: Optional[str]) -> str:
    """
    Compute the SHA-256 hash of an activity record.

    Args:
        content: Record fields excluding both hash fields
        previous_hash: Hash of the preceding record, or None for the first

    Returns:
        Hex digest
    """
    hashable = dict(content)
    hashable["previous_hash"] = previous_hash
    return hashlib.sha256(_serialize_for_hash(hashable).encode("utf-8")).hexdigest()


def truncate_details(details: Optional[str]) -> str:
    """Clamp free-text details to the stored maximum."""
    if not details:
        return ""
    return details[:MAX_DETAILS_LENGTH]


# =============================================================================
# Activity Record
# =============================================================================


@dataclass(frozen=True)
class ActivityRecord:
    """Immutable audit entry."""

    activity_id: str
    action: ActivityAction
    category: ActivityCategory
    timestamp: datetime
    record_hash: str
    actor_id: Optional[str] = None  # None for anonymous requesters
    target_user_id: Optional[str] = None
    property_id: Optional[str] = None
    details: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    severity: Severity = Severity.LOW
    status: ActivityStatus = ActivityStatus.SUCCESS
    previous_hash: Optional[str] = None

    def hash_content(self) -> dict[str, Any]:
        """Fields covered by the record hash."""
        return {
            "activity_id": self.activity_id,
            "action": self.action.value,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "target_user_id": self.target_user_id,
            "property_id": self.property_id,
            "details": self.details,
            "metadata": self.metadata,
            "severity": self.severity.value,
            "status": self.status.value,
        }

    @property
    def is_alert(self) -> bool:
        """True for entries surfaced as security alerts."""
        return (
            self.severity in (Severity.HIGH, Severity.CRITICAL)
            or self.category == ActivityCategory.SECURITY
            or self.status == ActivityStatus.FAILED
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = self.hash_content()
        data["previous_hash"] = self.previous_hash
        data["record_hash"] = self.record_hash
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityRecord":
        """Create from dictionary."""
        return cls(
            activity_id=data["activity_id"],
            action=ActivityAction(data["action"]),
            category=ActivityCategory(data["category"]),
            timestamp=parse_timestamp(data["timestamp"]),
            record_hash=data["record_hash"],
            actor_id=data.get("actor_id"),
            target_user_id=data.get("target_user_id"),
            property_id=data.get("property_id"),
            details=data.get("details", ""),
            metadata=data.get("metadata", {}),
            severity=Severity(data.get("severity", "low")),
            status=ActivityStatus(data.get("status", "success")),
            previous_hash=data.get("previous_hash"),
        )


@dataclass(frozen=True)
class RequestContext:
    """Who-and-where metadata copied into audit entries."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def to_metadata(self, **extra: Any) -> dict[str, Any]:
        """Metadata dict for an audit entry, with extra keys merged in."""
        data: dict[str, Any] = {}
        if self.ip_address:
            data["ip_address"] = self.ip_address
        if self.user_agent:
            data["user_agent"] = self.user_agent
        data.update(extra)
        return data


def verify_activity_chain(records: list[ActivityRecord]) -> dict[str, Any]:
    """
    Verify the integrity of a run of activity records.

    The first record's ``previous_hash`` is trusted as the anchor, since
    older entries may have been purged by retention.

    Returns:
        dict with:
            - valid: bool indicating if chain is intact
            - broken_at: activity_id where the chain broke (if any)
            - error: description of the issue (if any)
    """
    for i, record in enumerate(records):
        expected = compute_record_hash(record.hash_content(), record.previous_hash)
        if record.record_hash != expected:
            return {
                "valid": False,
                "broken_at": record.activity_id,
                "error": f"Hash mismatch at {record.activity_id}",
            }
        if i > 0 and record.previous_hash != records[i - 1].record_hash:
            return {
                "valid": False,
                "broken_at": record.activity_id,
                "error": f"Chain broken at {record.activity_id}",
            }

    return {"valid": True, "broken_at": None, "error": None}
