"""
Audit trail for verification and contact-disclosure events.
"""

from core.audit.activity import (
    MAX_DETAILS_LENGTH,
    ActivityAction,
    ActivityCategory,
    ActivityRecord,
    ActivityStatus,
    RequestContext,
    Severity,
    compute_record_hash,
    verify_activity_chain,
)
from core.audit.log import AuditLog

__all__ = [
    "MAX_DETAILS_LENGTH",
    "ActivityAction",
    "ActivityCategory",
    "ActivityRecord",
    "ActivityStatus",
    "AuditLog",
    "RequestContext",
    "Severity",
    "compute_record_hash",
    "verify_activity_chain",
]
