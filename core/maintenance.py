"""
Periodic retention sweep.

Expired codes are already unusable the moment they expire; the sweep only
reclaims storage for them and for audit records past retention.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.audit import AuditLog
from core.otp import OneTimeCodeEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
    """How much one sweep removed."""

    codes_removed: int
    activities_removed: int

    def to_dict(self) -> dict:
        return {
            "codes_removed": self.codes_removed,
            "activities_removed": self.activities_removed,
        }


def sweep(
    codes: OneTimeCodeEngine,
    audit_log: AuditLog,
    now: Optional[datetime] = None,
) -> SweepReport:
    """
    Purge expired one-time codes and stale activity records.

    Args:
        codes: Code engine (uses its own clock and retention settings)
        audit_log: Activity log
        now: Reference time for activity retention

    Returns:
        SweepReport with removal counts
    """
    report = SweepReport(
        codes_removed=codes.purge_expired(),
        activities_removed=audit_log.purge_expired(now),
    )
    if report.codes_removed or report.activities_removed:
        logger.info(
            "Sweep removed %d codes and %d activity records",
            report.codes_removed, report.activities_removed,
        )
    return report
