"""
Audit Log Repository

Append-only store for ActivityRecords with JSON file persistence.
Writing to the audit log never fails the caller: errors are logged and
``record`` returns None.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Union
from uuid import uuid4

from core.audit.activity import (
    ActivityAction,
    ActivityCategory,
    ActivityRecord,
    ActivityStatus,
    Severity,
    compute_record_hash,
    truncate_details,
    verify_activity_chain,
)
from utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100


class AuditLog:
    """
    Hash-chained, append-only activity log.

    Uses JSON file persistence, swappable for database later.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        retention_days: int = 180,
        clock: Clock = utcnow,
    ):
        """
        Initialize the log.

        Args:
            persist_path: Path to JSON file for persistence
            retention_days: Age after which records are purged
            clock: Source of the current time
        """
        self._records: list[ActivityRecord] = []
        self._last_hash: Optional[str] = None
        self._retention = timedelta(days=retention_days)
        self._clock = clock
        self._lock = threading.Lock()
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "records": [r.to_dict() for r in self._records],
            "last_hash": self._last_hash,
            "saved_at": self._clock().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            self._records = [ActivityRecord.from_dict(r) for r in data.get("records", [])]
            self._last_hash = data.get("last_hash")
            if self._last_hash is None and self._records:
                self._last_hash = self._records[-1].record_hash
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load audit log from %s: %s", self._persist_path, e)

    # =========================================================================
    # Append
    # =========================================================================

    def record(
        self,
        action: Union[ActivityAction, str],
        category: Union[ActivityCategory, str],
        actor_id: Optional[str] = None,
        target_user_id: Optional[str] = None,
        property_id: Optional[str] = None,
        details: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        severity: Union[Severity, str] = Severity.LOW,
        status: Union[ActivityStatus, str] = ActivityStatus.SUCCESS,
    ) -> Optional[ActivityRecord]:
        """
        Append an activity record.

        Args:
            action: Audited action
            category: Query category
            actor_id: Who did it (None for anonymous)
            target_user_id: Affected user, if any
            property_id: Affected property, if any
            details: Free text, truncated to 500 characters
            metadata: Structured context (ip, user agent, before/after values)
            severity: Alert level
            status: Outcome

        Returns:
            The stored record, or None if it could not be written
        """
        try:
            with self._lock:
                content = {
                    "activity_id": f"ACT-{uuid4().hex[:12].upper()}",
                    "action": ActivityAction(action),
                    "category": ActivityCategory(category),
                    "timestamp": self._clock(),
                    "actor_id": actor_id,
                    "target_user_id": target_user_id,
                    "property_id": property_id,
                    "details": truncate_details(details),
                    "metadata": dict(metadata or {}),
                    "severity": Severity(severity),
                    "status": ActivityStatus(status),
                }
                draft = ActivityRecord(record_hash="", previous_hash=self._last_hash, **content)
                entry = ActivityRecord(
                    record_hash=compute_record_hash(draft.hash_content(), self._last_hash),
                    previous_hash=self._last_hash,
                    **content,
                )
                previous = self._last_hash
                self._records.append(entry)
                self._last_hash = entry.record_hash
                try:
                    self._save_to_file()
                except OSError:
                    self._records.pop()
                    self._last_hash = previous
                    raise
            return entry
        except (ValueError, TypeError, OSError):
            logger.exception("Failed to record activity %r", action)
            return None

    # =========================================================================
    # Query Operations
    # =========================================================================

    def query(
        self,
        actor_id: Optional[str] = None,
        property_id: Optional[str] = None,
        category: Optional[Union[ActivityCategory, str]] = None,
        action: Optional[Union[ActivityAction, str]] = None,
        severity: Optional[Union[Severity, str]] = None,
        status: Optional[Union[ActivityStatus, str]] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[ActivityRecord]:
        """
        Filter records, newest first.

        Args:
            actor_id: Only records by this actor
            property_id: Only records about this property
            category: Only this category
            action: Only this action
            severity: Only this severity
            status: Only this outcome
            limit: Maximum number of records returned

        Returns:
            Matching records, newest first
        """
        wanted_category = ActivityCategory(category) if category else None
        wanted_action = ActivityAction(action) if action else None
        wanted_severity = Severity(severity) if severity else None
        wanted_status = ActivityStatus(status) if status else None

        with self._lock:
            snapshot = list(self._records)

        result = []
        for entry in reversed(snapshot):
            if actor_id is not None and entry.actor_id != actor_id:
                continue
            if property_id is not None and entry.property_id != property_id:
                continue
            if wanted_category and entry.category != wanted_category:
                continue
            if wanted_action and entry.action != wanted_action:
                continue
            if wanted_severity and entry.severity != wanted_severity:
                continue
            if wanted_status and entry.status != wanted_status:
                continue
            result.append(entry)
            if len(result) >= limit:
                break
        return result

    def list_for_actor(self, actor_id: str, limit: int = 50) -> list[ActivityRecord]:
        """Get an actor's recent activity."""
        return self.query(actor_id=actor_id, limit=limit)

    def list_for_property(self, property_id: str, limit: int = 50) -> list[ActivityRecord]:
        """Get recent activity about a property."""
        return self.query(property_id=property_id, limit=limit)

    def list_by_category(
        self, category: Union[ActivityCategory, str], limit: int = 50
    ) -> list[ActivityRecord]:
        """Get recent activity in a category."""
        return self.query(category=category, limit=limit)

    def security_alerts(self, limit: int = 20) -> list[ActivityRecord]:
        """High/critical severity, security category or failed entries, newest first."""
        with self._lock:
            snapshot = list(self._records)
        return [r for r in reversed(snapshot) if r.is_alert][:limit]

    def count(self) -> int:
        """Get total number of retained records."""
        return len(self._records)

    # =========================================================================
    # Integrity and Retention
    # =========================================================================

    def verify_integrity(self) -> dict[str, Any]:
        """Recompute the hash chain over retained records."""
        with self._lock:
            snapshot = list(self._records)
        return verify_activity_chain(snapshot)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Drop records older than the retention window.

        Args:
            now: Reference time (defaults to the clock)

        Returns:
            Number of records removed
        """
        cutoff = (now or self._clock()) - self._retention
        with self._lock:
            kept = [r for r in self._records if r.timestamp >= cutoff]
            removed = len(self._records) - len(kept)
            if removed:
                self._records = kept
                self._save_to_file()
        if removed:
            logger.info("Purged %d audit records older than %s", removed, cutoff.isoformat())
        return removed
