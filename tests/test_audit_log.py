"""
Tests for the Activity Audit Log

Tests covering:
1. Recording entries (truncation, bad input never raises)
2. Hash chain integrity and tamper detection
3. Queries and security alerts
4. Retention purge and persistence
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from core.audit import (
    MAX_DETAILS_LENGTH,
    ActivityAction,
    ActivityCategory,
    ActivityStatus,
    AuditLog,
    RequestContext,
    Severity,
    verify_activity_chain,
)


@pytest.fixture
def log_path(tmp_data_dir):
    return str(Path(tmp_data_dir) / "activities.json")


@pytest.fixture
def audit(log_path, clock):
    return AuditLog(log_path, retention_days=180, clock=clock)


def record_upload(audit, actor="agent-1", prop="PROP-1", **kwargs):
    return audit.record(
        ActivityAction.PROPERTY_UPLOAD,
        ActivityCategory.PROPERTY,
        actor_id=actor,
        property_id=prop,
        details="Uploaded land property",
        **kwargs,
    )


class TestRecording:
    """Tests for appending entries."""

    def test_record_fields(self, audit, clock):
        entry = record_upload(audit, metadata=RequestContext("10.0.0.1", "pytest").to_metadata(district="Chennai"))

        assert entry.activity_id.startswith("ACT-")
        assert entry.timestamp == clock()
        assert entry.severity == Severity.LOW
        assert entry.status == ActivityStatus.SUCCESS
        assert entry.metadata == {"ip_address": "10.0.0.1", "user_agent": "pytest", "district": "Chennai"}

    def test_details_truncated(self, audit):
        entry = audit.record(
            ActivityAction.CONTACT_REQUEST, ActivityCategory.PROPERTY, details="x" * 2000
        )
        assert len(entry.details) == MAX_DETAILS_LENGTH

    def test_string_enums_accepted(self, audit):
        entry = audit.record("otp_request", "otp", actor_id="user-1")
        assert entry.action == ActivityAction.OTP_REQUEST

    def test_unknown_action_is_swallowed(self, audit):
        """A bad audit write never breaks the caller."""
        assert audit.record("teleport", "property") is None
        assert audit.count() == 0

    def test_failed_write_leaves_no_entry(self, audit, monkeypatch):
        """An entry that cannot be saved is dropped and the chain is unchanged."""

        def disk_full():
            raise OSError("No space left on device")

        monkeypatch.setattr(audit, "_save_to_file", disk_full)
        assert record_upload(audit) is None
        assert audit.count() == 0

        monkeypatch.undo()
        entry = record_upload(audit, prop="PROP-2")
        assert entry.previous_hash is None
        assert audit.count() == 1
        assert audit.verify_integrity()["valid"]


class TestIntegrity:
    """Tests for the hash chain."""

    def test_entries_are_chained(self, audit):
        first = record_upload(audit)
        second = record_upload(audit, prop="PROP-2")

        assert first.previous_hash is None
        assert second.previous_hash == first.record_hash
        assert audit.verify_integrity()["valid"]

    def test_edited_entry_detected(self, audit):
        first = record_upload(audit)
        second = record_upload(audit, prop="PROP-2")
        tampered = replace(first, details="Nothing happened")

        result = verify_activity_chain([tampered, second])
        assert not result["valid"]
        assert result["broken_at"] == first.activity_id

    def test_removed_entry_detected(self, audit):
        first = record_upload(audit)
        record_upload(audit, prop="PROP-2")
        third = record_upload(audit, prop="PROP-3")

        result = verify_activity_chain([first, third])
        assert not result["valid"]
        assert result["broken_at"] == third.activity_id

    def test_tampered_file_detected_after_reload(self, audit, log_path, clock):
        record_upload(audit)
        record_upload(audit, prop="PROP-2")

        data = json.loads(Path(log_path).read_text())
        data["records"][0]["actor_id"] = "someone-else"
        Path(log_path).write_text(json.dumps(data))

        assert not AuditLog(log_path, clock=clock).verify_integrity()["valid"]


class TestQueries:
    """Tests for filtering and alerts."""

    def test_query_newest_first_with_limit(self, audit, clock):
        for i in range(5):
            record_upload(audit, prop=f"PROP-{i}")
            clock.advance(seconds=1)

        results = audit.query(limit=2)
        assert [r.property_id for r in results] == ["PROP-4", "PROP-3"]

    def test_query_filters_combine(self, audit):
        record_upload(audit, actor="agent-1", prop="PROP-1")
        record_upload(audit, actor="agent-2", prop="PROP-1")
        audit.record(ActivityAction.CONTACT_REQUEST, ActivityCategory.PROPERTY, actor_id="agent-1", property_id="PROP-1")

        results = audit.query(actor_id="agent-1", action="property_upload")
        assert len(results) == 1
        assert len(audit.list_for_property("PROP-1")) == 3
        assert len(audit.list_for_actor("agent-2")) == 1
        assert len(audit.list_by_category(ActivityCategory.PROPERTY)) == 3

    def test_security_alerts(self, audit):
        record_upload(audit)
        audit.record(
            ActivityAction.UNAUTHORIZED_PROPERTY_ACCESS,
            ActivityCategory.SECURITY,
            severity=Severity.MEDIUM,
            status=ActivityStatus.FAILED,
        )
        audit.record(ActivityAction.ADMIN_SETTINGS_UPDATE, ActivityCategory.ADMIN, severity=Severity.HIGH)
        audit.record(
            ActivityAction.PROPERTY_VERIFICATION,
            ActivityCategory.PROPERTY_VERIFICATION,
            status=ActivityStatus.FAILED,
        )

        alerts = audit.security_alerts()
        assert [a.action for a in alerts] == [
            ActivityAction.PROPERTY_VERIFICATION,
            ActivityAction.ADMIN_SETTINGS_UPDATE,
            ActivityAction.UNAUTHORIZED_PROPERTY_ACCESS,
        ]


class TestRetention:
    """Tests for purging and persistence."""

    def test_purge_drops_old_entries_and_keeps_chain_valid(self, audit, clock):
        record_upload(audit, prop="PROP-OLD")
        clock.advance(days=100)
        record_upload(audit, prop="PROP-MID")
        clock.advance(days=100)
        record_upload(audit, prop="PROP-NEW")

        assert audit.purge_expired() == 1
        assert [r.property_id for r in audit.query()] == ["PROP-NEW", "PROP-MID"]
        assert audit.verify_integrity()["valid"]

    def test_chain_continues_after_reload(self, audit, log_path, clock):
        first = record_upload(audit)

        reloaded = AuditLog(log_path, clock=clock)
        second = record_upload(reloaded, prop="PROP-2")

        assert second.previous_hash == first.record_hash
        assert reloaded.count() == 2
        assert reloaded.verify_integrity()["valid"]
