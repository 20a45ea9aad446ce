"""
One-Time Code Repository

Holds issued codes plus an issuance ledger. The ledger outlives the codes
(which are purged an hour after creation) so the daily cap still counts
codes that no longer exist.

Integrity-critical mutations (insert, attempt counting, used/expired flags)
run entirely under the repository lock and are written to disk before the
call returns.
"""

from __future__ import annotations

import copy
import hmac
import json
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

from core.errors import RateLimitError
from core.otp.model import CodePurpose, OneTimeCode
from utils.clock import parse_timestamp, seconds_until_next_day, start_of_day

logger = logging.getLogger(__name__)


# =============================================================================
# Attempt Results
# =============================================================================


class AttemptOutcome(Enum):
    """Result of applying one submission to a stored code."""

    MATCHED = "matched"
    MISMATCH = "mismatch"
    ALREADY_USED = "already_used"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class AttemptResult:
    """Outcome plus a snapshot of the code after the attempt."""

    outcome: AttemptOutcome
    code: Optional[OneTimeCode]
    attempts_remaining: int


@dataclass(frozen=True)
class IssuanceEntry:
    """One line of the issuance ledger."""

    code_id: str
    subject_id: str
    issued_at: datetime

    def to_dict(self) -> dict:
        return {
            "code_id": self.code_id,
            "subject_id": self.subject_id,
            "issued_at": self.issued_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IssuanceEntry":
        return cls(
            code_id=data["code_id"],
            subject_id=data["subject_id"],
            issued_at=parse_timestamp(data["issued_at"]),
        )


# =============================================================================
# Repository
# =============================================================================


class OneTimeCodeRepository:
    """
    Repository for issued one-time codes.

    Uses JSON file persistence, swappable for database later.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialize repository.

        Args:
            persist_path: Path to JSON file for persistence
        """
        self._codes: dict[str, OneTimeCode] = {}  # code_id -> OneTimeCode
        self._ledger: list[IssuanceEntry] = []
        self._lock = threading.Lock()
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "codes": {cid: c.to_dict() for cid, c in self._codes.items()},
            "ledger": [e.to_dict() for e in self._ledger],
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for cid, code_data in data.get("codes", {}).items():
                self._codes[cid] = OneTimeCode.from_dict(code_data)
            self._ledger = [IssuanceEntry.from_dict(e) for e in data.get("ledger", [])]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load one-time code data from %s: %s", self._persist_path, e)

    # =========================================================================
    # Issue
    # =========================================================================

    def insert_if_allowed(
        self,
        code: OneTimeCode,
        cooldown: timedelta,
        daily_cap: int,
    ) -> OneTimeCode:
        """
        Store a new code unless the cooldown or the daily cap forbids it.

        The cooldown applies to an unused, unexpired code for the same
        (subject, target, purpose) issued less than ``cooldown`` ago. The cap
        counts every code the subject was issued since UTC midnight.

        Args:
            code: Freshly generated code (created_at is "now")
            cooldown: Minimum spacing between codes for the same scope
            daily_cap: Maximum codes per subject per calendar day

        Returns:
            The stored code

        Raises:
            RateLimitError: With retry_after in seconds
        """
        now = code.created_at
        with self._lock:
            for existing in self._codes.values():
                if not existing.same_scope(code.subject_id, code.target_id, code.purpose):
                    continue
                if existing.is_used or existing.is_expired or existing.is_past_expiry(now):
                    continue
                elapsed = (now - existing.created_at).total_seconds()
                if elapsed < cooldown.total_seconds():
                    wait = math.ceil(cooldown.total_seconds() - elapsed)
                    raise RateLimitError(
                        f"Please wait {wait} seconds before requesting another code",
                        retry_after=wait,
                        details={"reason": "cooldown"},
                    )

            issued_today = self._count_issued_since(code.subject_id, start_of_day(now))
            if issued_today >= daily_cap:
                raise RateLimitError(
                    "Daily code limit reached. Please try again tomorrow",
                    retry_after=seconds_until_next_day(now),
                    details={"reason": "daily_cap", "daily_cap": daily_cap},
                )

            self._codes[code.code_id] = code
            self._ledger.append(IssuanceEntry(code.code_id, code.subject_id, now))
            self._save_to_file()
            return copy.deepcopy(code)

    def _count_issued_since(self, subject_id: str, since: datetime) -> int:
        """Ledger entries for a subject since ``since``. Caller holds the lock."""
        return sum(1 for e in self._ledger if e.subject_id == subject_id and e.issued_at >= since)

    def delete(self, code_id: str) -> bool:
        """
        Remove a code and its ledger entry, as if it was never issued.

        Returns:
            True if the code existed
        """
        with self._lock:
            existed = self._codes.pop(code_id, None) is not None
            self._ledger = [e for e in self._ledger if e.code_id != code_id]
            self._save_to_file()
            return existed

    # =========================================================================
    # Validate
    # =========================================================================

    def apply_attempt(
        self,
        code_id: str,
        submitted: str,
        max_attempts: int,
        now: datetime,
    ) -> AttemptResult:
        """
        Apply one submission to a stored code atomically.

        Checks run in order: already used, attempts exhausted (forces the
        expired flag), expired, then comparison. A mismatch increments
        attempts and expires the code once the limit is reached. A match
        marks the code used.

        Args:
            code_id: Code record id
            submitted: Code supplied by the requester
            max_attempts: Attempt limit per code
            now: Current time

        Returns:
            AttemptResult describing the outcome
        """
        with self._lock:
            code = self._codes.get(code_id)
            if code is None:
                return AttemptResult(AttemptOutcome.NOT_FOUND, None, 0)

            if code.is_used:
                outcome = AttemptOutcome.ALREADY_USED
            elif code.attempts >= max_attempts:
                if not code.is_expired:
                    code.is_expired = True
                    self._save_to_file()
                outcome = AttemptOutcome.EXHAUSTED
            elif code.is_expired or code.is_past_expiry(now):
                outcome = AttemptOutcome.EXPIRED
            elif not hmac.compare_digest(
                code.code.encode("utf-8"), (submitted or "").strip().encode("utf-8")
            ):
                code.attempts += 1
                if code.attempts >= max_attempts:
                    code.is_expired = True
                self._save_to_file()
                outcome = AttemptOutcome.MISMATCH
            else:
                code.is_used = True
                code.verified_at = now
                self._save_to_file()
                outcome = AttemptOutcome.MATCHED

            return AttemptResult(
                outcome=outcome,
                code=copy.deepcopy(code),
                attempts_remaining=code.attempts_remaining(max_attempts),
            )

    # =========================================================================
    # Query Operations
    # =========================================================================

    def get(self, code_id: str) -> Optional[OneTimeCode]:
        """Get a snapshot of a code by ID."""
        with self._lock:
            code = self._codes.get(code_id)
            return copy.deepcopy(code) if code else None

    def latest_for(
        self,
        subject_id: str,
        target_id: Optional[str],
        purpose: CodePurpose,
    ) -> Optional[OneTimeCode]:
        """Most recently issued code for a (subject, target, purpose) scope."""
        with self._lock:
            matches = [
                c for c in self._codes.values() if c.same_scope(subject_id, target_id, purpose)
            ]
            if not matches:
                return None
            return copy.deepcopy(max(matches, key=lambda c: c.created_at))

    def count(self) -> int:
        """Get number of stored codes."""
        return len(self._codes)

    # =========================================================================
    # Retention
    # =========================================================================

    def purge_expired(self, now: datetime, retention: timedelta) -> int:
        """
        Physically delete codes past expiry or past the retention window.

        Ledger entries from before today's UTC midnight are dropped as well.

        Returns:
            Number of codes removed
        """
        day_start = start_of_day(now)
        with self._lock:
            stale = [
                cid
                for cid, c in self._codes.items()
                if c.is_past_expiry(now) or c.created_at + retention <= now
            ]
            for cid in stale:
                del self._codes[cid]
            before = len(self._ledger)
            self._ledger = [e for e in self._ledger if e.issued_at >= day_start]
            if stale or len(self._ledger) != before:
                self._save_to_file()
        return len(stale)
