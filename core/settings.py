"""
Admin Settings Store

Persisted, admin-configurable settings. Currently holds the verification
mode, which decides whether new listings wait for an admin or are checked
against the registry on submission.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from core.errors import ValidationError
from utils.clock import Clock, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


class VerificationMode(Enum):
    """How newly submitted listings are verified."""

    MANUAL = "manual"
    AUTO = "auto"


def parse_verification_mode(value: Union[VerificationMode, str]) -> VerificationMode:
    """
    Coerce a mode value.

    Raises:
        ValidationError: Not ``manual`` or ``auto``
    """
    if isinstance(value, VerificationMode):
        return value
    try:
        return VerificationMode(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            "Invalid verification mode",
            field_errors={"mode": "Must be 'manual' or 'auto'"},
        ) from None


@dataclass(frozen=True)
class SettingChange:
    """Result of changing the verification mode."""

    previous: VerificationMode
    current: VerificationMode
    updated_by: str
    updated_at: datetime

    @property
    def changed(self) -> bool:
        return self.previous != self.current

    def to_dict(self) -> dict:
        return {
            "previous": self.previous.value,
            "current": self.current.value,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat(),
        }


class AdminSettingsStore:
    """
    Verification mode setting with JSON file persistence.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        default_mode: Union[VerificationMode, str] = VerificationMode.MANUAL,
        clock: Clock = utcnow,
    ):
        """
        Initialize store.

        Args:
            persist_path: Path to JSON file for persistence
            default_mode: Mode used until an admin sets one
            clock: Source of the current time
        """
        self._default_mode = parse_verification_mode(default_mode)
        self._mode: Optional[VerificationMode] = None
        self._updated_by: Optional[str] = None
        self._updated_at: Optional[datetime] = None
        self._lock = threading.Lock()
        self._clock = clock
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "verification_mode": self._mode.value if self._mode else None,
            "updated_by": self._updated_by,
            "updated_at": self._updated_at.isoformat() if self._updated_at else None,
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            if data.get("verification_mode"):
                self._mode = VerificationMode(data["verification_mode"])
            self._updated_by = data.get("updated_by")
            if data.get("updated_at"):
                self._updated_at = parse_timestamp(data["updated_at"])
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load admin settings from %s: %s", self._persist_path, e)

    def get_verification_mode(self) -> VerificationMode:
        """Current mode, or the default if no admin has set one."""
        return self._mode or self._default_mode

    def set_verification_mode(
        self, mode: Union[VerificationMode, str], admin_id: str
    ) -> SettingChange:
        """
        Change the verification mode.

        Args:
            mode: ``manual`` or ``auto``
            admin_id: Admin making the change

        Returns:
            SettingChange with previous and current mode

        Raises:
            ValidationError: Unknown mode
        """
        new_mode = parse_verification_mode(mode)
        with self._lock:
            previous = self.get_verification_mode()
            self._mode = new_mode
            self._updated_by = admin_id
            self._updated_at = self._clock()
            self._save_to_file()
            change = SettingChange(previous, new_mode, admin_id, self._updated_at)
        logger.info(
            "Verification mode changed from %s to %s by %s",
            previous.value, new_mode.value, admin_id,
        )
        return change

    def to_dict(self) -> dict:
        """Settings view for admins."""
        return {
            "verification_mode": self.get_verification_mode().value,
            "updated_by": self._updated_by,
            "updated_at": self._updated_at.isoformat() if self._updated_at else None,
        }
