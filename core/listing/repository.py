"""
Property Repository

One keyed store for every listing kind. Verification transitions are
compare-and-set on the current status, so two admins deciding the same
pending listing cannot both win.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Union

from core.errors import ConflictError, NotFoundError
from core.listing.schema import (
    Property,
    VerificationDetails,
    VerificationStatus,
)
from utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

ExpectedStatus = Union[VerificationStatus, Iterable[VerificationStatus], None]


class PropertyRepository:
    """
    Repository for property listings.

    Uses JSON file persistence, swappable for database later.
    """

    def __init__(self, persist_path: Optional[str] = None, clock: Clock = utcnow):
        """
        Initialize repository.

        Args:
            persist_path: Path to JSON file for persistence
            clock: Source of the current time
        """
        self._properties: dict[str, Property] = {}
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
            "properties": {pid: p.to_dict() for pid, p in self._properties.items()},
            "saved_at": self._clock().isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for pid, prop_data in data.get("properties", {}).items():
                self._properties[pid] = Property.from_dict(prop_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load property data from %s: %s", self._persist_path, e)

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def create(self, prop: Property) -> Property:
        """
        Store a new property.

        Raises:
            ConflictError: A property with this ID already exists
        """
        with self._lock:
            if prop.property_id in self._properties:
                raise ConflictError(f"Property {prop.property_id} already exists")
            self._properties[prop.property_id] = prop
            self._save_to_file()
        return prop

    def get(self, property_id: str) -> Optional[Property]:
        """Get property by ID."""
        return self._properties.get(property_id)

    def require(self, property_id: str) -> Property:
        """
        Get property by ID.

        Raises:
            NotFoundError: No such property
        """
        prop = self._properties.get(property_id)
        if prop is None:
            raise NotFoundError("Property not found", details={"property_id": property_id})
        return prop

    def delete(self, property_id: str) -> bool:
        """
        Hard-delete a property.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if self._properties.pop(property_id, None) is None:
                return False
            self._save_to_file()
        return True

    # =========================================================================
    # Verification
    # =========================================================================

    def transition_verification(
        self,
        property_id: str,
        new_status: VerificationStatus,
        details: VerificationDetails,
        expected: ExpectedStatus = None,
    ) -> tuple[VerificationStatus, Property]:
        """
        Atomically move a property to a decided status.

        Args:
            property_id: Property to change
            new_status: verified or rejected
            details: Details matching ``new_status``
            expected: Status (or statuses) the property must currently be in;
                None skips the check

        Returns:
            (previous status, updated property)

        Raises:
            NotFoundError: No such property
            ConflictError: Current status is not the expected one, or the
                target is pending_verification
        """
        if new_status == VerificationStatus.PENDING:
            raise ConflictError("A decided property cannot return to pending verification")

        if isinstance(expected, VerificationStatus):
            allowed: Optional[set] = {expected}
        elif expected is None:
            allowed = None
        else:
            allowed = set(expected)

        with self._lock:
            current = self._properties.get(property_id)
            if current is None:
                raise NotFoundError("Property not found", details={"property_id": property_id})
            previous = current.verification_status
            if allowed is not None and previous not in allowed:
                raise ConflictError(
                    f"Property is already {previous.value}",
                    details={"property_id": property_id, "current_status": previous.value},
                )
            updated = replace(
                current,
                verification_status=new_status,
                verification_details=details,
                updated_at=self._clock(),
            )
            self._properties[property_id] = updated
            self._save_to_file()
        return previous, updated

    # =========================================================================
    # Counters
    # =========================================================================

    def increment_contact_requests(self, property_id: str) -> int:
        """
        Add one to the contact request counter.

        Returns:
            New count

        Raises:
            NotFoundError: No such property
        """
        with self._lock:
            current = self._properties.get(property_id)
            if current is None:
                raise NotFoundError("Property not found", details={"property_id": property_id})
            updated = replace(current, contact_request_count=current.contact_request_count + 1)
            self._properties[property_id] = updated
            self._save_to_file()
        return updated.contact_request_count

    def record_view(self, property_id: str) -> Optional[int]:
        """Add one to the view counter. Returns None if the property is gone."""
        with self._lock:
            current = self._properties.get(property_id)
            if current is None:
                return None
            updated = replace(current, view_count=current.view_count + 1)
            self._properties[property_id] = updated
            self._save_to_file()
        return updated.view_count

    # =========================================================================
    # Query Operations
    # =========================================================================

    def list_all(self) -> list[Property]:
        """Get all properties, newest first."""
        return sorted(self._properties.values(), key=lambda p: p.created_at, reverse=True)

    def list_by_status(self, status: VerificationStatus) -> list[Property]:
        """Get properties in a verification status, oldest first (review queue order)."""
        return sorted(
            (p for p in self._properties.values() if p.verification_status == status),
            key=lambda p: p.created_at,
        )

    def list_by_uploader(self, agent_id: str) -> list[Property]:
        """Get an agent's properties, newest first."""
        return [p for p in self.list_all() if p.uploaded_by == agent_id]

    def list_visible(self) -> list[Property]:
        """Publicly visible (verified) properties, newest first."""
        return [p for p in self.list_all() if p.is_verified]

    def count_by_status(self) -> dict[str, int]:
        """Number of properties per verification status."""
        counts = {status.value: 0 for status in VerificationStatus}
        for prop in self._properties.values():
            counts[prop.verification_status.value] += 1
        return counts

    def count(self) -> int:
        """Get total number of properties."""
        return len(self._properties)

