"""
Registry Lookup Service

Side-effect-free matching against reference land-parcel data. "No match"
is a normal answer (None), not an error. Errors are reserved for the
registry itself being unreadable.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from core.errors import RegistryUnavailableError
from core.registry.record import RegistryRecord

logger = logging.getLogger(__name__)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


# =============================================================================
# Check Result
# =============================================================================


class CheckOutcome(Enum):
    """Result category of a registry check."""

    MATCHED = "matched"
    LOCATION_MISMATCH = "location_mismatch"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RegistryCheckResult:
    """Outcome of checking an identifier (and optionally its location)."""

    outcome: CheckOutcome
    record: Optional[RegistryRecord] = None
    provided_district: Optional[str] = None
    provided_sub_district: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.outcome == CheckOutcome.MATCHED

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        data: dict = {"outcome": self.outcome.value, "matched": self.matched}
        if self.outcome == CheckOutcome.MATCHED and self.record:
            data["record"] = self.record.to_public_dict()
        elif self.outcome == CheckOutcome.LOCATION_MISMATCH and self.record:
            data["expected"] = {
                "district": self.record.district,
                "sub_district": self.record.sub_district,
            }
            data["provided"] = {
                "district": self.provided_district,
                "sub_district": self.provided_sub_district,
            }
        return data


# =============================================================================
# Lookup Service
# =============================================================================


class RegistryLookup:
    """
    Read-only query surface over registry records.

    Records are indexed by normalized identifier. Invalid or inactive
    records are kept (for statistics and auditing) but never match.
    """

    def __init__(self, records: Iterable[RegistryRecord] = ()):
        self._by_identifier: dict[str, RegistryRecord] = {}
        for record in records:
            self._by_identifier[_norm(record.parcel_identifier)] = record

    @classmethod
    def from_json_file(cls, path: str) -> "RegistryLookup":
        """
        Load registry records from a JSON file.

        The file holds either a list of records or ``{"records": [...]}``.

        Raises:
            RegistryUnavailableError: File missing or malformed
        """
        source = Path(path)
        try:
            data = json.loads(source.read_text())
            rows = data.get("records", []) if isinstance(data, dict) else data
            records = [RegistryRecord.from_dict(row) for row in rows]
        except (OSError, json.JSONDecodeError, KeyError, ValueError, AttributeError) as e:
            raise RegistryUnavailableError(
                f"Could not load registry data from {source}", details={"reason": str(e)}
            ) from e

        logger.info("Loaded %d registry records from %s", len(records), source)
        return cls(records)

    # =========================================================================
    # Matching
    # =========================================================================

    def match_by_identifier_only(self, identifier: str) -> Optional[RegistryRecord]:
        """
        Find an active, valid parcel by identifier, ignoring location.

        Args:
            identifier: Parcel identifier (case-insensitive)

        Returns:
            Matching record or None
        """
        record = self._by_identifier.get(_norm(identifier))
        if record is None or not record.is_matchable:
            return None
        return record

    def match_with_location(
        self,
        identifier: str,
        district: str,
        sub_district: str,
    ) -> Optional[RegistryRecord]:
        """
        Find an active, valid parcel whose identifier, district and
        sub-district all agree (case-insensitive).

        Returns:
            Matching record or None
        """
        record = self.match_by_identifier_only(identifier)
        if record is None:
            return None
        if _norm(record.district) != _norm(district):
            return None
        if _norm(record.sub_district) != _norm(sub_district):
            return None
        return record

    def check(
        self,
        identifier: str,
        district: Optional[str] = None,
        sub_district: Optional[str] = None,
    ) -> RegistryCheckResult:
        """
        Classify an identifier as matched, location mismatch or not found.

        Without both district and sub-district only the identifier is checked.
        """
        if district and sub_district:
            record = self.match_with_location(identifier, district, sub_district)
            if record is not None:
                return RegistryCheckResult(CheckOutcome.MATCHED, record, district, sub_district)
            existing = self.match_by_identifier_only(identifier)
            if existing is not None:
                return RegistryCheckResult(
                    CheckOutcome.LOCATION_MISMATCH, existing, district, sub_district
                )
            return RegistryCheckResult(CheckOutcome.NOT_FOUND, None, district, sub_district)

        record = self.match_by_identifier_only(identifier)
        if record is not None:
            return RegistryCheckResult(CheckOutcome.MATCHED, record)
        return RegistryCheckResult(CheckOutcome.NOT_FOUND)

    # =========================================================================
    # Query Operations
    # =========================================================================

    def list_by_district(self, district: Optional[str] = None, limit: int = 50) -> list[RegistryRecord]:
        """
        Matchable parcels, optionally filtered by district substring.

        Sorted by district then identifier.
        """
        needle = _norm(district)
        records = [
            r
            for r in self._by_identifier.values()
            if r.is_matchable and (not needle or needle in _norm(r.district))
        ]
        records.sort(key=lambda r: (r.district, r.parcel_identifier))
        return records[:limit]

    def district_statistics(self) -> list[dict]:
        """
        Per-district parcel counts and areas broken down by land type.

        Only matchable parcels are counted.
        """
        grouped: dict[str, dict[str, dict]] = defaultdict(dict)
        for record in self._by_identifier.values():
            if not record.is_matchable:
                continue
            bucket = grouped[record.district].setdefault(
                record.land_type.value, {"type": record.land_type.value, "count": 0, "total_area": 0.0}
            )
            bucket["count"] += 1
            bucket["total_area"] += record.area_sqft or 0.0

        stats = []
        for district in sorted(grouped):
            land_types = sorted(grouped[district].values(), key=lambda b: b["type"])
            stats.append({
                "district": district,
                "land_types": land_types,
                "total_parcels": sum(b["count"] for b in land_types),
                "total_area": sum(b["total_area"] for b in land_types),
            })
        return stats

    def count(self) -> int:
        """Total records held, matchable or not."""
        return len(self._by_identifier)


class UnavailableRegistry(RegistryLookup):
    """
    Registry whose data could not be loaded.

    Every lookup raises RegistryUnavailableError, so automatic verification
    leaves listings pending instead of rejecting them as unknown.
    """

    def __init__(self, reason: str):
        super().__init__(())
        self.reason = reason

    def _unavailable(self) -> RegistryUnavailableError:
        return RegistryUnavailableError(
            "Land registry is unavailable", details={"reason": self.reason}
        )

    def match_by_identifier_only(self, identifier: str) -> Optional[RegistryRecord]:
        raise self._unavailable()

    def match_with_location(
        self, identifier: str, district: str, sub_district: str
    ) -> Optional[RegistryRecord]:
        raise self._unavailable()

    def list_by_district(self, district: Optional[str] = None, limit: int = 50) -> list[RegistryRecord]:
        raise self._unavailable()

    def district_statistics(self) -> list[dict]:
        raise self._unavailable()
