"""
Tests for Registry Lookup

Tests covering:
1. Identifier and location matching (case-insensitive, active and valid only)
2. Check classification: matched, location mismatch, not found
3. District listing and statistics
4. Loading records from JSON, and the unavailable stand-in
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from core.errors import RegistryUnavailableError
from core.registry import CheckOutcome, RegistryLookup, UnavailableRegistry


class TestMatching:
    """Tests for identifier and location matching."""

    def test_match_with_location(self, registry):
        record = registry.match_with_location("TN/CBE/2023/003", "Coimbatore", "Pollachi")
        assert record is not None
        assert record.sub_district == "Pollachi"

    def test_matching_ignores_case_and_whitespace(self, registry):
        record = registry.match_with_location("  tn/cbe/2023/003 ", "COIMBATORE", "pollachi ")
        assert record is not None

    def test_wrong_location_is_no_match(self, registry):
        assert registry.match_with_location("TN/CBE/2023/003", "Coimbatore", "Palladam") is None

    def test_identifier_only(self, registry):
        assert registry.match_by_identifier_only("TN/CHN/2023/001").district == "Chennai"
        assert registry.match_by_identifier_only("TN/XXX/0000/000") is None

    def test_disputed_and_invalid_parcels_never_match(self, registry):
        assert registry.match_by_identifier_only("TN/CHN/2023/004") is None
        assert registry.match_by_identifier_only("TN/CBE/2023/005") is None
        assert registry.match_with_location("TN/CBE/2023/005", "Coimbatore", "Mettupalayam") is None


class TestCheck:
    """Tests for check classification."""

    def test_matched(self, registry):
        result = registry.check("TN/CBE/2023/003", "Coimbatore", "Pollachi")
        assert result.outcome == CheckOutcome.MATCHED
        assert result.to_dict()["record"]["parcel_identifier"] == "TN/CBE/2023/003"

    def test_location_mismatch_reports_expected_location(self, registry):
        result = registry.check("TN/CBE/2023/003", "Coimbatore", "Palladam")
        data = result.to_dict()

        assert result.outcome == CheckOutcome.LOCATION_MISMATCH
        assert data["expected"] == {"district": "Coimbatore", "sub_district": "Pollachi"}
        assert data["provided"] == {"district": "Coimbatore", "sub_district": "Palladam"}

    def test_not_found(self, registry):
        assert registry.check("TN/XXX/0000/000", "Chennai", "Ambattur").outcome == CheckOutcome.NOT_FOUND

    def test_identifier_only_check(self, registry):
        assert registry.check("TN/CHN/2023/001").matched

    def test_public_dict_hides_owner(self, registry):
        record = registry.match_by_identifier_only("TN/CBE/2023/003")
        public = record.to_public_dict()
        assert "owner_name" not in public
        assert "document_number" not in public


class TestQueries:
    """Tests for district listing and statistics."""

    def test_list_by_district_substring(self, registry):
        records = registry.list_by_district("coimb")
        assert [r.parcel_identifier for r in records] == ["TN/CBE/2023/001", "TN/CBE/2023/003"]

    def test_list_all_matchable(self, registry):
        assert len(registry.list_by_district()) == 3

    def test_list_limit(self, registry):
        assert len(registry.list_by_district(limit=1)) == 1

    def test_statistics_by_district(self, registry):
        stats = {s["district"]: s for s in registry.district_statistics()}

        assert set(stats) == {"Chennai", "Coimbatore"}
        assert stats["Coimbatore"]["total_parcels"] == 2
        assert stats["Coimbatore"]["total_area"] == 133080
        land_types = {t["type"]: t["count"] for t in stats["Coimbatore"]["land_types"]}
        assert land_types == {"agricultural": 1, "residential": 1}

    def test_count_includes_unmatchable(self, registry):
        assert registry.count() == 5


class TestLoading:
    """Tests for loading registry data."""

    def test_load_from_records_object(self, tmp_data_dir):
        path = Path(tmp_data_dir) / "seed.json"
        path.write_text(json.dumps({"records": [
            {"parcel_identifier": "TN/ERD/2023/001", "district": "Erode", "sub_district": "Erode",
             "land_type": "commercial", "area_sqft": 4800},
        ]}))

        registry = RegistryLookup.from_json_file(str(path))
        assert registry.match_with_location("TN/ERD/2023/001", "Erode", "Erode") is not None

    def test_load_from_plain_list(self, tmp_data_dir):
        path = Path(tmp_data_dir) / "seed.json"
        path.write_text(json.dumps([
            {"parcel_identifier": "TN/ERD/2023/002", "district": "Erode", "sub_district": "Bhavani"},
        ]))

        assert RegistryLookup.from_json_file(str(path)).count() == 1

    def test_missing_file_is_unavailable(self, tmp_data_dir):
        with pytest.raises(RegistryUnavailableError):
            RegistryLookup.from_json_file(str(Path(tmp_data_dir) / "nope.json"))

    def test_malformed_record_is_unavailable(self, tmp_data_dir):
        path = Path(tmp_data_dir) / "seed.json"
        path.write_text(json.dumps([{"district": "Erode"}]))

        with pytest.raises(RegistryUnavailableError):
            RegistryLookup.from_json_file(str(path))

    def test_bundled_seed_loads(self):
        seed = Path(__file__).parent.parent / "data" / "registry_seed.json"
        registry = RegistryLookup.from_json_file(str(seed))

        assert registry.match_with_location("TN/CBE/2023/003", "Coimbatore", "Pollachi") is not None

    def test_unavailable_registry_raises_on_lookup(self):
        registry = UnavailableRegistry("seed missing")
        with pytest.raises(RegistryUnavailableError):
            registry.match_with_location("TN/CBE/2023/003", "Coimbatore", "Pollachi")
        with pytest.raises(RegistryUnavailableError):
            registry.check("TN/CBE/2023/003")
