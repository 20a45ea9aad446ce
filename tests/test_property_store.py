"""
Tests for Property Listings

Tests covering:
1. Listing validation (field errors, land requires a survey number)
2. Verification invariant between status and details
3. Compare-and-set verification transitions
4. Counters, queries and persistence
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.errors import ConflictError, NotFoundError, ValidationError
from core.listing import (
    AutoRejection,
    AutoVerification,
    ManualDecision,
    PropertyKind,
    PropertyRepository,
    RejectionReason,
    VerificationStatus,
    create_property,
)


@pytest.fixture
def store_path(tmp_data_dir):
    return str(Path(tmp_data_dir) / "properties.json")


@pytest.fixture
def store(store_path, clock):
    return PropertyRepository(store_path, clock=clock)


def approval(clock):
    return ManualDecision(verified_by="admin-1", verified_at=clock(), notes="Documents checked")


def rejection(clock):
    return ManualDecision(
        verified_by="admin-1",
        verified_at=clock(),
        notes="Survey sketch does not match",
        rejection_reason="Survey sketch does not match",
    )


# =============================================================================
# Validation
# =============================================================================


class TestCreateProperty:
    """Tests for listing validation."""

    def test_valid_land_listing(self, make_listing):
        prop = make_listing()

        assert prop.kind == PropertyKind.LAND
        assert prop.property_id.startswith("PROP-")
        assert prop.verification_status == VerificationStatus.PENDING
        assert prop.verification_details is None
        assert prop.owner_details.email == "senthil@example.com"

    def test_land_requires_parcel_identifier(self, property_data, agent):
        with pytest.raises(ValidationError) as exc:
            create_property(property_data(parcel_identifier="  "), agent)
        assert "parcel_identifier" in exc.value.field_errors

    def test_house_without_parcel_identifier(self, property_data, agent):
        prop = create_property(property_data(kind="house", parcel_identifier=None), agent)
        assert prop.parcel_identifier is None

    def test_reports_every_bad_field(self, property_data, agent):
        data = property_data(
            kind="castle",
            title="",
            location={"district": "Chennai", "sub_district": "", "address": "x", "postal_code": "6000"},
            owner_details={"name": "", "phone": "9876543210"},
        )

        with pytest.raises(ValidationError) as exc:
            create_property(data, agent)
        errors = exc.value.field_errors
        for key in (
            "kind",
            "title",
            "location.sub_district",
            "location.postal_code",
            "owner_details.name",
            "owner_details.phone",
        ):
            assert key in errors

    def test_bad_owner_email(self, property_data, agent):
        data = property_data(owner_details={"name": "A", "phone": "+919876543210", "email": "nope"})
        with pytest.raises(ValidationError) as exc:
            create_property(data, agent)
        assert "owner_details.email" in exc.value.field_errors


# =============================================================================
# Verification Invariant
# =============================================================================


class TestVerificationInvariant:
    """Status and details must always agree."""

    def test_pending_with_details_is_invalid(self, make_listing, clock):
        with pytest.raises(ValueError):
            replace(make_listing(), verification_details=approval(clock))

    def test_verified_without_details_is_invalid(self, make_listing):
        with pytest.raises(ValueError):
            replace(make_listing(), verification_status=VerificationStatus.VERIFIED)

    def test_verified_with_rejection_is_invalid(self, make_listing, clock):
        with pytest.raises(ValueError):
            replace(
                make_listing(),
                verification_status=VerificationStatus.VERIFIED,
                verification_details=rejection(clock),
            )

    def test_rejected_with_auto_verification_is_invalid(self, make_listing, clock):
        with pytest.raises(ValueError):
            replace(
                make_listing(),
                verification_status=VerificationStatus.REJECTED,
                verification_details=AutoVerification(verified_at=clock(), registry_snapshot={}),
            )

    def test_rejected_with_auto_rejection(self, make_listing, clock):
        prop = replace(
            make_listing(),
            verification_status=VerificationStatus.REJECTED,
            verification_details=AutoRejection(
                rejected_at=clock(),
                rejection_reason=RejectionReason.IDENTIFIER_NOT_FOUND,
                rejection_notes="Parcel not found",
            ),
        )
        assert not prop.is_verified


# =============================================================================
# Repository
# =============================================================================


class TestPropertyRepository:
    """Tests for storage and transitions."""

    def test_create_and_get(self, store, make_listing):
        prop = store.create(make_listing())
        assert store.get(prop.property_id) == prop

    def test_duplicate_id_conflicts(self, store, make_listing):
        prop = store.create(make_listing())
        with pytest.raises(ConflictError):
            store.create(prop)

    def test_require_missing(self, store):
        with pytest.raises(NotFoundError):
            store.require("PROP-MISSING")

    def test_transition_from_pending(self, store, make_listing, clock):
        prop = store.create(make_listing())
        clock.advance(minutes=1)

        previous, updated = store.transition_verification(
            prop.property_id, VerificationStatus.VERIFIED, approval(clock),
            expected=VerificationStatus.PENDING,
        )

        assert previous == VerificationStatus.PENDING
        assert updated.is_verified
        assert updated.updated_at == clock()

    def test_second_transition_from_pending_conflicts(self, store, make_listing, clock):
        """Only one decision wins when two admins race."""
        prop = store.create(make_listing())
        store.transition_verification(
            prop.property_id, VerificationStatus.VERIFIED, approval(clock),
            expected=VerificationStatus.PENDING,
        )

        with pytest.raises(ConflictError) as exc:
            store.transition_verification(
                prop.property_id, VerificationStatus.REJECTED, rejection(clock),
                expected=VerificationStatus.PENDING,
            )
        assert exc.value.details["current_status"] == "verified"
        assert store.get(prop.property_id).is_verified

    def test_override_ignores_current_status(self, store, make_listing, clock):
        prop = store.create(make_listing())
        store.transition_verification(prop.property_id, VerificationStatus.VERIFIED, approval(clock))

        previous, updated = store.transition_verification(
            prop.property_id, VerificationStatus.REJECTED, rejection(clock)
        )
        assert previous == VerificationStatus.VERIFIED
        assert updated.verification_status == VerificationStatus.REJECTED

    def test_cannot_return_to_pending(self, store, make_listing, clock):
        prop = store.create(make_listing())
        with pytest.raises(ConflictError):
            store.transition_verification(prop.property_id, VerificationStatus.PENDING, None)

    def test_mismatched_details_leave_store_unchanged(self, store, make_listing, clock):
        prop = store.create(make_listing())
        with pytest.raises(ValueError):
            store.transition_verification(
                prop.property_id, VerificationStatus.VERIFIED, rejection(clock)
            )
        assert store.get(prop.property_id).is_pending

    def test_counters(self, store, make_listing):
        prop = store.create(make_listing())

        assert store.increment_contact_requests(prop.property_id) == 1
        assert store.increment_contact_requests(prop.property_id) == 2
        assert store.record_view(prop.property_id) == 1
        assert store.record_view("PROP-MISSING") is None

    def test_queries(self, store, make_listing, clock):
        first = store.create(make_listing(title="First"))
        clock.advance(minutes=1)
        second = store.create(make_listing(title="Second"))
        store.transition_verification(second.property_id, VerificationStatus.VERIFIED, approval(clock))

        assert [p.property_id for p in store.list_by_status(VerificationStatus.PENDING)] == [first.property_id]
        assert [p.property_id for p in store.list_visible()] == [second.property_id]
        assert [p.title for p in store.list_by_uploader("agent-1")] == ["Second", "First"]
        assert store.count_by_status() == {"pending_verification": 1, "verified": 1, "rejected": 0}

    def test_delete(self, store, make_listing):
        prop = store.create(make_listing())
        assert store.delete(prop.property_id)
        assert not store.delete(prop.property_id)
        assert store.count() == 0

    def test_persistence_round_trip(self, store_path, clock, make_listing):
        store = PropertyRepository(store_path, clock=clock)
        prop = store.create(make_listing())
        store.transition_verification(prop.property_id, VerificationStatus.REJECTED, rejection(clock))

        reloaded = PropertyRepository(store_path, clock=clock).get(prop.property_id)
        assert reloaded.verification_status == VerificationStatus.REJECTED
        assert reloaded.verification_details == rejection(clock)
