"""
Shared fixtures: a controllable clock, a recording notifier, an in-memory
registry and fully wired services on temporary storage.
"""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core.listing import AgentProfile, create_property
from core.notifications import DeliveryResult
from core.registry import LandType, ParcelStatus, RegistryLookup, RegistryRecord
from utils.config import Config
from web.services import build_services


# =============================================================================
# Test Doubles
# =============================================================================


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    """Notifier that remembers every message and can be told to fail."""

    def __init__(self):
        self.codes: list[dict] = []
        self.outcomes: list[dict] = []
        self.alerts: list[dict] = []
        self.fail_codes = False
        self.fail_outcomes = False
        self.raise_on_alerts = False

    def send_code(self, destination, recipient_name, code, purpose):
        if self.fail_codes:
            return DeliveryResult.failed("gateway down")
        self.codes.append(
            {"destination": destination, "name": recipient_name, "code": code, "purpose": purpose}
        )
        return DeliveryResult.ok()

    def send_verification_outcome(self, agent, prop, outcome):
        if self.fail_outcomes:
            raise RuntimeError("mail relay unreachable")
        self.outcomes.append(
            {"to": agent.email, "property_id": prop.property_id, "outcome": outcome}
        )
        return DeliveryResult.ok()

    def send_contact_alert(self, recipient_email, recipient_name, prop, requester_email):
        if self.raise_on_alerts:
            raise RuntimeError("mail relay unreachable")
        self.alerts.append(
            {"to": recipient_email, "property_id": prop.property_id, "requester": requester_email}
        )
        return DeliveryResult.ok()

    @property
    def last_code(self) -> str:
        return self.codes[-1]["code"]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def tmp_data_dir():
    """Temporary data directory for repository files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def config(tmp_data_dir):
    """Config with default business limits and temporary storage."""
    return Config(
        debug=False,
        data_dir=tmp_data_dir,
        registry_seed_path=str(Path(tmp_data_dir) / "missing_seed.json"),
        identity_secret="test-identity-secret",
        admin_emails=("admin@example.com",),
        notifier="log",
    )


@pytest.fixture
def registry():
    """Small reference registry."""
    return RegistryLookup([
        RegistryRecord("TN/CBE/2023/003", "Coimbatore", "Pollachi", LandType.AGRICULTURAL, area_sqft=130680),
        RegistryRecord("TN/CBE/2023/001", "Coimbatore", "Coimbatore North", area_sqft=2400),
        RegistryRecord("TN/CHN/2023/001", "Chennai", "Ambattur", LandType.INDUSTRIAL, area_sqft=21780),
        RegistryRecord("TN/CHN/2023/004", "Chennai", "Madhavaram", status=ParcelStatus.DISPUTED),
        RegistryRecord("TN/CBE/2023/005", "Coimbatore", "Mettupalayam", valid=False),
    ])


@pytest.fixture
def services(config, clock, notifier, registry):
    """Fully wired services on temporary storage."""
    return build_services(config, clock=clock, notifier=notifier, registry=registry)


@pytest.fixture
def agent():
    return AgentProfile(
        agent_id="agent-1",
        name="Priya Raman",
        email="priya@agency.example",
        phone="+919876500001",
    )


@pytest.fixture
def property_data():
    """Factory for valid raw listing data; keyword overrides replace top-level keys."""

    def make(**overrides) -> dict:
        data = {
            "kind": "land",
            "title": "Coconut grove near Pollachi",
            "location": {
                "district": "Coimbatore",
                "sub_district": "Pollachi",
                "address": "12 Palakkad Road",
                "postal_code": "642001",
                "area": "Zamin Uthukuli",
            },
            "owner_details": {
                "name": "Senthil Kumar",
                "phone": "+919876543210",
                "email": "senthil@example.com",
            },
            "parcel_identifier": "TN/CBE/2023/003",
            "price": 4500000,
            "attributes": {"area_acres": 3},
        }
        data.update(overrides)
        return data

    return make


@pytest.fixture
def make_listing(agent, clock, property_data):
    """Factory for pending Property objects."""

    def make(**overrides):
        return create_property(property_data(**overrides), agent, now=clock())

    return make
