"""
Service Container

Wires repositories and workflow services together from a Config. The
FastAPI app keeps one container on ``app.state.services``; routes reach it
through ``get_services_from_request``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from core.audit import AuditLog
from core.contact import ContactDisclosureService
from core.errors import RegistryUnavailableError
from core.listing import PropertyRepository
from core.maintenance import SweepReport, sweep
from core.notifications import Notifier, build_notifier
from core.otp import OneTimeCodeEngine, OneTimeCodeRepository
from core.registry import RegistryLookup, UnavailableRegistry
from core.settings import AdminSettingsStore
from core.verification import VerificationEngine
from utils.clock import Clock, utcnow
from utils.config import Config

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler may need."""

    config: Config
    clock: Clock
    properties: PropertyRepository
    registry: RegistryLookup
    settings: AdminSettingsStore
    audit: AuditLog
    codes: OneTimeCodeEngine
    notifier: Notifier
    verification: VerificationEngine
    contact: ContactDisclosureService

    def run_sweep(self) -> SweepReport:
        """Purge expired codes and stale activity records."""
        return sweep(self.codes, self.audit, self.clock())


def load_registry(config: Config) -> RegistryLookup:
    """Registry from the seed file, or an unavailable stand-in if it cannot be read."""
    try:
        return RegistryLookup.from_json_file(config.registry_seed_path)
    except RegistryUnavailableError as e:
        logger.warning("Land registry unavailable: %s (%s)", e.message, e.details.get("reason"))
        return UnavailableRegistry(e.details.get("reason", e.message))


def build_services(
    config: Optional[Config] = None,
    clock: Clock = utcnow,
    notifier: Optional[Notifier] = None,
    registry: Optional[RegistryLookup] = None,
) -> Services:
    """
    Build a fully wired container.

    Args:
        config: Configuration (loaded from environment when None)
        clock: Source of the current time shared by every component
        notifier: Outbound messaging (chosen from config when None)
        registry: Reference registry (loaded from the seed file when None)

    Returns:
        Services instance
    """
    config = config or Config.load()
    notifier = notifier or build_notifier(config)
    registry = registry if registry is not None else load_registry(config)

    properties = PropertyRepository(config.persist_path("properties.json"), clock=clock)
    settings = AdminSettingsStore(
        config.persist_path("admin_settings.json"),
        default_mode=config.default_verification_mode,
        clock=clock,
    )
    audit = AuditLog(
        config.persist_path("activities.json"),
        retention_days=config.activity_retention_days,
        clock=clock,
    )
    codes = OneTimeCodeEngine(
        OneTimeCodeRepository(config.persist_path("one_time_codes.json")),
        config=config,
        clock=clock,
    )

    return Services(
        config=config,
        clock=clock,
        properties=properties,
        registry=registry,
        settings=settings,
        audit=audit,
        codes=codes,
        notifier=notifier,
        verification=VerificationEngine(
            properties, registry, settings, audit, notifier, config=config, clock=clock
        ),
        contact=ContactDisclosureService(
            properties, codes, audit, notifier, config=config, clock=clock
        ),
    )


def get_services_from_request(request: Request) -> Services:
    """FastAPI dependency returning the app's container."""
    return request.app.state.services


# =============================================================================
# Singleton Instance
# =============================================================================

_services_instance: Optional[Services] = None


def get_services() -> Services:
    """
    Get the process-wide container, built from the environment on first use.

    Returns:
        Services instance
    """
    global _services_instance
    if _services_instance is None:
        _services_instance = build_services()
    return _services_instance


def reset_services() -> None:
    """Reset the singleton instance (for testing)."""
    global _services_instance
    _services_instance = None
