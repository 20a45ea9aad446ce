"""
Configuration management.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    Every rate limit, expiry and retention window used by the
    verification and contact-disclosure workflow lives here so tests
    can shrink or stretch them without touching module constants.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: _env_int("PORT", 8000))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    # Data
    data_dir: str = field(default_factory=lambda: os.getenv("DATA_DIR", "./data"))
    registry_seed_path: str = field(
        default_factory=lambda: os.getenv("REGISTRY_SEED_PATH", "./data/registry_seed.json")
    )

    # Identity (tokens are minted by the external identity service)
    identity_secret: str = field(default_factory=lambda: os.getenv("IDENTITY_SECRET", ""))

    # One-time codes
    contact_code_expiry_minutes: int = field(
        default_factory=lambda: _env_int("CONTACT_CODE_EXPIRY_MINUTES", 5)
    )
    password_reset_code_expiry_minutes: int = field(
        default_factory=lambda: _env_int("PASSWORD_RESET_CODE_EXPIRY_MINUTES", 10)
    )
    contact_code_cooldown_seconds: int = field(
        default_factory=lambda: _env_int("CONTACT_CODE_COOLDOWN_SECONDS", 120)
    )
    registration_code_cooldown_seconds: int = field(
        default_factory=lambda: _env_int("REGISTRATION_CODE_COOLDOWN_SECONDS", 60)
    )
    max_code_attempts: int = field(default_factory=lambda: _env_int("MAX_CODE_ATTEMPTS", 3))
    daily_code_cap: int = field(default_factory=lambda: _env_int("DAILY_CODE_CAP", 10))
    code_retention_seconds: int = field(
        default_factory=lambda: _env_int("CODE_RETENTION_SECONDS", 3600)
    )

    # Verification
    default_verification_mode: str = field(
        default_factory=lambda: os.getenv("DEFAULT_VERIFICATION_MODE", "manual")
    )
    rejection_reason_min_length: int = field(
        default_factory=lambda: _env_int("REJECTION_REASON_MIN_LENGTH", 10)
    )

    # Audit trail
    activity_retention_days: int = field(
        default_factory=lambda: _env_int("ACTIVITY_RETENTION_DAYS", 180)
    )
    sweep_interval_seconds: int = field(
        default_factory=lambda: _env_int("SWEEP_INTERVAL_SECONDS", 300)
    )

    # Notifications
    notifier: str = field(default_factory=lambda: os.getenv("NOTIFIER", "log"))
    admin_emails: tuple[str, ...] = field(default_factory=lambda: _env_list("ADMIN_EMAILS"))
    mail_from: str = field(
        default_factory=lambda: os.getenv("MAIL_FROM", "no-reply@localhost")
    )
    smtp_host: str = field(default_factory=lambda: os.getenv("SMTP_HOST", "localhost"))
    smtp_port: int = field(default_factory=lambda: _env_int("SMTP_PORT", 587))
    smtp_username: Optional[str] = field(default_factory=lambda: os.getenv("SMTP_USERNAME"))
    smtp_password: Optional[str] = field(default_factory=lambda: os.getenv("SMTP_PASSWORD"))
    smtp_use_tls: bool = field(
        default_factory=lambda: os.getenv("SMTP_USE_TLS", "true").lower() == "true"
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def persist_path(self, filename: str) -> str:
        """Path of a repository file inside the data directory."""
        return os.path.join(self.data_dir, filename)

    def to_dict(self) -> dict:
        """Convert config to dictionary (secrets omitted)."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "data_dir": self.data_dir,
            "registry_seed_path": self.registry_seed_path,
            "contact_code_expiry_minutes": self.contact_code_expiry_minutes,
            "password_reset_code_expiry_minutes": self.password_reset_code_expiry_minutes,
            "contact_code_cooldown_seconds": self.contact_code_cooldown_seconds,
            "registration_code_cooldown_seconds": self.registration_code_cooldown_seconds,
            "max_code_attempts": self.max_code_attempts,
            "daily_code_cap": self.daily_code_cap,
            "code_retention_seconds": self.code_retention_seconds,
            "default_verification_mode": self.default_verification_mode,
            "rejection_reason_min_length": self.rejection_reason_min_length,
            "activity_retention_days": self.activity_retention_days,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "notifier": self.notifier,
            "admin_emails": list(self.admin_emails),
            "mail_from": self.mail_from,
            "smtp_host": self.smtp_host,
            "smtp_port": self.smtp_port,
        }
