"""
Tests for One-Time Codes

Tests covering:
1. Issue: format, expiry per purpose, destination rules
2. Validate: success, reuse, mismatch countdown, lockout, expiry, ownership
3. Rate limits: per-scope cooldown and per-subject daily cap
4. Resend, discard, status and retention purge
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest

from core.errors import (
    AttemptsExhaustedError,
    AuthorizationError,
    CodeAlreadyUsedError,
    CodeExpiredError,
    ConflictError,
    InvalidCodeError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from core.otp import (
    CODE_DIGITS,
    CodePurpose,
    OneTimeCodeEngine,
    OneTimeCodeRepository,
    anonymous_subject,
    generate_numeric_code,
)

PHONE = "+919876543210"
EMAIL = "buyer@example.com"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def codes_path(tmp_data_dir):
    return str(Path(tmp_data_dir) / "codes.json")


@pytest.fixture
def engine(codes_path, config, clock):
    return OneTimeCodeEngine(OneTimeCodeRepository(codes_path), config=config, clock=clock)


def wrong(code: str) -> str:
    """A six digit code guaranteed to differ from ``code``."""
    return f"{(int(code) + 1) % 10 ** CODE_DIGITS:06d}"


def issue_contact(engine, subject="user-1", target="PROP-1", destination=PHONE):
    return engine.issue(subject, CodePurpose.PROPERTY_CONTACT, destination, target_id=target)


# =============================================================================
# Issue
# =============================================================================


class TestIssue:
    """Tests for code creation."""

    def test_generated_codes_are_six_digits(self):
        """Codes are zero-padded six digit strings."""
        for _ in range(200):
            code = generate_numeric_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_contact_code_expires_after_five_minutes(self, engine, clock):
        code = issue_contact(engine)
        assert code.expiry_time == clock() + timedelta(minutes=5)
        assert code.attempts == 0
        assert not code.is_used
        assert code.code_id.startswith("OTP-")

    def test_password_reset_code_expires_after_ten_minutes(self, engine, clock):
        code = engine.issue("user-1", CodePurpose.PASSWORD_RESET, EMAIL)
        assert code.expiry_time == clock() + timedelta(minutes=10)

    def test_invalid_destination_rejected(self, engine):
        with pytest.raises(ValidationError) as exc:
            issue_contact(engine, destination="not-a-phone")
        assert "destination" in exc.value.field_errors

    def test_password_reset_requires_email(self, engine):
        """Password reset codes go to email only."""
        with pytest.raises(ValidationError):
            engine.issue("user-1", CodePurpose.PASSWORD_RESET, PHONE)

    def test_anonymous_subject_is_normalized(self):
        assert anonymous_subject("  Buyer@Example.COM ") == "anon:buyer@example.com"


# =============================================================================
# Validate
# =============================================================================


class TestValidate:
    """Tests for redeeming codes."""

    def test_correct_code_marks_used(self, engine, clock):
        issued = issue_contact(engine)
        redeemed = engine.validate(issued.code_id, issued.code, "user-1")

        assert redeemed.is_used
        assert redeemed.verified_at == clock()

    def test_code_cannot_be_used_twice(self, engine):
        issued = issue_contact(engine)
        engine.validate(issued.code_id, issued.code, "user-1")

        with pytest.raises(CodeAlreadyUsedError):
            engine.validate(issued.code_id, issued.code, "user-1")

    def test_mismatch_counts_down_attempts(self, engine):
        issued = issue_contact(engine)

        with pytest.raises(InvalidCodeError) as first:
            engine.validate(issued.code_id, wrong(issued.code), "user-1")
        with pytest.raises(InvalidCodeError) as second:
            engine.validate(issued.code_id, wrong(issued.code), "user-1")

        assert first.value.attempts_remaining == 2
        assert second.value.attempts_remaining == 1

    def test_third_mismatch_locks_code(self, engine):
        """After three wrong codes even the right one is refused."""
        issued = issue_contact(engine)
        for _ in range(2):
            with pytest.raises(InvalidCodeError):
                engine.validate(issued.code_id, wrong(issued.code), "user-1")

        with pytest.raises(InvalidCodeError) as third:
            engine.validate(issued.code_id, wrong(issued.code), "user-1")
        assert third.value.attempts_remaining == 0

        with pytest.raises(AttemptsExhaustedError):
            engine.validate(issued.code_id, issued.code, "user-1")
        with pytest.raises(AttemptsExhaustedError):
            engine.validate(issued.code_id, wrong(issued.code), "user-1")

        status = engine.status(issued.code_id, "user-1")
        assert status.is_expired
        assert status.attempts == 3
        assert not status.can_retry

    def test_expired_code_rejected_without_consuming_attempt(self, engine, clock):
        issued = issue_contact(engine)
        clock.advance(minutes=5)

        with pytest.raises(CodeExpiredError):
            engine.validate(issued.code_id, issued.code, "user-1")
        assert engine.status(issued.code_id, "user-1").attempts == 0

    def test_code_valid_just_before_expiry(self, engine, clock):
        issued = issue_contact(engine)
        clock.advance(minutes=4, seconds=59)

        assert engine.validate(issued.code_id, issued.code, "user-1").is_used

    def test_foreign_requester_is_refused(self, engine):
        """Another user's code id is refused and no attempt is consumed."""
        issued = issue_contact(engine)

        with pytest.raises(AuthorizationError):
            engine.validate(issued.code_id, issued.code, "user-2")
        assert engine.status(issued.code_id, "user-1").attempts == 0

    def test_unknown_code_not_found(self, engine):
        with pytest.raises(NotFoundError):
            engine.validate("OTP-DOESNOTEXIST", "123456", "user-1")

    def test_code_past_retention_not_found(self, engine, clock):
        issued = issue_contact(engine)
        clock.advance(hours=1)

        with pytest.raises(NotFoundError):
            engine.validate(issued.code_id, issued.code, "user-1")

    def test_validate_latest_uses_newest_code(self, engine, clock):
        first = issue_contact(engine)
        clock.advance(minutes=6)
        second = issue_contact(engine)

        redeemed = engine.validate_latest("user-1", "PROP-1", CodePurpose.PROPERTY_CONTACT, second.code)
        assert redeemed.code_id == second.code_id
        assert first.code_id != second.code_id

    def test_validate_latest_without_code(self, engine):
        with pytest.raises(NotFoundError):
            engine.validate_latest("user-1", "PROP-1", CodePurpose.PROPERTY_CONTACT, "123456")

    @pytest.mark.parametrize("submitted", ["１２３４５６", "é", "12345٦"])
    def test_non_ascii_code_counts_as_mismatch(self, engine, submitted):
        """Unicode input is a wrong code, not a crash."""
        issued = issue_contact(engine)

        with pytest.raises(InvalidCodeError) as exc:
            engine.validate(issued.code_id, submitted, "user-1")
        assert exc.value.attempts_remaining == 2
        assert engine.validate(issued.code_id, issued.code, "user-1").is_used


# =============================================================================
# Rate Limits
# =============================================================================


class TestRateLimits:
    """Tests for cooldown and daily cap."""

    def test_cooldown_reports_remaining_seconds(self, engine, clock):
        issue_contact(engine)
        clock.advance(seconds=90)

        with pytest.raises(RateLimitError) as exc:
            issue_contact(engine)
        assert exc.value.retry_after == 30
        assert exc.value.details["reason"] == "cooldown"

    def test_cooldown_elapsed_allows_new_code(self, engine, clock):
        issue_contact(engine)
        clock.advance(seconds=120)

        assert issue_contact(engine).code

    def test_cooldown_is_per_target(self, engine):
        """A code for one property does not block a code for another."""
        issue_contact(engine, target="PROP-1")
        assert issue_contact(engine, target="PROP-2").code

    def test_used_code_does_not_hold_cooldown(self, engine):
        issued = issue_contact(engine)
        engine.validate(issued.code_id, issued.code, "user-1")

        assert issue_contact(engine).code

    def test_registration_cooldown_is_sixty_seconds(self, engine, clock):
        engine.issue("user-1", CodePurpose.EMAIL_VERIFICATION, EMAIL)
        clock.advance(seconds=45)

        with pytest.raises(RateLimitError) as exc:
            engine.issue("user-1", CodePurpose.EMAIL_VERIFICATION, EMAIL)
        assert exc.value.retry_after == 15

    def test_daily_cap(self, engine, clock):
        """The eleventh code of the day is refused until UTC midnight."""
        for _ in range(10):
            issue_contact(engine)
            clock.advance(seconds=121)

        with pytest.raises(RateLimitError) as exc:
            issue_contact(engine)
        assert exc.value.details["reason"] == "daily_cap"
        # 10:20:10 UTC -> 13h39m50s until midnight
        assert exc.value.retry_after == 49190

    def test_daily_cap_resets_at_midnight(self, engine, clock):
        for _ in range(10):
            issue_contact(engine)
            clock.advance(seconds=121)
        clock.advance(hours=14)

        assert issue_contact(engine).code

    def test_daily_cap_counts_every_purpose_and_target(self, engine, clock, config):
        capped = OneTimeCodeEngine(
            OneTimeCodeRepository(), config=replace(config, daily_code_cap=2), clock=clock
        )
        issue_contact(capped, target="PROP-1")
        capped.issue("user-1", CodePurpose.EMAIL_VERIFICATION, EMAIL)

        with pytest.raises(RateLimitError):
            issue_contact(capped, target="PROP-2")


# =============================================================================
# Resend, Discard, Status, Retention
# =============================================================================


class TestLifecycle:
    """Tests for the rest of the code lifecycle."""

    def test_resend_refused_while_code_usable(self, engine):
        issued = issue_contact(engine)

        with pytest.raises(ConflictError) as exc:
            engine.resend("user-1", CodePurpose.PROPERTY_CONTACT, PHONE, target_id="PROP-1")
        assert exc.value.details["code_id"] == issued.code_id
        assert exc.value.details["attempts_remaining"] == 3

    def test_resend_after_lockout(self, engine):
        issued = issue_contact(engine)
        for _ in range(3):
            with pytest.raises(InvalidCodeError):
                engine.validate(issued.code_id, wrong(issued.code), "user-1")

        fresh = engine.resend("user-1", CodePurpose.PROPERTY_CONTACT, PHONE, target_id="PROP-1")
        assert fresh.code_id != issued.code_id
        assert engine.validate(fresh.code_id, fresh.code, "user-1").is_used

    def test_discard_leaves_no_trace(self, engine, clock, config):
        """A discarded code frees both the cooldown and the daily cap."""
        capped = OneTimeCodeEngine(
            OneTimeCodeRepository(), config=replace(config, daily_code_cap=1), clock=clock
        )
        issued = issue_contact(capped)
        assert capped.discard(issued.code_id)

        assert issue_contact(capped).code
        with pytest.raises(NotFoundError):
            capped.validate(issued.code_id, issued.code, "user-1")

    def test_status_hides_foreign_and_unknown_codes_alike(self, engine):
        issued = issue_contact(engine)

        with pytest.raises(NotFoundError) as foreign:
            engine.status(issued.code_id, "user-2")
        with pytest.raises(NotFoundError) as unknown:
            engine.status("OTP-DOESNOTEXIST", "user-2")
        assert foreign.value.message == unknown.value.message

    def test_status_of_fresh_code(self, engine):
        issued = issue_contact(engine)
        status = engine.status(issued.code_id, "user-1")

        assert status.can_retry
        assert status.attempts_remaining == 3
        assert status.purpose == CodePurpose.PROPERTY_CONTACT

    def test_purge_removes_expired_codes(self, engine, clock):
        issue_contact(engine, target="PROP-1")
        clock.advance(minutes=3)
        live = issue_contact(engine, target="PROP-2")
        clock.advance(minutes=3)

        assert engine.purge_expired() == 1
        assert engine.status(live.code_id, "user-1").can_retry

    def test_attempts_survive_reload(self, codes_path, config, clock):
        engine = OneTimeCodeEngine(OneTimeCodeRepository(codes_path), config=config, clock=clock)
        issued = issue_contact(engine)
        with pytest.raises(InvalidCodeError):
            engine.validate(issued.code_id, wrong(issued.code), "user-1")

        reloaded = OneTimeCodeEngine(OneTimeCodeRepository(codes_path), config=config, clock=clock)
        with pytest.raises(InvalidCodeError) as exc:
            reloaded.validate(issued.code_id, wrong(issued.code), "user-1")
        assert exc.value.attempts_remaining == 1


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Tests for simultaneous redemption of one code."""

    def test_concurrent_redemption_succeeds_once(self, engine):
        issued = issue_contact(engine)
        workers = 20
        barrier = threading.Barrier(workers)
        redeemed, already_used, unexpected = [], [], []

        def redeem():
            barrier.wait()
            try:
                redeemed.append(engine.validate(issued.code_id, issued.code, "user-1"))
            except CodeAlreadyUsedError as e:
                already_used.append(e)
            except Exception as e:
                unexpected.append(e)

        threads = [threading.Thread(target=redeem) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert unexpected == []
        assert len(redeemed) == 1
        assert len(already_used) == workers - 1
        assert engine.status(issued.code_id, "user-1").is_used
