"""
OTP ledger: generation, replacement, rate limiting and verification
"""
import logging
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from fixmyarea.config import settings
from fixmyarea.models.db_models import OTPRecord, OTPType
from fixmyarea.utils.otp_service import (
    INVALID_OTP,
    OTP_EXPIRED,
    TOO_MANY_ATTEMPTS,
    OTPLedger,
    generate_code,
)

PHONE = "9876543210"


@pytest.fixture
def ledger(db_session, clock) -> OTPLedger:
    return OTPLedger(db_session, settings, clock)


def test_generate_code_is_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert 100000 <= int(code) <= 999999


async def test_create_otp_sets_expiry_and_attempts(ledger, clock):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)

    assert record.phone == PHONE
    assert record.attempts == 0
    assert record.max_attempts == 3
    assert record.is_used is False
    assert record.expires_at == clock() + timedelta(minutes=10)


async def test_create_otp_replaces_unused_code(ledger, db_session):
    first = await ledger.create_otp(PHONE, otp_type=OTPType.LOGIN)
    second = await ledger.create_otp(PHONE, otp_type=OTPType.LOGIN)

    count = await db_session.scalar(
        select(func.count(OTPRecord.id)).where(OTPRecord.phone == PHONE, OTPRecord.type == OTPType.LOGIN)
    )
    assert count == 1

    if first.code != second.code:
        result = await ledger.verify_otp(PHONE, None, first.code, OTPType.LOGIN)
        assert result.success is False
        assert result.message == INVALID_OTP

    result = await ledger.verify_otp(PHONE, None, second.code, OTPType.LOGIN)
    assert result.success is True


async def test_create_otp_never_logs_code(ledger, caplog):
    caplog.set_level(logging.DEBUG, logger="fixmyarea")

    otp = await ledger.create_otp(PHONE, otp_type=OTPType.LOGIN)

    assert caplog.records
    assert all(otp.code not in r.getMessage() for r in caplog.records)


async def test_create_otp_keeps_other_types(ledger, db_session):
    await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    await ledger.create_otp(PHONE, otp_type=OTPType.LOGIN)

    count = await db_session.scalar(select(func.count(OTPRecord.id)).where(OTPRecord.phone == PHONE))
    assert count == 2


async def test_verify_wrong_code_then_right_code_then_reuse(ledger):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    wrong = "000000" if record.code != "000000" else "111111"

    result = await ledger.verify_otp(PHONE, None, wrong, OTPType.REGISTRATION)
    assert (result.success, result.message) == (False, INVALID_OTP)

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    assert result.success is True

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    assert result.success is False
    assert result.message in (INVALID_OTP, "OTP already used")


async def test_successful_verify_consumes_an_attempt(ledger, db_session):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)

    await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    await db_session.refresh(record)

    assert record.is_used is True
    assert record.attempts == 1


async def test_verify_expired_code(ledger, clock):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    clock.advance(minutes=10)

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    assert (result.success, result.message) == (False, OTP_EXPIRED)


async def test_verify_just_before_expiry(ledger, clock):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    clock.advance(minutes=9, seconds=59)

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    assert result.success is True


async def test_verify_exhausted_attempts(ledger, db_session):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    record.attempts = record.max_attempts
    await db_session.commit()

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.REGISTRATION)
    assert (result.success, result.message) == (False, TOO_MANY_ATTEMPTS)


async def test_verify_type_must_match(ledger):
    record = await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)

    result = await ledger.verify_otp(PHONE, None, record.code, OTPType.LOGIN)
    assert (result.success, result.message) == (False, INVALID_OTP)


async def test_verify_by_email_alone(ledger):
    record = await ledger.create_otp(PHONE, email="asha@example.com", otp_type=OTPType.LOGIN)

    result = await ledger.verify_otp("9000000000", "asha@example.com", record.code, OTPType.LOGIN)
    assert result.success is True


async def test_rate_limit_denies_fourth_send_until_window_rolls(ledger, clock):
    for _ in range(3):
        assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.REGISTRATION) is True
        await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
        clock.advance(minutes=1)

    assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.REGISTRATION) is False

    # First send was at t=0; the window is 15 minutes
    clock.advance(minutes=12, seconds=1)
    assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.REGISTRATION) is True


async def test_rate_limit_is_per_type(ledger):
    for _ in range(3):
        await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)

    assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.REGISTRATION) is False
    assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.LOGIN) is True


async def test_rate_limit_fails_open(ledger, db_session, monkeypatch):
    async def broken_execute(*args, **kwargs):
        raise OperationalError("SELECT count", {}, Exception("database is locked"))

    monkeypatch.setattr(db_session, "execute", broken_execute)
    assert await ledger.check_rate_limit(PHONE, otp_type=OTPType.REGISTRATION) is True


async def test_purge_expired(ledger, db_session, clock):
    await ledger.create_otp(PHONE, otp_type=OTPType.REGISTRATION)
    clock.advance(minutes=11)

    purged = await ledger.purge_expired()
    await db_session.commit()

    assert purged == 1
    assert await db_session.scalar(select(func.count(OTPRecord.id))) == 0
