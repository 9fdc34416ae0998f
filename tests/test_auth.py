"""
OTP send/verify endpoints, registration, login and session tokens
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from fixmyarea.config import settings
from fixmyarea.models.db_models import OTPType, User, UserRole, UserStatus

PHONE = "9876543210"
LOCATION = {"state": "Kerala", "district": "Ernakulam", "village": "Aluva"}


def registration(**overrides) -> dict:
    body = {
        "name": "Asha Menon",
        "phone": PHONE,
        "role": "resident",
        "password": "secret123",
        "location": LOCATION,
    }
    body.update(overrides)
    return body


# ==================== OTP ENDPOINTS ====================

async def test_send_registration_otp(client: AsyncClient, dispatcher):
    response = await client.post("/api/otp/send-registration", json={"phone": PHONE, "email": "asha@example.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {
        "phone": PHONE,
        "email": "asha@example.com",
        "smsSent": True,
        "emailSent": True,
        "expiresIn": "10 minutes",
    }
    assert dispatcher.sms[0][0] == PHONE
    assert dispatcher.emails[0][1] == dispatcher.sms[0][1]


async def test_send_registration_otp_rejects_registered_phone(client: AsyncClient, resident):
    response = await client.post("/api/otp/send-registration", json={"phone": resident.phone})

    assert response.status_code == 400
    assert response.json()["message"] == "User with this phone number already exists"


async def test_send_registration_otp_invalid_phone(client: AsyncClient):
    response = await client.post("/api/otp/send-registration", json={"phone": "12345"})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "phone"


async def test_send_otp_delivery_failure_still_issues_code(client: AsyncClient, dispatcher):
    dispatcher.sms_fails = True
    response = await client.post("/api/otp/send-registration", json={"phone": PHONE})

    assert response.status_code == 200
    assert response.json()["data"]["smsSent"] is False

    verify = await client.post(
        "/api/otp/verify", json={"phone": PHONE, "otp": dispatcher.last_code(), "type": "registration"}
    )
    assert verify.status_code == 200


async def test_send_login_otp_unknown_user(client: AsyncClient):
    response = await client.post("/api/otp/send-login", json={"phone": PHONE})

    assert response.status_code == 404
    assert response.json()["message"] == "User not found. Please register first."


async def test_fourth_send_is_rate_limited(client: AsyncClient, clock):
    for _ in range(3):
        response = await client.post("/api/otp/send-registration", json={"phone": PHONE})
        assert response.status_code == 200

    response = await client.post("/api/otp/resend", json={"phone": PHONE, "type": "registration"})
    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMITED"

    clock.advance(minutes=16)
    response = await client.post("/api/otp/resend", json={"phone": PHONE, "type": "registration"})
    assert response.status_code == 200


async def test_registration_otp_scenario(client: AsyncClient, dispatcher):
    await client.post("/api/otp/send-registration", json={"phone": PHONE})
    code = dispatcher.last_code()
    wrong = "000000" if code != "000000" else "111111"

    response = await client.post("/api/otp/verify", json={"phone": PHONE, "otp": wrong, "type": "registration"})
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid OTP"

    response = await client.post("/api/otp/verify", json={"phone": PHONE, "otp": code, "type": "registration"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["type"] == "registration"
    assert data["verificationToken"]

    response = await client.post("/api/otp/verify", json={"phone": PHONE, "otp": code, "type": "registration"})
    assert response.status_code == 400


async def test_verify_expired_otp(client: AsyncClient, dispatcher, clock):
    await client.post("/api/otp/send-registration", json={"phone": PHONE})
    clock.advance(minutes=11)

    response = await client.post(
        "/api/otp/verify", json={"phone": PHONE, "otp": dispatcher.last_code(), "type": "registration"}
    )
    assert response.status_code == 400
    assert response.json()["message"] == "OTP has expired"


# ==================== REGISTRATION ====================

async def test_register_resident(client: AsyncClient, db_session):
    response = await client.post("/api/auth/register", json=registration(email="asha@example.com"))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["token"]
    assert data["phone"] == PHONE
    assert data["role"] == "resident"
    assert data["status"] == "active"
    assert "passwordHash" not in data and "password_hash" not in data

    user = (await db_session.execute(select(User).where(User.phone == PHONE))).scalar_one()
    assert user.password_hash != "secret123"
    assert user.password_hash.startswith("$2")


async def test_register_duplicate_phone_creates_nothing(client: AsyncClient, db_session):
    first = await client.post("/api/auth/register", json=registration())
    assert first.status_code == 201

    second = await client.post("/api/auth/register", json=registration(name="Someone Else"))
    assert second.status_code == 400
    assert second.json()["message"] == "User with this phone number already exists"

    count = await db_session.scalar(select(func.count(User.id)).where(User.phone == PHONE))
    assert count == 1


async def test_register_requires_password(client: AsyncClient):
    response = await client.post("/api/auth/register", json=registration(password=None))

    assert response.status_code == 400
    assert response.json()["message"] == "Password is required"


async def test_register_requires_location(client: AsyncClient):
    body = registration()
    del body["location"]
    response = await client.post("/api/auth/register", json=body)

    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


async def test_register_with_required_ticket(client: AsyncClient, dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_VERIFICATION_TICKET", True)

    response = await client.post("/api/auth/register", json=registration())
    assert response.status_code == 400

    await client.post("/api/otp/send-registration", json={"phone": PHONE})
    verify = await client.post(
        "/api/otp/verify", json={"phone": PHONE, "otp": dispatcher.last_code(), "type": "registration"}
    )
    ticket = verify.json()["data"]["verificationToken"]

    response = await client.post("/api/auth/register", json=registration(verificationToken=ticket))
    assert response.status_code == 201


async def test_ticket_is_bound_to_phone(client: AsyncClient, dispatcher, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_VERIFICATION_TICKET", True)

    await client.post("/api/otp/send-registration", json={"phone": PHONE})
    verify = await client.post(
        "/api/otp/verify", json={"phone": PHONE, "otp": dispatcher.last_code(), "type": "registration"}
    )
    ticket = verify.json()["data"]["verificationToken"]

    response = await client.post(
        "/api/auth/register", json=registration(phone="9123456780", verificationToken=ticket)
    )
    assert response.status_code == 400


# ==================== LOGIN ====================

async def test_login_with_password(client: AsyncClient, user_factory):
    user = await user_factory(UserRole.RESIDENT)

    response = await client.post("/api/auth/login", json={"phone": user.phone, "password": "password123"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token"]
    assert data["loginCount"] == 1
    assert data["lastLogin"] is not None


async def test_login_wrong_password_despite_valid_otp(client: AsyncClient, resident):
    await client.post("/api/otp/send-login", json={"phone": resident.phone})

    response = await client.post("/api/auth/login", json={"phone": resident.phone, "password": "not-the-password"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid credentials"


async def test_login_with_otp_only(client: AsyncClient, resident, dispatcher):
    await client.post("/api/otp/send-login", json={"phone": resident.phone})
    assert dispatcher.sms[-1][2] == OTPType.LOGIN

    response = await client.post("/api/auth/login", json={"phone": resident.phone, "otp": dispatcher.last_code()})

    assert response.status_code == 200
    assert response.json()["data"]["_id"] == resident.id


async def test_login_with_registration_otp_is_rejected(client: AsyncClient, user_factory, dispatcher):
    await client.post("/api/otp/send-registration", json={"phone": PHONE})
    code = dispatcher.last_code()
    user = await user_factory(UserRole.RESIDENT, phone=PHONE)

    response = await client.post("/api/auth/login", json={"phone": user.phone, "otp": code})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid OTP"


async def test_login_requires_a_credential(client: AsyncClient, resident):
    response = await client.post("/api/auth/login", json={"phone": resident.phone})

    assert response.status_code == 400


async def test_login_unknown_phone(client: AsyncClient):
    response = await client.post("/api/auth/login", json={"phone": PHONE, "password": "whatever"})

    assert response.status_code == 404


async def test_login_disabled_account(client: AsyncClient, user_factory):
    user = await user_factory(UserRole.RESIDENT, status=UserStatus.DISABLED)

    response = await client.post("/api/auth/login", json={"phone": user.phone, "password": "password123"})

    assert response.status_code == 403
    assert response.json()["message"] == "Account is disabled. Please contact administrator."


# ==================== SESSION ====================

async def test_me_returns_profile(client: AsyncClient, resident, resident_headers):
    response = await client.get("/api/auth/me", headers=resident_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["_id"] == resident.id
    assert data["location"]["village"] == "Aluva"


async def test_refresh_issues_new_token(client: AsyncClient, resident_headers):
    response = await client.post("/api/auth/refresh", headers=resident_headers)

    assert response.status_code == 200
    token = response.json()["data"]["token"]
    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
