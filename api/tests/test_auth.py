"""Auth tests: OTP sign-in, registration, password login, tokens, reset, profile and role switching."""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import select

from padel.core.auth import create_refresh_token
from padel.core.config import settings
from padel.core.database import async_session_factory
from padel.models import Otp, OtpMedium, PendingRegistration, User, UserRole
from padel.services.otp import DEV_OTP_CODE
from padel.services.twilio_service import TwilioError
from padel.utils.datetime_utils import utcnow


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# OTP sign-in
# ---------------------------------------------------------------------------


async def test_send_otp_rejects_invalid_email(client):
    resp = await client.post("/api/auth/send-otp", json={"identifier": "not-an-email", "medium": "email"})
    assert resp.status_code == 400


async def test_send_otp_rejects_malformed_email_domain(client):
    resp = await client.post("/api/auth/send-otp", json={"identifier": "bad@exa..mple.com", "medium": "email"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid email address"


async def test_send_otp_rejects_non_e164_phone(client):
    resp = await client.post("/api/auth/send-otp", json={"identifier": "0501234567", "medium": "whatsapp"})
    assert resp.status_code == 400
    assert "international format" in resp.json()["detail"]


async def test_otp_sign_in_creates_user(client):
    resp = await client.post("/api/auth/send-otp", json={"identifier": "New@Example.com", "medium": "email"})
    assert resp.status_code == 200

    resp = await client.post(
        "/api/auth/verify-otp",
        json={"identifier": "new@example.com", "code": DEV_OTP_CODE, "name": "Nadia"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["role"] == "member"
    assert data["user"]["email"] == "new@example.com"
    assert data["user"]["otp_verified"] is True


async def test_otp_sign_in_existing_user(client, make_user):
    user = await make_user(phone="+971501112233", otp_verified=False)
    await client.post("/api/auth/send-otp", json={"identifier": "+971501112233", "medium": "whatsapp"})

    resp = await client.post("/api/auth/verify-otp", json={"identifier": "+971501112233", "code": DEV_OTP_CODE})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user.id


async def test_otp_code_is_single_use(client):
    await client.post("/api/auth/send-otp", json={"identifier": "once@example.com", "medium": "email"})
    first = await client.post("/api/auth/verify-otp", json={"identifier": "once@example.com", "code": DEV_OTP_CODE})
    assert first.status_code == 200

    again = await client.post("/api/auth/verify-otp", json={"identifier": "once@example.com", "code": DEV_OTP_CODE})
    assert again.status_code == 400


async def test_otp_locks_after_max_attempts(client):
    """Failed attempts persist across requests; the right code is refused once they run out."""
    await client.post("/api/auth/send-otp", json={"identifier": "lock@example.com", "medium": "email"})

    for _ in range(settings.otp_max_attempts):
        resp = await client.post("/api/auth/verify-otp", json={"identifier": "lock@example.com", "code": "000000"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid verification code"

    resp = await client.post("/api/auth/verify-otp", json={"identifier": "lock@example.com", "code": DEV_OTP_CODE})
    assert resp.status_code == 400
    assert "Too many attempts" in resp.json()["detail"]

    async with async_session_factory() as db:
        otp = (await db.execute(select(Otp).where(Otp.identifier == "lock@example.com"))).scalar_one()
        assert otp.attempts == settings.otp_max_attempts
        assert otp.verified is False


async def test_expired_otp_is_rejected(client):
    async with async_session_factory() as db:
        db.add(
            Otp(
                identifier="late@example.com",
                code=DEV_OTP_CODE,
                medium=OtpMedium.EMAIL,
                expires_at=utcnow() - timedelta(minutes=1),
            )
        )
        await db.commit()

    resp = await client.post("/api/auth/verify-otp", json={"identifier": "late@example.com", "code": DEV_OTP_CODE})
    assert resp.status_code == 400
    assert "expired" in resp.json()["detail"]


async def test_verify_without_code_requested(client):
    resp = await client.post("/api/auth/verify-otp", json={"identifier": "ghost@example.com", "code": "123456"})
    assert resp.status_code == 400
    assert "No verification code" in resp.json()["detail"]


async def test_otp_sent_by_email_outside_dev_mode(client, monkeypatch):
    monkeypatch.setattr(settings, "otp_dev_mode", False)
    with patch("padel.services.otp.send_otp_email", new_callable=AsyncMock) as mock_send:
        resp = await client.post("/api/auth/send-otp", json={"identifier": "real@example.com", "medium": "email"})

    assert resp.status_code == 200
    mock_send.assert_awaited_once()
    to, code = mock_send.call_args.args
    assert to == "real@example.com"
    assert len(code) == 6 and code.isdigit()


async def test_whatsapp_delivery_failure_returns_502(client, monkeypatch):
    monkeypatch.setattr(settings, "otp_dev_mode", False)
    with patch(
        "padel.services.otp.send_whatsapp_otp",
        new_callable=AsyncMock,
        side_effect=TwilioError("Twilio credentials are not configured"),
    ):
        resp = await client.post("/api/auth/send-otp", json={"identifier": "+971509998877", "medium": "whatsapp"})

    assert resp.status_code == 502


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


REGISTRATION = {
    "email": "Sara@Example.com",
    "name": "Sara",
    "phone": "+971501234567",
    "password": "padel-pass-1",
}


async def test_register_then_verify_creates_account(client):
    resp = await client.post("/api/auth/register", json=REGISTRATION)
    assert resp.status_code == 201
    assert resp.json()["phone"] == "+971501234567"

    async with async_session_factory() as db:
        pending = (await db.execute(select(PendingRegistration))).scalar_one()
        assert pending.email == "sara@example.com"
        assert (await db.execute(select(User))).first() is None

    resp = await client.post(
        "/api/auth/verify-registration",
        json={"phone": "+971501234567", "code": DEV_OTP_CODE},
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["email"] == "sara@example.com"

    async with async_session_factory() as db:
        assert (await db.execute(select(PendingRegistration))).first() is None

    login = await client.post(
        "/api/auth/login",
        json={"identifier": "sara@example.com", "password": "padel-pass-1"},
    )
    assert login.status_code == 200


async def test_register_twice_before_verifying_keeps_one_pending(client):
    await client.post("/api/auth/register", json=REGISTRATION)
    await client.post("/api/auth/register", json={**REGISTRATION, "name": "Sara K"})

    async with async_session_factory() as db:
        pending = (await db.execute(select(PendingRegistration))).scalars().all()
        assert len(pending) == 1
        assert pending[0].name == "Sara K"


async def test_register_duplicate_email_conflicts(client, make_user):
    await make_user(email="sara@example.com")
    resp = await client.post("/api/auth/register", json=REGISTRATION)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Email already registered"


async def test_register_duplicate_phone_conflicts(client, make_user):
    await make_user(phone="+971501234567")
    resp = await client.post("/api/auth/register", json=REGISTRATION)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Phone number already registered"


async def test_register_short_password_rejected(client):
    resp = await client.post("/api/auth/register", json={**REGISTRATION, "password": "short"})
    assert resp.status_code == 422


async def test_register_malformed_email_rejected(client):
    resp = await client.post("/api/auth/register", json={**REGISTRATION, "email": "bad@exa..mple.com"})
    assert resp.status_code == 422

    async with async_session_factory() as db:
        assert (await db.execute(select(PendingRegistration))).first() is None


async def test_verify_registration_without_pending_is_404(client):
    await client.post("/api/auth/send-otp", json={"identifier": "+971507770000", "medium": "whatsapp"})
    resp = await client.post(
        "/api/auth/verify-registration",
        json={"phone": "+971507770000", "code": DEV_OTP_CODE},
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Password login and tokens
# ---------------------------------------------------------------------------


async def test_login_by_email_or_phone(client, make_user):
    await make_user(email="omar@example.com", phone="+971505550000", password="secret-123")

    by_email = await client.post("/api/auth/login", json={"identifier": "OMAR@example.com", "password": "secret-123"})
    by_phone = await client.post("/api/auth/login", json={"identifier": "+971505550000", "password": "secret-123"})
    assert by_email.status_code == 200
    assert by_phone.status_code == 200


async def test_login_wrong_password(client, make_user):
    await make_user(email="omar@example.com", password="secret-123")
    resp = await client.post("/api/auth/login", json={"identifier": "omar@example.com", "password": "nope-nope"})
    assert resp.status_code == 401


async def test_login_unverified_account_forbidden(client, make_user):
    await make_user(email="late@example.com", password="secret-123", otp_verified=False)
    resp = await client.post("/api/auth/login", json={"identifier": "late@example.com", "password": "secret-123"})
    assert resp.status_code == 403


async def test_refresh_issues_new_tokens(client, make_user):
    user = await make_user()
    resp = await client.post("/api/auth/refresh", json={"refresh_token": create_refresh_token(str(user.id))})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user.id


async def test_refresh_drops_revoked_role(client, make_user):
    user = await make_user()
    token = create_refresh_token(str(user.id), role=UserRole.SUPER_ADMIN)
    resp = await client.post("/api/auth/refresh", json={"refresh_token": token})
    assert resp.status_code == 200
    assert resp.json()["role"] == "member"


async def test_refresh_rejects_access_token(client, make_user, headers):
    user = await make_user()
    access = headers(user)["Authorization"].removeprefix("Bearer ")
    resp = await client.post("/api/auth/refresh", json={"refresh_token": access})
    assert resp.status_code == 401


async def test_me_requires_token(client):
    assert (await client.get("/api/auth/me")).status_code == 401
    resp = await client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


async def test_me_returns_profile(client, make_user, headers):
    user = await make_user(name="Layla")
    resp = await client.get("/api/auth/me", headers=headers(user))
    assert resp.status_code == 200
    assert resp.json()["name"] == "Layla"


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


async def test_forgot_password_unknown_identifier_still_200(client):
    resp = await client.post("/api/auth/forgot-password", json={"identifier": "nobody@example.com"})
    assert resp.status_code == 200


async def test_reset_password_with_whatsapp_code(client, make_user):
    await make_user(email="reset@example.com", phone="+971506660000", password="old-password")

    resp = await client.post("/api/auth/forgot-password", json={"identifier": "reset@example.com"})
    assert resp.status_code == 200

    async with async_session_factory() as db:
        otp = (await db.execute(select(Otp))).scalar_one()
        assert otp.identifier == "+971506660000"
        assert otp.medium == OtpMedium.WHATSAPP

    resp = await client.post(
        "/api/auth/reset-password",
        json={"identifier": "reset@example.com", "code": DEV_OTP_CODE, "new_password": "new-password"},
    )
    assert resp.status_code == 200

    old = await client.post("/api/auth/login", json={"identifier": "reset@example.com", "password": "old-password"})
    new = await client.post("/api/auth/login", json={"identifier": "reset@example.com", "password": "new-password"})
    assert old.status_code == 401
    assert new.status_code == 200


async def test_reset_password_wrong_code(client, make_user):
    await make_user(email="reset@example.com", phone=None, password="old-password")
    await client.post("/api/auth/forgot-password", json={"identifier": "reset@example.com"})

    resp = await client.post(
        "/api/auth/reset-password",
        json={"identifier": "reset@example.com", "code": "999999", "new_password": "new-password"},
    )
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Profile and devices
# ---------------------------------------------------------------------------


async def test_update_profile(client, make_user, headers):
    user = await make_user()
    resp = await client.put(
        "/api/auth/profile",
        json={"name": "Khalid", "skill_level": "advanced", "location": "JLT"},
        headers=headers(user),
    )
    assert resp.status_code == 200
    assert resp.json()["skill_level"] == "advanced"
    assert resp.json()["name"] == "Khalid"


async def test_update_profile_email_taken(client, make_user, headers):
    await make_user(email="taken@example.com")
    user = await make_user()
    resp = await client.put("/api/auth/profile", json={"email": "TAKEN@example.com"}, headers=headers(user))
    assert resp.status_code == 409


async def test_update_profile_malformed_email_rejected(client, make_user, headers):
    user = await make_user()
    resp = await client.put("/api/auth/profile", json={"email": "player@example"}, headers=headers(user))
    assert resp.status_code == 422


async def test_register_push_token(client, make_user, headers, fetch):
    user = await make_user()
    resp = await client.post("/api/auth/push-token", json={"push_token": "a1b2c3"}, headers=headers(user))
    assert resp.status_code == 200
    assert (await fetch(User, user.id)).push_token == "a1b2c3"


# ---------------------------------------------------------------------------
# Role switching
# ---------------------------------------------------------------------------


async def test_switch_role_requires_assignment(client, make_user, headers):
    user = await make_user()
    resp = await client.post(
        "/api/auth/switch-role",
        json={"role": "community_manager"},
        headers=headers(user),
    )
    assert resp.status_code == 403


async def test_switch_role_unlocks_manager_routes(client, make_user, make_community, grant_role, headers):
    user = await make_user()
    community = await make_community()
    await grant_role(user, UserRole.COMMUNITY_MANAGER, community)

    member_view = await client.get("/api/communities/manager/communities", headers=headers(user))
    assert member_view.status_code == 403

    resp = await client.post("/api/auth/switch-role", json={"role": "community_manager"}, headers=headers(user))
    assert resp.status_code == 200
    assert resp.json()["role"] == "community_manager"

    token = resp.json()["access_token"]
    manager_view = await client.get(
        "/api/communities/manager/communities",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert manager_view.status_code == 200
    assert [c["id"] for c in manager_view.json()] == [community.id]


async def test_switch_back_to_member_always_allowed(client, make_user, headers):
    user = await make_user()
    resp = await client.post("/api/auth/switch-role", json={"role": "member"}, headers=headers(user))
    assert resp.status_code == 200
    assert resp.json()["role"] == "member"
