"""
Tests for the passwordless auth API: registration, email verification,
OTP login, token refresh, logout, Google sign-in and phone capture.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from common.timeutils import utcnow
from models.notification import Notification
from models.user_models import DeviceType, OTPType, User, UserDevice, UserOTP
from services.auth.devices import detect_device, device_fingerprint

pytestmark = pytest.mark.unit

FIXED_CODE = "482913"


@pytest.fixture
def fixed_otp(mocker):
    return mocker.patch("services.auth.otp.generate_otp_code", return_value=FIXED_CODE)


def _register(client, email="chioma@example.com", **extra):
    body = {"email": email, "firstName": "Chioma", "lastName": "Eze", **extra}
    return client.post("/auth/register", json=body)


def _age_otps(run_db, email, seconds=120):
    """Push OTP creation times back so the resend cooldown has elapsed."""

    async def _age(session):
        user = (await session.execute(select(User).where(User.email == email))).scalar_one()
        otps = (await session.execute(select(UserOTP).where(UserOTP.user_id == user.id))).scalars()
        for otp in otps:
            otp.created_at = utcnow() - timedelta(seconds=seconds)
        await session.commit()

    run_db(_age)


# ---------- registration ----------


def test_register_sends_verification_code(client, run_db, fixed_otp):
    resp = _register(client, phoneNumber="+2348012345678")

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["requiresVerification"] is True
    assert body["data"]["user"]["email"] == "chioma@example.com"
    assert body["data"]["user"]["isVerified"] is False
    assert "refreshToken" not in body["data"]

    async def _otps(session):
        result = await session.execute(select(UserOTP))
        return list(result.scalars())

    otps = run_db(_otps)
    assert len(otps) == 1
    assert otps[0].otp_type == OTPType.EMAIL_VERIFICATION
    assert otps[0].otp_code == FIXED_CODE


def test_register_normalizes_email(client):
    resp = _register(client, email="Mixed.Case@Example.com")

    assert resp.status_code == 201
    assert resp.json()["data"]["user"]["email"] == "mixed.case@example.com"


def test_register_duplicate_email_conflicts(client, make_user):
    make_user(email="taken@example.com")

    resp = _register(client, email="taken@example.com")

    assert resp.status_code == 409
    assert resp.json()["detail"] == "Email already exists"


def test_register_duplicate_phone_conflicts(client, make_user):
    make_user(phone_number="+2348099999999")

    resp = _register(client, phoneNumber="+2348099999999")

    assert resp.status_code == 409
    assert resp.json()["detail"] == "Phone number already exists"


def test_register_test_account_gets_tokens_immediately(client):
    resp = _register(client, email="testuser1@avigate.co")

    assert resp.status_code == 201
    body = resp.json()
    assert body["message"] == "Test account registered successfully"
    assert body["data"]["accessToken"]
    assert body["data"]["refreshToken"]
    assert body["data"]["isTestAccount"] is True
    assert body["data"]["user"]["isVerified"] is True


def test_register_rejects_invalid_email(client):
    resp = _register(client, email="not-an-email")

    assert resp.status_code == 422


# ---------- email verification ----------


def test_verify_email_returns_tokens(client, fixed_otp):
    _register(client)

    resp = client.post("/auth/verify-email", json={"email": "chioma@example.com", "otpCode": FIXED_CODE})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["user"]["isVerified"] is True
    assert data["accessToken"] and data["refreshToken"]
    assert data["needsLegalUpdate"] is False
    assert data["isTestAccount"] is False


def test_verify_email_wrong_code_is_rejected(client, run_db, fixed_otp):
    _register(client)

    resp = client.post("/auth/verify-email", json={"email": "chioma@example.com", "otpCode": "000000"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid or expired verification code"

    async def _attempts(session):
        return (await session.execute(select(UserOTP.attempts))).scalar_one()

    assert run_db(_attempts) == 1


def test_verify_email_code_is_single_use(client, fixed_otp):
    _register(client)
    payload = {"email": "chioma@example.com", "otpCode": FIXED_CODE}
    client.post("/auth/verify-email", json=payload)

    resp = client.post("/auth/verify-email", json=payload)

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already verified"


def test_verify_email_expired_code_is_rejected(client, run_db, fixed_otp):
    _register(client)

    async def _expire(session):
        otp = (await session.execute(select(UserOTP))).scalar_one()
        otp.expires_at = utcnow() - timedelta(minutes=1)
        await session.commit()

    run_db(_expire)

    resp = client.post("/auth/verify-email", json={"email": "chioma@example.com", "otpCode": FIXED_CODE})

    assert resp.status_code == 401


def test_verify_email_unknown_user(client):
    resp = client.post("/auth/verify-email", json={"email": "ghost@example.com", "otpCode": "123456"})

    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not found"


def test_resend_verification_respects_cooldown(client, run_db, fixed_otp):
    _register(client)

    resp = client.post("/auth/resend-verification", json={"email": "chioma@example.com"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please wait before requesting a new verification code"

    _age_otps(run_db, "chioma@example.com")
    resp = client.post("/auth/resend-verification", json={"email": "chioma@example.com"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    async def _unused(session):
        result = await session.execute(select(UserOTP).where(UserOTP.is_used.is_(False)))
        return list(result.scalars())

    # the older code was invalidated when the new one was issued
    assert len(run_db(_unused)) == 1


# ---------- OTP login ----------


def test_request_login_otp_for_verified_user(client, make_user, fixed_otp):
    make_user(email="bola@example.com")

    resp = client.post("/auth/login/request-otp", json={"email": "bola@example.com"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["requiresOtpVerification"] is True


def test_request_login_otp_unknown_email(client):
    resp = client.post("/auth/login/request-otp", json={"email": "nobody@example.com"})

    assert resp.status_code == 401
    assert resp.json()["detail"].startswith("No account found with this email")


def test_request_login_otp_unverified_user_gets_verification_code(client, make_user, fixed_otp):
    make_user(email="pending@example.com", is_verified=False)

    resp = client.post("/auth/login/request-otp", json={"email": "pending@example.com"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["data"]["requiresVerification"] is True


def test_request_login_otp_deactivated_user(client, make_user):
    make_user(email="gone@example.com", is_active=False)

    resp = client.post("/auth/login/request-otp", json={"email": "gone@example.com"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Account has been deactivated"


def test_login_with_otp_registers_device(client, make_user, run_db, fixed_otp):
    make_user(email="bola@example.com")
    client.post("/auth/login/request-otp", json={"email": "bola@example.com"})

    resp = client.post(
        "/auth/login/verify-otp",
        json={"email": "bola@example.com", "otpCode": FIXED_CODE, "fcmToken": "fcm-abc"},
        headers={"User-Agent": "okhttp/4.9.2"},
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["accessToken"] and data["refreshToken"]
    assert data["user"]["lastLoginAt"] is not None

    async def _devices(session):
        return list((await session.execute(select(UserDevice))).scalars())

    devices = run_db(_devices)
    assert len(devices) == 1
    assert devices[0].fcm_token == "fcm-abc"
    assert devices[0].platform == "android"


def test_second_device_triggers_new_device_alert(client, make_user, run_db, fixed_otp, fake_redis):
    make_user(email="bola@example.com")
    for token, ua in (("fcm-phone", "okhttp/4.9.2"), ("fcm-tablet", "Mozilla/5.0 (iPad)")):
        fake_redis.store.clear()
        _age_otps(run_db, "bola@example.com")
        client.post("/auth/login/request-otp", json={"email": "bola@example.com"})
        client.post(
            "/auth/login/verify-otp",
            json={"email": "bola@example.com", "otpCode": FIXED_CODE, "fcmToken": token},
            headers={"User-Agent": ua},
        )

    async def _titles(session):
        return list((await session.execute(select(Notification.title))).scalars())

    assert run_db(_titles) == ["New device login"]


def test_login_with_wrong_otp(client, make_user, fixed_otp):
    make_user(email="bola@example.com")
    client.post("/auth/login/request-otp", json={"email": "bola@example.com"})

    resp = client.post("/auth/login/verify-otp", json={"email": "bola@example.com", "otpCode": "111111"})

    assert resp.status_code == 401


def test_test_account_login_skips_otp(client):
    _register(client, email="testuser2@avigate.co")

    resp = client.post("/auth/login/request-otp", json={"email": "testuser2@avigate.co"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Test account login successful"
    assert body["data"]["accessToken"]


def test_resend_login_otp_requires_verified_email(client, make_user):
    make_user(email="pending@example.com", is_verified=False)

    resp = client.post("/auth/login/resend-otp", json={"email": "pending@example.com"})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please verify your email first"


def test_otp_endpoints_are_rate_limited(client, make_user, fixed_otp):
    make_user(email="bola@example.com")

    statuses = [
        client.post("/auth/login/resend-otp", json={"email": "bola@example.com"}).status_code
        for _ in range(6)
    ]

    assert statuses[-1] == 429


# ---------- tokens ----------


def test_refresh_token_rotates_pair(client, fixed_otp):
    _register(client)
    tokens = client.post(
        "/auth/verify-email", json={"email": "chioma@example.com", "otpCode": FIXED_CODE}
    ).json()["data"]

    resp = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})

    assert resp.status_code == 200
    new_tokens = resp.json()["data"]
    assert new_tokens["refreshToken"] != tokens["refreshToken"]

    # the previous refresh token is no longer the stored one
    stale = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert stale.status_code == 401
    assert stale.json()["detail"] == "Invalid refresh token"


def test_refresh_with_garbage_token(client):
    resp = client.post("/auth/refresh-token", json={"refreshToken": "not-a-jwt"})

    assert resp.status_code == 401


def test_logout_clears_refresh_token(client, fixed_otp):
    _register(client)
    tokens = client.post(
        "/auth/verify-email", json={"email": "chioma@example.com", "otpCode": FIXED_CODE}
    ).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}

    resp = client.post("/auth/logout", headers=headers)

    assert resp.status_code == 200
    refresh = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert refresh.status_code == 401


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401


def test_me_reports_legal_update(client, make_user, auth_headers):
    user = make_user(terms_version="1.0")

    resp = client.get("/auth/me", headers=auth_headers(user))

    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["id"] == str(user.id)
    assert resp.json()["data"]["needsLegalUpdate"] is True


# ---------- Google ----------


def test_google_sign_in_creates_user(client, mock_jwks_request, create_google_token):
    token = create_google_token(sub="g-100", email="Gina@Example.com")

    resp = client.post("/auth/google", json={"idToken": token})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["isNewUser"] is True
    assert data["requiresPhoneNumber"] is True
    assert data["user"]["email"] == "gina@example.com"
    assert data["user"]["authProvider"] == "google"
    assert data["user"]["isVerified"] is True


def test_google_sign_in_links_existing_account(
    client, make_user, run_db, mock_jwks_request, create_google_token
):
    user = make_user(email="linked@example.com", is_verified=False, phone_number="+2348000000001")
    token = create_google_token(sub="g-200", email="linked@example.com")

    resp = client.post("/auth/google", json={"idToken": token})

    data = resp.json()["data"]
    assert data["isNewUser"] is False
    assert data["requiresPhoneNumber"] is False
    assert data["user"]["id"] == str(user.id)

    async def _reload(session):
        return await session.get(User, user.id)

    linked = run_db(_reload)
    assert linked.google_id == "g-200"
    assert linked.is_verified is True


def test_google_sign_in_with_bad_token(client, mock_jwks_request):
    resp = client.post("/auth/google", json={"idToken": "garbage"})

    assert resp.status_code == 401


# ---------- phone ----------


def test_capture_and_verify_phone(client, make_user, auth_headers, fixed_otp):
    user = make_user()
    headers = auth_headers(user)

    resp = client.post("/auth/capture-phone", json={"phoneNumber": "+2348031112222"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["phoneNumber"] == "+2348031112222"
    assert resp.json()["data"]["user"]["phoneNumberCaptured"] is True

    bad = client.post("/auth/verify-phone", json={"otpCode": "000000"}, headers=headers)
    assert bad.status_code == 401

    good = client.post("/auth/verify-phone", json={"otpCode": FIXED_CODE}, headers=headers)
    assert good.status_code == 200


def test_capture_phone_taken_by_someone_else(client, make_user, auth_headers):
    make_user(phone_number="+2348031112222")
    user = make_user()

    resp = client.post(
        "/auth/capture-phone", json={"phoneNumber": "+2348031112222"}, headers=auth_headers(user)
    )

    assert resp.status_code == 409


# ---------- device helpers ----------


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        ("okhttp/4.9.2", (DeviceType.MOBILE, "android")),
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)", (DeviceType.MOBILE, "ios")),
        ("Mozilla/5.0 (iPad; CPU OS 16_0)", (DeviceType.TABLET, "ios")),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", (DeviceType.DESKTOP, "web")),
        ("curl/8.0", (DeviceType.UNKNOWN, None)),
    ],
)
def test_detect_device(user_agent, expected):
    assert detect_device(user_agent) == expected


def test_device_fingerprint_is_stable_sha256():
    first = device_fingerprint("tok", "ua", "info", "1.2.3.4")

    assert first == device_fingerprint("tok", "ua", "info", "1.2.3.4")
    assert first != device_fingerprint("tok", "ua", "info", "5.6.7.8")
    assert len(first) == 64
