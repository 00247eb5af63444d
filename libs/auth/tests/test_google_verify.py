"""
Tests for Google ID token verification.

Covers:
- Valid token verification against the mocked JWKS
- Expired token rejection
- Signature, audience and issuer checks
- Unknown kid and JWKS fetch failures

These are UNIT tests - the Google JWKS endpoint is mocked.
"""

import time

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import HTTPException, status
from jose import jwt as jose_jwt

from libs.auth.google_verify import verify_google_id_token

pytestmark = pytest.mark.unit


def test_verify_valid_google_token(mock_jwks_request, create_google_token):
    token = create_google_token(sub="google-123", email="gina@example.com")

    payload = verify_google_id_token(token)

    assert payload["sub"] == "google-123"
    assert payload["email"] == "gina@example.com"
    assert payload["given_name"] == "Gina"
    mock_jwks_request.assert_called_once()


def test_accepts_issuer_without_scheme(mock_jwks_request, create_google_token):
    token = create_google_token(iss="accounts.google.com")

    assert verify_google_id_token(token)["iss"] == "accounts.google.com"


def test_expired_token_returns_401(mock_jwks_request, create_google_token):
    past = int(time.time()) - 7200
    token = create_google_token(iat=past, exp=past + 60)

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
    assert exc_info.value.detail == "Token expired"


def test_wrong_audience_returns_401(mock_jwks_request, create_google_token):
    token = create_google_token(aud="some-other-client")

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
    assert exc_info.value.detail == "Invalid audience"


def test_wrong_issuer_returns_401(mock_jwks_request, create_google_token):
    token = create_google_token(iss="https://evil.example.com")

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert exc_info.value.detail == "Invalid issuer"


def test_token_signed_with_other_key_returns_401(mock_jwks_request, create_google_token):
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    other_pem = other_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    token = create_google_token(private_key=other_pem)

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
    assert exc_info.value.detail.startswith("Invalid Google token")


def test_unknown_kid_returns_401(mock_jwks_request, rsa_key_pair):
    token = jose_jwt.encode(
        {"sub": "x", "email": "x@example.com"},
        rsa_key_pair["private_key"],
        algorithm="RS256",
        headers={"kid": "rotated-away"},
    )

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert "No matching JWK" in exc_info.value.detail


def test_missing_email_claim_returns_401(mock_jwks_request, create_google_token):
    token = create_google_token(email=None)

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(token)

    assert "no email claim" in exc_info.value.detail


def test_jwks_fetch_failure_returns_401(mocker, create_google_token):
    mocker.patch(
        "libs.auth.google_verify.requests.get",
        side_effect=requests.ConnectionError("unreachable"),
    )

    with pytest.raises(HTTPException) as exc_info:
        verify_google_id_token(create_google_token())

    assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
    assert exc_info.value.detail.startswith("HTTP error fetching JWKS")
