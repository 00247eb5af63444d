# libs/auth/google_verify.py
"""
Google Sign-In ID token verification.

Verifies ID tokens minted by Google for our OAuth client using the public
JWKS (fetched via requests/certifi) and PyJWT RS256 decoding.

Env vars:
- GOOGLE_CLIENT_ID   OAuth client id, used as the expected audience
"""

import json

import certifi
import jwt
import requests
from fastapi import HTTPException, status
from jwt.algorithms import RSAAlgorithm

from common.constants import GOOGLE_ALGORITHMS, GOOGLE_ISSUERS, GOOGLE_JWKS_URL
from libs.config import config


def verify_google_id_token(token: str) -> dict:
    """
    Verify a Google ID token and return its claims (sub, email, given_name, ...).

    Raises:
        HTTPException(401) on any verification failure
    """
    try:
        # 1) Fetch JWKS with trusted CA bundle
        resp = requests.get(GOOGLE_JWKS_URL, timeout=5, verify=certifi.where())
        resp.raise_for_status()
        jwks = resp.json()

        # 2) Match JWK by kid from token header
        header = jwt.get_unverified_header(token)
        kid = header.get("kid")
        if not kid:
            raise ValueError("Missing 'kid' in token header")
        key_dict = next((k for k in jwks["keys"] if k.get("kid") == kid), None)
        if not key_dict:
            raise ValueError("No matching JWK for token 'kid'")

        # 3) Build public key and decode; issuer is checked below since
        # Google uses two spellings
        public_key = RSAAlgorithm.from_jwk(json.dumps(key_dict))
        payload = jwt.decode(
            token,
            public_key,
            algorithms=GOOGLE_ALGORITHMS,
            audience=config.GOOGLE_CLIENT_ID,
            options={"verify_iss": False},
        )
        if payload.get("iss") not in GOOGLE_ISSUERS:
            raise jwt.InvalidIssuerError("Invalid issuer")
        if not payload.get("email"):
            raise ValueError("Google token has no email claim")
        return payload

    except requests.exceptions.SSLError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"SSL error fetching JWKS: {e}",
        ) from e
    except requests.RequestException as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"HTTP error fetching JWKS: {e}",
        ) from e
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired"
        ) from e
    except jwt.InvalidAudienceError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid audience"
        ) from e
    except jwt.InvalidIssuerError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid issuer"
        ) from e
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid Google token: {e}",
        ) from e
