"""
Shared test fixtures.

This module provides reusable fixtures for:
- A file-backed SQLite database per test, wired into the app via get_db
- An in-memory Redis backend behind the real RedisClient wrapper
- Factories for users, admins, locations, routes and segments
- RSA keys and a mocked JWKS endpoint for Google ID token tests
"""

import os

# Must be set before the app (and libs.config) is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("LOCAL_DEV", "true")
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("ADMIN_JWT_SECRET", "test-admin-secret")
os.environ.setdefault("ADMIN_REFRESH_SECRET", "test-admin-refresh-secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client-id")
os.environ.setdefault("NOTIFICATION_PUSH_MODE", "dummy")
os.environ.setdefault("NOTIFICATION_EMAIL_MODE", "dummy")
os.environ.setdefault("NOTIFICATION_SMS_MODE", "dummy")
os.environ.pop("GOOGLE_MAPS_API_KEY", None)

import asyncio
import fnmatch
import itertools
import time
from decimal import Decimal

import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jose import jwt as jose_jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import common.auth.session as session_module
import common.storage as storage
import libs.maps_client as maps_module
from common.constants import CURRENT_PRIVACY_VERSION, CURRENT_TERMS_VERSION, GOOGLE_ALGORITHMS
from libs.auth.tokens import create_access_token
from libs.db import get_db
from libs.redis_client import RedisClient
from main import app
from models.admin import Admin, AdminRole
from models.base import Base
from models.location import Location
from models.route import Route, RouteSegment, RouteStep, TransportMode
from models.user_models import User
from services.admin.auth import hash_password

ADMIN_PASSWORD = "Sup3r-Secret!"

_counter = itertools.count(1)


# -------------------------
# Redis
# -------------------------
class FakeRedisBackend:
    """In-memory replacement for the redis.Redis calls RedisClient makes."""

    def __init__(self):
        self.store = {}
        self.expires_at = {}

    def _purge(self, key):
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.time():
            self.store.pop(key, None)
            self.expires_at.pop(key, None)

    def ping(self):
        return True

    def get(self, key):
        self._purge(key)
        return self.store.get(key)

    def set(self, key, value):
        self.store[key] = str(value)
        self.expires_at.pop(key, None)
        return True

    def setex(self, key, ttl, value):
        self.store[key] = str(value)
        self.expires_at[key] = time.time() + ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if key in self.store:
                removed += 1
            self.store.pop(key, None)
            self.expires_at.pop(key, None)
        return removed

    def exists(self, key):
        self._purge(key)
        return int(key in self.store)

    def incr(self, key):
        self._purge(key)
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def expire(self, key, ttl):
        self._purge(key)
        if key not in self.store:
            return False
        self.expires_at[key] = time.time() + ttl
        return True

    def ttl(self, key):
        self._purge(key)
        if key not in self.store:
            return -2
        deadline = self.expires_at.get(key)
        if deadline is None:
            return -1
        return max(0, int(round(deadline - time.time())))

    def sadd(self, key, *values):
        members = self.store.setdefault(key, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    def srem(self, key, *values):
        members = self.store.get(key, set())
        removed = len(members & set(values))
        members.difference_update(values)
        return removed

    def smembers(self, key):
        return set(self.store.get(key, set()))

    def scan_iter(self, match=None, count=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatch(key, match):
                yield key


@pytest.fixture(autouse=True)
def fake_redis():
    """Install a fresh in-memory backend behind the RedisClient singleton."""
    backend = FakeRedisBackend()
    client = RedisClient.__new__(RedisClient)
    client._client = backend
    RedisClient._instance = client
    session_module._session_manager = None
    maps_module._maps_client = None
    storage.audit_logs.clear()
    yield backend
    RedisClient._instance = None
    session_module._session_manager = None
    maps_module._maps_client = None


# -------------------------
# Database
# -------------------------
@pytest.fixture
def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'avigate_test.db'}",
        poolclass=NullPool,
    )

    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def run_db(session_factory):
    """Run `await fn(session)` in a fresh session and return its result."""

    def _run(fn):
        async def _inner():
            async with session_factory() as session:
                return await fn(session)

        return asyncio.run(_inner())

    return _run


@pytest.fixture
def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)


# -------------------------
# Factories
# -------------------------
def _persist(run_db, obj):
    async def _save(session):
        session.add(obj)
        await session.commit()
        return obj

    return run_db(_save)


@pytest.fixture
def make_user(run_db):
    def _make(**overrides):
        n = next(_counter)
        fields = {
            "email": f"traveller{n}@example.com",
            "first_name": "Ada",
            "last_name": f"Obi{n}",
            "is_verified": True,
            "is_active": True,
            "terms_version": CURRENT_TERMS_VERSION,
            "privacy_version": CURRENT_PRIVACY_VERSION,
        }
        fields.update(overrides)
        return _persist(run_db, User(**fields))

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user)}"}

    return _headers


@pytest.fixture
def make_admin(run_db):
    def _make(email="ops@avigate.co", password=ADMIN_PASSWORD, **overrides):
        fields = {
            "email": email,
            "first_name": "Ngozi",
            "last_name": "Admin",
            "password_hash": hash_password(password),
            "role": AdminRole.ADMIN,
            "is_active": True,
        }
        fields.update(overrides)
        return _persist(run_db, Admin(**fields))

    return _make


@pytest.fixture
def make_location(run_db):
    def _make(name, lat, lng, city="Lagos", state="Lagos", **overrides):
        fields = {
            "name": name,
            "city": city,
            "state": state,
            "latitude": Decimal(str(lat)),
            "longitude": Decimal(str(lng)),
            "is_verified": True,
            "is_active": True,
        }
        fields.update(overrides)
        return _persist(run_db, Location(**fields))

    return _make


@pytest.fixture
def make_route(run_db):
    """Route from start to end; `steps` is a list of (from, to, mode) tuples."""

    def _make(start, end, steps=None, name=None, **overrides):
        fields = {
            "start_location_id": start.id,
            "end_location_id": end.id,
            "name": name or f"{start.name} to {end.name}",
            "transport_modes": ["bus"],
            "estimated_duration": Decimal("30"),
            "distance": Decimal("8.5"),
            "min_fare": Decimal("300"),
            "max_fare": Decimal("500"),
            "is_verified": True,
            "is_active": True,
        }
        fields.update(overrides)
        route = Route(**fields)
        route.steps = [
            RouteStep(
                step_order=order,
                from_location_id=step_from.id,
                to_location_id=step_to.id,
                transport_mode=TransportMode(mode),
                instructions=f"Take a {mode} from {step_from.name} to {step_to.name}",
                duration=Decimal("15"),
                distance=Decimal("4.25"),
                estimated_fare=Decimal("200"),
            )
            for order, (step_from, step_to, mode) in enumerate(steps or [(start, end, "bus")], start=1)
        ]
        return _persist(run_db, route)

    return _make


@pytest.fixture
def make_segment(run_db):
    def _make(start, end, stops=(), **overrides):
        fields = {
            "name": f"{start.name} - {end.name}",
            "start_location_id": start.id,
            "end_location_id": end.id,
            "intermediate_stops": [
                {"locationId": str(stop.id), "name": stop.name, "order": order, "isOptional": False}
                for order, stop in enumerate(stops, start=1)
            ],
            "transport_modes": ["bus"],
            "distance": Decimal("12"),
            "estimated_duration": 40,
            "min_fare": Decimal("200"),
            "max_fare": Decimal("600"),
            "instructions": "Buses load at the main park.",
            "is_active": True,
            "is_verified": True,
        }
        fields.update(overrides)
        return _persist(run_db, RouteSegment(**fields))

    return _make


# -------------------------
# Google ID tokens
# -------------------------
@pytest.fixture(scope="session")
def rsa_key_pair():
    """RSA key pair (PEM) used to sign test Google ID tokens."""
    private_key = rsa.generate_private_key(
        public_exponent=65537, key_size=2048, backend=default_backend()
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"private_key": private_pem.decode("utf-8"), "public_key": public_pem.decode("utf-8")}


@pytest.fixture(scope="session")
def test_kid():
    return "google-test-kid"


@pytest.fixture(scope="session")
def mock_jwks(rsa_key_pair, test_kid):
    """JWKS document in the shape Google publishes."""
    from jose.backends import RSAKey

    jwk_dict = RSAKey(rsa_key_pair["public_key"], GOOGLE_ALGORITHMS[0]).to_dict()
    jwk_dict["kid"] = test_kid
    jwk_dict["alg"] = "RS256"
    jwk_dict["use"] = "sig"
    return {"keys": [jwk_dict]}


@pytest.fixture
def mock_jwks_request(mocker, mock_jwks):
    """Patch requests.get where google_verify uses it."""
    mock_response = mocker.Mock()
    mock_response.json.return_value = mock_jwks
    mock_response.raise_for_status = mocker.Mock()
    return mocker.patch("libs.auth.google_verify.requests.get", return_value=mock_response)


@pytest.fixture
def create_google_token(rsa_key_pair, test_kid):
    """Factory for signed Google ID tokens; override any claim with kwargs."""

    def _create(sub="google-sub-1", email="gina@example.com", private_key=None, **claims):
        now = int(time.time())
        payload = {
            "iss": "https://accounts.google.com",
            "aud": os.environ["GOOGLE_CLIENT_ID"],
            "sub": sub,
            "email": email,
            "email_verified": True,
            "given_name": "Gina",
            "family_name": "Okafor",
            "picture": "https://lh3.googleusercontent.com/a/photo.jpg",
            "iat": now,
            "exp": now + 3600,
            **claims,
        }
        return jose_jwt.encode(
            payload,
            private_key or rsa_key_pair["private_key"],
            algorithm=GOOGLE_ALGORITHMS[0],
            headers={"kid": test_kid},
        )

    return _create
