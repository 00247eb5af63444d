"""
Admin console: authentication, user management and community moderation.
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from common.constants import ADMIN_REFRESH_COOKIE, ADMIN_SESSION_KEY_PREFIX
from common.timeutils import utcnow
from libs.redis_client import RedisClient
from models.admin import Admin, AdminSession
from models.audit import Audit, AuditEventType
from models.community import CommunityComment, CommunityPost, PostType
from models.user_models import AuthProvider, User

pytestmark = pytest.mark.unit

PASSWORD = "Sup3r-Secret!"


def _login(client, email="ops@avigate.co", password=PASSWORD):
    return client.post("/admin/auth/login", json={"email": email, "password": password})


@pytest.fixture
def admin(make_admin):
    return make_admin()


@pytest.fixture
def admin_headers(client, admin):
    r = _login(client)
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['data']['accessToken']}"}


@pytest.fixture
def audits(run_db):
    def _load(event_type=None):
        async def _query(session):
            query = select(Audit).order_by(Audit.created_at)
            if event_type is not None:
                query = query.where(Audit.event_type == event_type)
            return list((await session.execute(query)).scalars())

        return run_db(_query)

    return _load


@pytest.fixture
def stored(run_db):
    def _add(obj):
        async def _save(session):
            session.add(obj)
            await session.commit()
            return obj

        return run_db(_save)

    return _add


def _reload(run_db, model, pk):
    async def _get(session):
        return await session.get(model, pk)

    return run_db(_get)


# ---------- auth ----------


def test_login_sets_refresh_cookie(client, admin, audits):
    r = _login(client, email="OPS@avigate.co")

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Login successful"
    assert body["data"]["admin"]["email"] == "ops@avigate.co"
    assert body["data"]["admin"]["role"] == "admin"
    assert body["data"]["expiresIn"] == 3600
    assert body["data"]["mustChangePassword"] is False
    cookie = r.headers["set-cookie"]
    assert cookie.startswith(f"{ADMIN_REFRESH_COOKIE}=")
    assert "HttpOnly" in cookie
    assert "Path=/admin/auth" in cookie

    (entry,) = audits(AuditEventType.authentication)
    assert entry.admin_id == admin.id
    assert entry.message == "Admin logged in: ops@avigate.co"


def test_login_records_last_login(client, admin, run_db):
    _login(client)

    refreshed = _reload(run_db, Admin, admin.id)
    assert refreshed.last_login_at is not None
    assert refreshed.last_login_ip == "testclient"


def test_login_outside_domain(client, audits):
    r = _login(client, email="ops@gmail.com")

    assert r.status_code == 401
    assert r.json()["detail"] == "Access restricted to authorized domains"
    (entry,) = audits()
    assert entry.admin_id is None
    assert "ops@gmail.com" in entry.message


def test_login_unknown_admin(client):
    r = _login(client, email="ghost@avigate.co")

    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


def test_login_deactivated_admin(client, make_admin):
    make_admin(is_active=False)

    r = _login(client)

    assert r.json()["detail"] == "Account is deactivated"


def test_lockout_after_repeated_failures(client, admin, run_db, audits):
    for _ in range(5):
        r = _login(client, password="wrong-password")
        assert r.json()["detail"] == "Invalid credentials"

    locked = _login(client)

    assert locked.status_code == 401
    assert locked.json()["detail"] == "Account is temporarily locked. Please try again in 30 minutes."
    refreshed = _reload(run_db, Admin, admin.id)
    assert refreshed.failed_login_attempts == 0
    assert refreshed.locked_until is not None
    messages = [a.message for a in audits(AuditEventType.authentication)]
    assert messages[-1] == "Admin account locked after repeated failures: ops@avigate.co"


def test_successful_login_resets_failures(client, admin, run_db):
    _login(client, password="wrong-password")
    _login(client, password="wrong-password")

    _login(client)

    assert _reload(run_db, Admin, admin.id).failed_login_attempts == 0


def test_expired_lock_allows_login(client, make_admin):
    make_admin(locked_until=utcnow() - timedelta(minutes=1))

    assert _login(client).status_code == 200


def test_me(client, admin_headers):
    r = client.get("/admin/auth/me", headers=admin_headers)

    assert r.status_code == 200
    assert r.json()["data"]["admin"]["firstName"] == "Ngozi"


def test_me_requires_token(client):
    assert client.get("/admin/auth/me").status_code == 401


def test_user_token_is_not_an_admin_token(client, make_user, auth_headers):
    r = client.get("/admin/auth/me", headers=auth_headers(make_user()))

    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_logout_revokes_session(client, admin_headers, run_db):
    r = client.post("/admin/auth/logout", headers=admin_headers)

    assert r.json()["message"] == "Logged out successfully"
    after = client.get("/admin/auth/me", headers=admin_headers)
    assert after.status_code == 401
    assert after.json()["detail"] == "Session expired or revoked"

    async def _sessions(session):
        return list((await session.execute(select(AdminSession))).scalars())

    (stored_session,) = run_db(_sessions)
    assert stored_session.is_active is False
    assert client.post("/admin/auth/refresh").status_code == 401


def test_refresh_with_cookie(client, admin_headers):
    r = client.post("/admin/auth/refresh")

    assert r.status_code == 200
    token = r.json()["data"]["accessToken"]
    assert client.get("/admin/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_refresh_with_body_restores_expired_session(client, admin, fake_redis):
    login = _login(client)
    refresh_token = login.cookies.get(ADMIN_REFRESH_COOKIE)
    client.cookies.clear()
    fake_redis.store.clear()
    stale = {"Authorization": f"Bearer {login.json()['data']['accessToken']}"}
    assert client.get("/admin/auth/me", headers=stale).status_code == 401

    r = client.post("/admin/auth/refresh", json={"refreshToken": refresh_token})

    assert r.status_code == 200
    fresh = {"Authorization": f"Bearer {r.json()['data']['accessToken']}"}
    assert client.get("/admin/auth/me", headers=fresh).status_code == 200


def _age_admin_session(run_db, hours):
    async def _age(session):
        (row,) = (await session.execute(select(AdminSession))).scalars()
        row.created_at = utcnow() - timedelta(hours=hours)
        await session.commit()
        return row.id

    return run_db(_age)


def test_restored_session_keeps_original_lifetime(client, admin, fake_redis, run_db):
    login = _login(client)
    session_id = _age_admin_session(run_db, hours=2)
    fake_redis.store.clear()

    r = client.post("/admin/auth/refresh", json={"refreshToken": login.cookies.get(ADMIN_REFRESH_COOKIE)})

    assert r.status_code == 200
    restored = RedisClient.get_instance().get_json(f"{ADMIN_SESSION_KEY_PREFIX}{session_id}")
    remaining = restored["max_expires_at"] - utcnow().timestamp()
    assert timedelta(seconds=remaining) < timedelta(hours=10, minutes=1)


def test_refresh_past_absolute_lifetime_is_refused(client, admin, fake_redis, run_db):
    login = _login(client)
    session_id = _age_admin_session(run_db, hours=13)
    fake_redis.store.clear()

    r = client.post("/admin/auth/refresh", json={"refreshToken": login.cookies.get(ADMIN_REFRESH_COOKIE)})

    assert r.status_code == 401
    assert r.json()["detail"] == "Session expired or revoked"
    assert _reload(run_db, AdminSession, session_id).is_active is False


def test_refresh_without_token(client):
    r = client.post("/admin/auth/refresh")

    assert r.status_code == 401
    assert r.json()["detail"] == "Refresh token is required"


def test_refresh_with_garbage(client):
    r = client.post("/admin/auth/refresh", json={"refreshToken": "not-a-jwt"})

    assert r.json()["detail"] == "Invalid refresh token"


def test_deactivated_admin_loses_access(client, admin, admin_headers, run_db, fake_redis):
    async def _deactivate(session):
        row = await session.get(Admin, admin.id)
        row.is_active = False
        await session.commit()

    run_db(_deactivate)

    r = client.get("/admin/auth/me", headers=admin_headers)
    assert r.status_code == 401
    assert r.json()["detail"] == "Admin account is inactive"

    assert fake_redis.smembers(f"admin_sessions:{admin.id}") == set()

    async def _sessions(session):
        return list((await session.execute(select(AdminSession.is_active))).scalars())

    assert run_db(_sessions) == [False]
    refresh = client.post("/admin/auth/refresh")
    assert refresh.status_code == 401
    assert refresh.json()["detail"] == "Session expired or revoked"


def test_refresh_shuts_out_deactivated_admin(client, admin, admin_headers, run_db, fake_redis):
    async def _deactivate(session):
        row = await session.get(Admin, admin.id)
        row.is_active = False
        await session.commit()

    run_db(_deactivate)

    r = client.post("/admin/auth/refresh")

    assert r.status_code == 401
    assert r.json()["detail"] == "Admin account is inactive"
    assert not [key for key in fake_redis.store if key.startswith(ADMIN_SESSION_KEY_PREFIX)]


# ---------- user management ----------


def test_user_routes_require_admin(client, make_user, auth_headers):
    assert client.get("/admin/users").status_code == 401
    assert client.get("/admin/users", headers=auth_headers(make_user())).status_code == 401


def test_list_and_search_users(client, admin_headers, make_user):
    make_user(first_name="Chidi", email="chidi@example.com")
    make_user(first_name="Bola", is_verified=False)

    everyone = client.get("/admin/users", headers=admin_headers).json()["data"]
    assert everyone["pagination"]["total"] == 2

    found = client.get("/admin/users", params={"search": "CHIDI"}, headers=admin_headers).json()["data"]
    assert [u["email"] for u in found["users"]] == ["chidi@example.com"]

    unverified = client.get("/admin/users", params={"isVerified": "false"}, headers=admin_headers).json()["data"]
    assert [u["firstName"] for u in unverified["users"]] == ["Bola"]
    assert "isActive" in unverified["users"][0]


def test_users_overview(client, admin_headers, make_user):
    make_user()
    make_user(is_active=False)
    make_user(is_verified=False, auth_provider=AuthProvider.GOOGLE)

    r = client.get("/admin/users/stats/overview", headers=admin_headers)

    stats = r.json()["data"]
    assert stats["total"] == 3
    assert stats["active"] == 2
    assert stats["verified"] == 2
    assert stats["newThisWeek"] == 3
    assert stats["byAuthProvider"]["google"] == 1


def test_user_detail_with_activity(client, admin_headers, make_user, stored):
    user = make_user()
    stored(CommunityPost(author_id=user.id, post_type=PostType.TIP, title="Tip", content="Go early"))

    r = client.get(f"/admin/users/{user.id}", headers=admin_headers)

    data = r.json()["data"]["user"]
    assert data["email"] == user.email
    assert data["postCount"] == 1
    assert data["tripCount"] == 0
    assert data["deviceCount"] == 0


def test_user_detail_not_found(client, admin_headers):
    r = client.get(f"/admin/users/{uuid.uuid4()}", headers=admin_headers)

    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


def test_deactivate_user(client, admin, admin_headers, make_user, auth_headers, audits):
    user = make_user()
    user_headers = auth_headers(user)

    r = client.put(
        f"/admin/users/{user.id}/status",
        json={"isActive": False, "reason": "Spam"},
        headers=admin_headers,
    )

    assert r.json()["message"] == "User deactivated successfully"
    assert r.json()["data"]["user"]["isActive"] is False
    assert client.get("/users/profile", headers=user_headers).status_code == 401
    (entry,) = audits(AuditEventType.user_management)
    assert entry.event_id == user.id
    assert entry.admin_id == admin.id
    assert entry.message == f"User {user.email} deactivated: Spam"


def test_reactivate_user(client, admin_headers, make_user):
    user = make_user(is_active=False)

    r = client.put(f"/admin/users/{user.id}/status", json={"isActive": True}, headers=admin_headers)

    assert r.json()["message"] == "User activated successfully"


def test_delete_user(client, admin_headers, make_user, run_db, audits):
    user = make_user()

    r = client.request(
        "DELETE", f"/admin/users/{user.id}", json={"reason": "GDPR request"}, headers=admin_headers
    )

    assert r.json()["message"] == "User deleted successfully"
    assert _reload(run_db, User, user.id) is None
    (entry,) = audits(AuditEventType.user_management)
    assert entry.message == f"User {user.email} deleted: GDPR request"


# ---------- moderation ----------


@pytest.fixture
def post(make_user, stored):
    author = make_user()
    return stored(
        CommunityPost(
            author_id=author.id,
            post_type=PostType.ROUTE_ALERT,
            title="Bridge closed",
            content="Eko bridge closed for repairs",
        )
    )


def test_moderation_requires_admin(client, post):
    assert client.get("/admin/community/posts").status_code == 401


def test_list_posts_includes_hidden(client, admin_headers, post, stored):
    stored(
        CommunityPost(
            author_id=post.author_id,
            post_type=PostType.GENERAL,
            title="Hidden",
            content="spam",
            is_active=False,
        )
    )

    everything = client.get("/admin/community/posts", headers=admin_headers).json()["data"]
    assert everything["pagination"]["total"] == 2

    hidden = client.get(
        "/admin/community/posts", params={"isActive": "false"}, headers=admin_headers
    ).json()["data"]
    assert [(p["title"], p["isActive"]) for p in hidden["posts"]] == [("Hidden", False)]


def test_verify_post(client, admin, admin_headers, post, run_db, audits):
    r = client.patch(f"/admin/community/posts/{post.id}/verify", headers=admin_headers)

    assert r.json()["message"] == "Post verified"
    assert r.json()["data"]["post"]["isVerified"] is True
    assert _reload(run_db, CommunityPost, post.id).verified_by == admin.id
    (entry,) = audits(AuditEventType.content_moderation)
    assert entry.event_id == post.id
    assert entry.message == "Post verified: Bridge closed"


def test_verify_missing_post(client, admin_headers):
    r = client.patch(f"/admin/community/posts/{uuid.uuid4()}/verify", headers=admin_headers)

    assert r.status_code == 404
    assert r.json()["detail"] == "Post not found"


def test_hide_post(client, admin_headers, post, audits):
    r = client.patch(
        f"/admin/community/posts/{post.id}/status",
        json={"isActive": False, "reason": "Outdated"},
        headers=admin_headers,
    )

    assert r.json()["message"] == "Post status updated"
    assert r.json()["data"]["post"]["isActive"] is False
    assert client.get(f"/community/posts/{post.id}").status_code == 404
    (entry,) = audits(AuditEventType.content_moderation)
    assert entry.message == "Post hidden: Bridge closed (Outdated)"


def test_remove_comment(client, admin_headers, post, stored, run_db, audits):
    comment = stored(CommunityComment(post_id=post.id, author_id=post.author_id, content="buy now"))

    r = client.delete(f"/admin/community/comments/{comment.id}", headers=admin_headers)

    assert r.json()["message"] == "Comment removed"
    assert _reload(run_db, CommunityComment, comment.id).is_active is False
    assert len(audits(AuditEventType.content_moderation)) == 1


def test_remove_missing_comment(client, admin_headers):
    r = client.delete(f"/admin/community/comments/{uuid.uuid4()}", headers=admin_headers)

    assert r.status_code == 404
    assert r.json()["detail"] == "Comment not found"
