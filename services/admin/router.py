import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, Query
from sqlalchemy.ext.asyncio import AsyncSession

from common.constants import ADMIN_REFRESH_COOKIE
from common.schemas import ok
from libs.config import config
from libs.db import get_db
from libs.rate_limit import client_ip, default_rate_limiter
from models.admin import Admin
from models.community import PostType
from services.admin.auth import AdminAuthService, get_current_admin
from services.admin.moderation import ModerationService
from services.admin.schemas import (
    AdminDeleteUserRequest,
    AdminLoginRequest,
    AdminRefreshRequest,
    PostStatusRequest,
    UpdateUserStatusRequest,
    admin_to_dict,
    managed_user_to_dict,
)
from services.admin.users import UserManagementService
from services.community.schemas import pagination, post_to_dict

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/admin/auth",
    tags=["Admin Auth"],
    dependencies=[Depends(default_rate_limiter)],
)
users_router = APIRouter(
    prefix="/admin/users",
    tags=["Admin Users"],
    dependencies=[Depends(default_rate_limiter), Depends(get_current_admin)],
)
community_router = APIRouter(
    prefix="/admin/community",
    tags=["Admin Community"],
    dependencies=[Depends(default_rate_limiter), Depends(get_current_admin)],
)


# ---------- auth ----------


@auth_router.post("/login")
async def admin_login(
    body: AdminLoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    result = await AdminAuthService(db).login(
        body.email, body.password, client_ip(request), request.headers.get("user-agent")
    )
    response.set_cookie(
        ADMIN_REFRESH_COOKIE,
        result["refresh_token"],
        max_age=config.ADMIN_REFRESH_TTL,
        httponly=True,
        secure=config.ENVIRONMENT == "production",
        samesite="strict",
        path="/admin/auth",
    )
    admin = result["admin"]
    return ok(
        {
            "admin": admin_to_dict(admin),
            "accessToken": result["access_token"],
            "expiresIn": config.ADMIN_SESSION_TTL,
            "mustChangePassword": admin.must_change_password,
        },
        message="Login successful",
    )


@auth_router.post("/logout")
async def admin_logout(
    request: Request,
    response: Response,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await AdminAuthService(db).logout(admin, request.state.admin_session_id)
    response.delete_cookie(ADMIN_REFRESH_COOKIE, path="/admin/auth")
    return ok(message="Logged out successfully")


@auth_router.post("/refresh")
async def admin_refresh(
    request: Request,
    body: Optional[AdminRefreshRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    token = request.cookies.get(ADMIN_REFRESH_COOKIE) or (body.refresh_token if body else None)
    result = await AdminAuthService(db).refresh(token)
    return ok(
        {
            "admin": admin_to_dict(result["admin"]),
            "accessToken": result["access_token"],
            "expiresIn": config.ADMIN_SESSION_TTL,
        }
    )


@auth_router.get("/me")
async def admin_me(admin: Admin = Depends(get_current_admin)):
    return ok({"admin": admin_to_dict(admin)})


# ---------- user management ----------


@users_router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    is_verified: Optional[bool] = Query(None, alias="isVerified"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: AsyncSession = Depends(get_db),
):
    users, total = await UserManagementService(db).list_users(
        page, limit, search, is_verified, is_active
    )
    return ok(
        {
            "users": [managed_user_to_dict(u) for u in users],
            "pagination": pagination(page, limit, total),
        }
    )


# Declared before /{user_id} so "stats" is not parsed as an id
@users_router.get("/stats/overview")
async def users_overview(db: AsyncSession = Depends(get_db)):
    return ok(await UserManagementService(db).overview())


@users_router.get("/{user_id}")
async def get_user(user_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    service = UserManagementService(db)
    user = await service.get_user(user_id)
    return ok({"user": {**managed_user_to_dict(user), **await service.user_activity(user)}})


@users_router.put("/{user_id}/status")
async def update_user_status(
    user_id: uuid.UUID,
    body: UpdateUserStatusRequest,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await UserManagementService(db).set_status(admin, user_id, body.is_active, body.reason)
    action = "activated" if body.is_active else "deactivated"
    return ok({"user": managed_user_to_dict(user)}, message=f"User {action} successfully")


@users_router.delete("/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    body: Optional[AdminDeleteUserRequest] = None,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await UserManagementService(db).delete_user(admin, user_id, body.reason if body else None)
    return ok(message="User deleted successfully")


# ---------- community moderation ----------


@community_router.get("/posts")
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    post_type: Optional[PostType] = Query(None, alias="postType"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: AsyncSession = Depends(get_db),
):
    posts, total = await ModerationService(db).list_posts(page, limit, post_type, is_active)
    return ok(
        {
            "posts": [{**post_to_dict(p), "isActive": p.is_active} for p in posts],
            "pagination": pagination(page, limit, total),
        }
    )


@community_router.patch("/posts/{post_id}/verify")
async def verify_post(
    post_id: uuid.UUID,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    post = await ModerationService(db).verify_post(admin, post_id)
    return ok({"post": post_to_dict(post)}, message="Post verified")


@community_router.patch("/posts/{post_id}/status")
async def update_post_status(
    post_id: uuid.UUID,
    body: PostStatusRequest,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    post = await ModerationService(db).set_post_status(admin, post_id, body.is_active, body.reason)
    return ok({"post": {**post_to_dict(post), "isActive": post.is_active}}, message="Post status updated")


@community_router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: uuid.UUID,
    admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    await ModerationService(db).delete_comment(admin, comment_id)
    return ok(message="Comment removed")
