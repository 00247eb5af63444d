import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.schemas import ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.rate_limit import default_rate_limiter
from models.community import PostType
from models.user_models import User
from services.community.schemas import (
    CreateCommentRequest,
    CreatePostRequest,
    UpdatePostRequest,
    VoteRequest,
    comment_to_dict,
    pagination,
    post_to_dict,
)
from services.community.service import CommunityService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/community",
    tags=["Community"],
    dependencies=[Depends(default_rate_limiter)],
)


@router.get("/posts")
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    post_type: Optional[PostType] = Query(None, alias="postType"),
    location_id: Optional[uuid.UUID] = Query(None, alias="locationId"),
    db: AsyncSession = Depends(get_db),
):
    posts, total = await CommunityService(db).list_posts(page, limit, post_type, location_id)
    return ok(
        {
            "posts": [post_to_dict(p) for p in posts],
            "pagination": pagination(page, limit, total),
        }
    )


@router.get("/feed/trending")
async def trending_feed(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    posts = await CommunityService(db).trending(limit)
    return ok({"posts": [post_to_dict(p) for p in posts], "count": len(posts)})


@router.get("/posts/{post_id}")
async def get_post(post_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    service = CommunityService(db)
    post = await service.get_post(post_id)
    comments, _ = await service.list_comments(post_id, page=1, limit=100)
    data = post_to_dict(post)
    data["comments"] = [comment_to_dict(c) for c in comments]
    return ok({"post": data})


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    body: CreatePostRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await CommunityService(db).create_post(current_user, body)
    return ok({"post": post_to_dict(post)}, message="Post created successfully")


@router.put("/posts/{post_id}")
async def update_post(
    post_id: uuid.UUID,
    body: UpdatePostRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    post = await CommunityService(db).update_post(post_id, current_user, body)
    return ok({"post": post_to_dict(post)}, message="Post updated successfully")


@router.delete("/posts/{post_id}")
async def delete_post(
    post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CommunityService(db).delete_post(post_id, current_user)
    return ok(message="Post deleted successfully")


@router.post("/posts/{post_id}/vote")
async def vote_post(
    post_id: uuid.UUID,
    body: VoteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await CommunityService(db).vote_post(post_id, current_user, body.vote_type))


@router.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: uuid.UUID,
    body: CreateCommentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await CommunityService(db).add_comment(post_id, current_user, body.content)
    return ok({"comment": comment_to_dict(comment, current_user)}, message="Comment added successfully")


@router.get("/posts/{post_id}/comments")
async def list_comments(
    post_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    comments, total = await CommunityService(db).list_comments(post_id, page, limit)
    return ok(
        {
            "comments": [comment_to_dict(c) for c in comments],
            "pagination": pagination(page, limit, total),
        }
    )


@router.post("/comments/{comment_id}/vote")
async def vote_comment(
    comment_id: uuid.UUID,
    body: VoteRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await CommunityService(db).vote_comment(comment_id, current_user, body.vote_type))


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CommunityService(db).delete_comment(comment_id, current_user)
    return ok(message="Comment deleted successfully")
