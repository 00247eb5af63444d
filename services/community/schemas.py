import uuid
from typing import List, Optional

from pydantic import Field

from common.schemas import CamelModel
from common.timeutils import isoformat
from models.community import CommunityComment, CommunityPost, PostType, VoteType
from models.user_models import User


class CreatePostRequest(CamelModel):
    post_type: PostType
    title: str = Field(..., min_length=3, max_length=255)
    content: str = Field(..., min_length=1)
    location_id: Optional[uuid.UUID] = None
    route_id: Optional[uuid.UUID] = None
    images: Optional[List[str]] = None


class UpdatePostRequest(CamelModel):
    post_type: Optional[PostType] = None
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None


class VoteRequest(CamelModel):
    vote_type: VoteType


class CreateCommentRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=2000)


def author_to_dict(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {
        "id": str(user.id),
        "firstName": user.first_name,
        "lastName": user.last_name,
        "profilePicture": user.profile_picture,
        "reputationScore": user.reputation_score,
    }


def post_to_dict(post: CommunityPost) -> dict:
    return {
        "id": str(post.id),
        "postType": post.post_type.value,
        "title": post.title,
        "content": post.content,
        "images": post.images or [],
        "upvotes": post.upvotes,
        "downvotes": post.downvotes,
        "score": post.score,
        "isVerified": post.is_verified,
        "routeId": str(post.route_id) if post.route_id else None,
        "author": author_to_dict(post.author),
        "location": (
            {"id": str(post.location.id), "name": post.location.name} if post.location else None
        ),
        "createdAt": isoformat(post.created_at),
        "updatedAt": isoformat(post.updated_at),
    }


def comment_to_dict(comment: CommunityComment, author: Optional[User] = None) -> dict:
    return {
        "id": str(comment.id),
        "postId": str(comment.post_id),
        "content": comment.content,
        "upvotes": comment.upvotes,
        "downvotes": comment.downvotes,
        "author": author_to_dict(author or comment.author),
        "createdAt": isoformat(comment.created_at),
    }


def pagination(page: int, limit: int, total: int) -> dict:
    return {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}
