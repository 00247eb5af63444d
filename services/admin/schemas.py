from typing import Optional

from pydantic import EmailStr, Field

from common.schemas import CamelModel
from common.timeutils import isoformat
from models.admin import Admin
from models.user_models import User


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminRefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class UpdateUserStatusRequest(CamelModel):
    is_active: bool
    reason: Optional[str] = Field(None, max_length=500)


class AdminDeleteUserRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class PostStatusRequest(CamelModel):
    is_active: bool
    reason: Optional[str] = Field(None, max_length=500)


def admin_to_dict(admin: Admin) -> dict:
    return {
        "id": str(admin.id),
        "email": admin.email,
        "firstName": admin.first_name,
        "lastName": admin.last_name,
        "role": admin.role.value,
        "isActive": admin.is_active,
        "mustChangePassword": admin.must_change_password,
        "lastLoginAt": isoformat(admin.last_login_at),
    }


def managed_user_to_dict(user: User) -> dict:
    """User as seen from the admin console, including account state."""
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phoneNumber": user.phone_number,
        "authProvider": user.auth_provider.value,
        "isVerified": user.is_verified,
        "isActive": user.is_active,
        "reputationScore": user.reputation_score,
        "totalContributions": user.total_contributions,
        "lastLoginAt": isoformat(user.last_login_at),
        "createdAt": isoformat(user.created_at),
    }
