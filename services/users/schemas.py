from typing import Optional

from pydantic import EmailStr, Field

from common.schemas import CamelModel
from common.timeutils import isoformat
from models.user_models import User, UserDevice, UserSex

DELETE_CONFIRMATION = "DELETE_MY_ACCOUNT"


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    sex: Optional[UserSex] = None
    phone_number: Optional[str] = Field(None, min_length=7, max_length=32)
    email: Optional[EmailStr] = None
    country: Optional[str] = Field(None, max_length=100)
    language: Optional[str] = Field(None, max_length=50)
    profile_picture: Optional[str] = None


class RegisterTokenRequest(CamelModel):
    fcm_token: str = Field(..., min_length=1)
    device_info: Optional[str] = None


class DeleteAccountRequest(CamelModel):
    confirm_delete: str


class AcceptLegalRequest(CamelModel):
    accept_terms: bool = False
    accept_privacy: bool = False


def sanitize_user(user: User) -> dict:
    """Public view of a user; never includes the refresh token."""
    return {
        "id": str(user.id),
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "sex": user.sex.value if user.sex else None,
        "phoneNumber": user.phone_number,
        "country": user.country,
        "language": user.language,
        "authProvider": user.auth_provider.value if user.auth_provider else None,
        "profilePicture": user.profile_picture,
        "isVerified": user.is_verified,
        "isActive": user.is_active,
        "isTestAccount": user.is_test_account,
        "phoneNumberCaptured": user.phone_number_captured,
        "reputationScore": user.reputation_score,
        "totalContributions": user.total_contributions,
        "termsVersion": user.terms_version,
        "privacyVersion": user.privacy_version,
        "lastLoginAt": isoformat(user.last_login_at),
        "createdAt": isoformat(user.created_at),
    }


def device_to_dict(device: UserDevice) -> dict:
    return {
        "id": str(device.id),
        "deviceType": device.device_type.value if device.device_type else None,
        "deviceInfo": device.device_info,
        "platform": device.platform,
        "appVersion": device.app_version,
        "ipAddress": device.ip_address,
        "hasPushToken": bool(device.fcm_token),
        "isActive": device.is_active,
        "lastActiveAt": isoformat(device.last_active_at),
        "createdAt": isoformat(device.created_at),
    }
