from typing import Optional

from pydantic import EmailStr, Field, field_validator

from common.schemas import CamelModel
from models.user_models import UserSex


class _EmailModel(CamelModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterRequest(_EmailModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    sex: Optional[UserSex] = None
    phone_number: Optional[str] = Field(None, min_length=7, max_length=32)
    country: Optional[str] = Field(None, max_length=100)
    language: Optional[str] = Field(None, max_length=50)
    fcm_token: Optional[str] = None
    device_info: Optional[str] = None


class VerifyEmailRequest(_EmailModel):
    otp_code: str = Field(..., min_length=4, max_length=10)


class EmailOnlyRequest(_EmailModel):
    pass


class RequestLoginOtpRequest(_EmailModel):
    fcm_token: Optional[str] = None
    device_info: Optional[str] = None


class VerifyLoginOtpRequest(_EmailModel):
    otp_code: str = Field(..., min_length=4, max_length=10)
    fcm_token: Optional[str] = None
    device_info: Optional[str] = None


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class LogoutRequest(CamelModel):
    fcm_token: Optional[str] = None


class GoogleAuthRequest(CamelModel):
    id_token: str
    fcm_token: Optional[str] = None
    device_info: Optional[str] = None
    phone_number: Optional[str] = Field(None, min_length=7, max_length=32)


class CapturePhoneRequest(CamelModel):
    phone_number: str = Field(..., min_length=7, max_length=32)


class VerifyPhoneRequest(CamelModel):
    otp_code: str = Field(..., min_length=4, max_length=10)
