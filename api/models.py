"""
API request and response models for the AdminAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.

Field names follow the admin panel's wire format (camelCase such as
registrationToken, resetPasswordToken, userInfo); Python attributes are
snake_case with aliases.

Input validation lives here and only here. A body that fails these models is
answered with 400 validation_error before any service runs.
"""

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# bcrypt only reads the first 72 bytes of a password.
PASSWORD_MAX_LENGTH = 72
PASSWORD_MIN_LENGTH = 8


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _check_password_strength(value: str) -> str:
    """Require at least one lowercase letter, one uppercase letter and one digit."""
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase character")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase character")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain at least one number")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /admin/login.

    No strength rules on login -- a weak stored password must still be able
    to log in, and the error must not hint at which rule failed.
    """

    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)


class AdminRegistrationRequest(BaseModel):
    """Request body for POST /admin/register-admin (first super admin)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    firstname: str = Field(min_length=1, max_length=255)
    lastname: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    username: Optional[str] = Field(default=None, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class RegistrationUserInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    firstname: str = Field(min_length=1, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class RegistrationRequest(BaseModel):
    """Request body for POST /admin/register (invited administrator)."""

    model_config = ConfigDict(populate_by_name=True)

    registration_token: str = Field(alias="registrationToken", min_length=1, max_length=64)
    user_info: RegistrationUserInfo = Field(alias="userInfo")


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /admin/forgot-password. Shape only -- existence is never checked here."""

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        return _normalize_email(value)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /admin/reset-password."""

    model_config = ConfigDict(populate_by_name=True)

    reset_password_token: str = Field(alias="resetPasswordToken", min_length=1, max_length=128)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserOut(BaseModel):
    """Sanitized administrator -- built from auth.models.sanitize_user(), never from User directly."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    email: str
    username: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    roles: list[int] = Field(default_factory=list)
    is_active: bool = Field(alias="isActive")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class LoginData(BaseModel):
    status: str = "Authenticated"
    user: UserOut


class LoginResponse(BaseModel):
    data: LoginData


class TokenData(BaseModel):
    token: str


class TokenResponse(BaseModel):
    data: TokenData


class RegistrationInfo(BaseModel):
    email: str
    firstname: Optional[str] = None
    lastname: Optional[str] = None


class RegistrationInfoResponse(BaseModel):
    data: RegistrationInfo


class RegisterData(BaseModel):
    token: str
    user: UserOut


class RegisterResponse(BaseModel):
    data: RegisterData


class UserData(BaseModel):
    user: UserOut


class UserResponse(BaseModel):
    """Envelope for register-admin and reset-password (the token travels in the cookie)."""

    data: UserData


class AuthorizedResponse(BaseModel):
    authorized: bool
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload. detail carries field-level validation errors."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /admin/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
