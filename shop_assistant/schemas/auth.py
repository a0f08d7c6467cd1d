import re
from typing import Literal

from pydantic import Field, field_validator

from shop_assistant.schemas.common import CamelModel, DisplayDateTime

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
PHONE_PATTERN = r"^1[3-9]\d{9}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def check_password_strength(value: str) -> str:
    if len(value) < 6:
        raise ValueError("Password must be at least 6 characters")
    if len(value) > 20:
        raise ValueError("Password must be at most 20 characters")
    if not re.search(r"[a-zA-Z]", value):
        raise ValueError("Password must contain a letter")
    if not re.search(r"\d", value):
        raise ValueError("Password must contain a digit")
    return value


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    password: str
    phone: str = Field(pattern=PHONE_PATTERN)
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)
    invitation_code: str | None = Field(default=None, max_length=20)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("invitation_code", mode="before")
    @classmethod
    def normalize_invitation_code(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


class LoginRequest(CamelModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)
    account_type: Literal["user", "sub_account"] = "user"

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("username must not be empty")
        return normalized


class AvailabilityRequest(CamelModel):
    type: Literal["username", "phone", "email"]
    value: str = Field(min_length=1)


class AvailabilityOut(CamelModel):
    available: bool
    message: str


class ForgotPasswordRequest(CamelModel):
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)


class ResetTokenRequest(CamelModel):
    token: str = Field(min_length=20, max_length=512)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=20, max_length=512)
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)


class UserOut(CamelModel):
    id: int
    username: str
    phone: str | None = None
    email: str | None = None
    invite_code: str | None = None
    status: str
    account_type: Literal["user"] = "user"
    created_time: DisplayDateTime | None = None


class ParentUserOut(CamelModel):
    id: int
    username: str


class SubAccountIdentityOut(CamelModel):
    id: int
    username: str
    parent_user_id: int
    real_name: str | None = None
    role: str
    status: str
    responsible_malls: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    account_type: Literal["sub_account"] = "sub_account"
    parent_user: ParentUserOut | None = None
    created_time: DisplayDateTime | None = None

    @field_validator("responsible_malls", mode="before")
    @classmethod
    def stringify_malls(cls, value):
        return [str(mall_id) for mall_id in value or []]


class AuthSessionOut(CamelModel):
    user: UserOut | SubAccountIdentityOut
    token: str
