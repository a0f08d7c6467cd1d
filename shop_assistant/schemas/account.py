from pydantic import Field, field_validator

from shop_assistant.models.account import AccountStatus, SubAccountRole
from shop_assistant.schemas.auth import USERNAME_PATTERN, check_password_strength
from shop_assistant.schemas.common import CamelModel, DisplayDateTime


class MallBindingOut(CamelModel):
    id: int
    mall_id: str
    mall_name: str
    bind_time: DisplayDateTime | None = None
    created_time: DisplayDateTime | None = None

    @field_validator("mall_id", mode="before")
    @classmethod
    def stringify_mall_id(cls, value):
        return str(value)


class MallBindRequest(CamelModel):
    mall_id: int = Field(gt=0)
    mall_name: str = Field(min_length=1, max_length=255)

    @field_validator("mall_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("mallName must not be empty")
        return normalized


class PackageSummaryOut(CamelModel):
    id: int
    package_name: str | None = None
    expire_time: DisplayDateTime | None = None


class MallQuotaOut(CamelModel):
    total_quota: int
    current_bind_count: int
    remaining_quota: int
    package_quota: int
    reward_quota: int
    can_bind: bool
    package_info: PackageSummaryOut | None = None


class SubAccountOut(CamelModel):
    id: int
    parent_user_id: int
    username: str
    real_name: str | None = None
    phone: str | None = None
    email: str | None = None
    role: SubAccountRole
    status: AccountStatus
    responsible_malls: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    last_login_time: DisplayDateTime | None = None
    created_time: DisplayDateTime | None = None
    updated_time: DisplayDateTime | None = None

    @field_validator("responsible_malls", mode="before")
    @classmethod
    def stringify_malls(cls, value):
        return [str(mall_id) for mall_id in value or []]


class SubAccountCreate(CamelModel):
    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    password: str
    real_name: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=20)
    email: str | None = Field(default=None, max_length=100)
    role: SubAccountRole = SubAccountRole.OPERATOR
    responsible_malls: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("responsible_malls", mode="before")
    @classmethod
    def stringify_malls(cls, value):
        return [str(mall_id).strip() for mall_id in value or []]


class SubAccountUpdate(CamelModel):
    username: str | None = Field(default=None, min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    password: str | None = None
    real_name: str | None = Field(default=None, max_length=50)
    phone: str | None = Field(default=None, max_length=20)
    email: str | None = Field(default=None, max_length=100)
    role: SubAccountRole | None = None
    status: AccountStatus | None = None
    responsible_malls: list[str] | None = None
    permissions: list[str] | None = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str | None) -> str | None:
        return check_password_strength(value) if value is not None else None

    @field_validator("responsible_malls", mode="before")
    @classmethod
    def stringify_malls(cls, value):
        if value is None:
            return None
        return [str(mall_id).strip() for mall_id in value]


class PasswordResetBody(CamelModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_strength(value)


class OperationLogOut(CamelModel):
    id: int
    user_id: int | None = None
    operation_type: str
    operation_desc: str | None = None
    status: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_time: DisplayDateTime | None = None
