from pydantic import Field

from shop_assistant.models.account import AccountStatus
from shop_assistant.models.admin import AdminRole
from shop_assistant.schemas.common import CamelModel, DisplayDateTime


class AdminLoginRequest(CamelModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=128)


class AdminOut(CamelModel):
    id: int
    username: str
    email: str | None = None
    phone: str | None = None
    real_name: str | None = None
    role: AdminRole
    status: AccountStatus
    last_login_time: DisplayDateTime | None = None
    last_login_ip: str | None = None


class AdminSessionOut(CamelModel):
    admin: AdminOut
    token: str


class DashboardStatsOut(CamelModel):
    total_users: int
    active_users: int
    total_sub_accounts: int
    total_mall_bindings: int
    active_user_packages: int
    latest_plugin_version: str | None = None
