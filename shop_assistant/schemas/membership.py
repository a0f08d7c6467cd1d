from datetime import datetime
from decimal import Decimal

from pydantic import Field, model_validator

from shop_assistant.models.membership import PluginStatus, RewardStatus, RewardType
from shop_assistant.schemas.common import CamelModel, DisplayDateTime, Page, RawDecimal


class PackageOut(CamelModel):
    id: int
    package_name: str
    package_desc: str | None = None
    package_type: str
    original_price: RawDecimal
    duration_months: int
    max_bind_mall: int
    discount_percent: RawDecimal | None = None
    discount_start_time: DisplayDateTime | None = None
    discount_end_time: DisplayDateTime | None = None
    is_active: bool
    created_time: DisplayDateTime | None = None


class PackageCreate(CamelModel):
    package_name: str = Field(min_length=1, max_length=255)
    package_desc: str | None = None
    package_type: str = Field(min_length=1, max_length=50)
    original_price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    duration_months: int = Field(default=1, ge=1)
    max_bind_mall: int = Field(default=1, ge=0)
    discount_percent: Decimal | None = Field(default=None, ge=0, le=100)
    discount_start_time: datetime | None = None
    discount_end_time: datetime | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_discount_window(self):
        if self.discount_start_time and self.discount_end_time and self.discount_end_time < self.discount_start_time:
            raise ValueError("discountEndTime must not be before discountStartTime")
        return self


class PackageUpdate(CamelModel):
    package_name: str | None = Field(default=None, min_length=1, max_length=255)
    package_desc: str | None = None
    package_type: str | None = Field(default=None, min_length=1, max_length=50)
    original_price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    duration_months: int | None = Field(default=None, ge=1)
    max_bind_mall: int | None = Field(default=None, ge=0)
    discount_percent: Decimal | None = Field(default=None, ge=0, le=100)
    discount_start_time: datetime | None = None
    discount_end_time: datetime | None = None
    is_active: bool | None = None


class UserPackageOut(CamelModel):
    id: int
    package_id: int
    order_time: DisplayDateTime
    expire_time: DisplayDateTime
    is_active: bool
    package: PackageOut | None = None


class InvitedUserOut(CamelModel):
    id: int
    username: str


class InvitationOut(CamelModel):
    id: int
    inviter_id: int
    invitee_id: int
    status: str
    created_time: DisplayDateTime | None = None
    inviter: InvitedUserOut | None = None
    invitee: InvitedUserOut | None = None


class InvitationLinkOut(CamelModel):
    invite_code: str
    invitation_link: str


class InvitationInfoOut(CamelModel):
    invite_code: str
    total_invitees: int
    reward_mall_count: int


class InvitationRewardOut(CamelModel):
    id: int
    invitee_id: int
    mall_id: int
    mall_name: str | None = None
    reward_type: RewardType
    reward_value: RawDecimal
    status: RewardStatus
    granted_at: DisplayDateTime | None = None
    created_time: DisplayDateTime | None = None
    invitee: InvitedUserOut | None = None


class RewardStatsOut(CamelModel):
    total: int
    granted: int
    pending: int
    reward_mall_count: int


class InvitationRewardPage(Page[InvitationRewardOut]):
    stats: RewardStatsOut


class RewardClaimRequest(CamelModel):
    reward_id: int = Field(ge=1)


class PackageOrderRequest(CamelModel):
    package_id: int = Field(ge=1)
    payment_method: str = Field(default="alipay", max_length=20)


class PluginVersionOut(CamelModel):
    id: int
    version: str
    release_date: DisplayDateTime
    download_url: str
    file_name: str | None = None
    file_size: int | None = None
    description: str | None = None
    changelog: str | None = None
    is_latest: bool
    status: PluginStatus
    created_time: DisplayDateTime | None = None


class LatestPluginOut(CamelModel):
    version: str
    release_date: DisplayDateTime
    description: str | None = None
    changelog: str | None = None
    download_url: str
    file_name: str | None = None
    file_size: int | None = None


class PluginCheckOut(CamelModel):
    has_update: bool
    current_version: str | None = None
    latest_version: LatestPluginOut


VERSION_PATTERN = r"^\d+(\.\d+)*$"


class PluginVersionCreate(CamelModel):
    version: str = Field(min_length=1, max_length=20, pattern=VERSION_PATTERN)
    release_date: datetime
    download_url: str = Field(min_length=1, max_length=500)
    file_name: str | None = Field(default=None, max_length=255)
    file_size: int | None = Field(default=None, ge=0)
    description: str | None = None
    changelog: str | None = None
    is_latest: bool = True


class PluginVersionUpdate(CamelModel):
    version: str | None = Field(default=None, min_length=1, max_length=20, pattern=VERSION_PATTERN)
    release_date: datetime | None = None
    download_url: str | None = Field(default=None, min_length=1, max_length=500)
    file_name: str | None = Field(default=None, max_length=255)
    file_size: int | None = Field(default=None, ge=0)
    description: str | None = None
    changelog: str | None = None
    is_latest: bool | None = None
    status: PluginStatus | None = None
