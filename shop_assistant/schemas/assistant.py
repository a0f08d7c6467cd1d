from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from shop_assistant.schemas.common import Amount, CamelModel, DisplayDateTime, RawDecimal


class MallScopeOut(CamelModel):
    allowed_mall_ids: list[str]
    is_plugin_mode: bool
    account_id: int | None = None
    username: str | None = None
    account_type: str | None = None


class MallStateOut(CamelModel):
    id: int
    mall_id: str
    mall_name: str
    region_code: str | None = None
    region_name: str | None = None
    state_type: str | None = None
    state: str | None = None
    last_collect_time: DisplayDateTime | None = None
    created_time: DisplayDateTime | None = None
    updated_time: DisplayDateTime | None = None


class MallStateSaveRequest(CamelModel):
    mall_id: str = Field(min_length=1, max_length=255)
    mall_name: str = Field(min_length=1, max_length=255)
    state_type: str | None = Field(default=None, max_length=255)
    state: str | None = Field(default=None, max_length=255)
    region_code: str | None = Field(default=None, max_length=50)
    region_name: str | None = Field(default=None, max_length=50)

    @field_validator("mall_id", mode="before")
    @classmethod
    def stringify_mall_id(cls, value):
        return str(value).strip() if value is not None else value


class SettlementDetailOut(CamelModel):
    id: int
    mall_id: str
    mall_name: str
    region_code: str | None = None
    region_name: str | None = None
    sku_id: str
    sku_code: str | None = None
    goods_name: str | None = None
    sku_property: str | None = None
    sales_volume: int
    sales_amount: RawDecimal
    currency: str
    product_name: str | None = None
    cost_price: RawDecimal | None = None
    created_time: DisplayDateTime | None = None
    updated_time: DisplayDateTime | None = None


class ArrivalDataOut(SettlementDetailOut):
    accounting_time: DisplayDateTime
    d30_arrival_average_price: RawDecimal


class PendingSettlementOut(SettlementDetailOut):
    pending_average_price: RawDecimal


class SettlementItem(CamelModel):
    mall_id: str = Field(min_length=1, max_length=255)
    mall_name: str = Field(min_length=1, max_length=255)
    region_code: str | None = Field(default=None, max_length=50)
    region_name: str | None = Field(default=None, max_length=50)
    sku_id: str = Field(min_length=1, max_length=255)
    sku_code: str | None = Field(default=None, max_length=255)
    goods_name: str | None = None
    sku_property: str | None = None
    sales_volume: int = Field(default=0, ge=0)
    currency: str = Field(default="CNY", max_length=10)
    updated_time: datetime | None = None

    @field_validator("mall_id", "sku_id", mode="before")
    @classmethod
    def stringify_ids(cls, value):
        return str(value).strip() if value is not None else value


class ArrivalDataItem(SettlementItem):
    accounting_time: datetime
    income_amount: Decimal = Decimal("0")


class ArrivalDataSaveRequest(CamelModel):
    data: list[ArrivalDataItem] = Field(default_factory=list)


class PendingSettlementItem(SettlementItem):
    sales_amount: Decimal = Decimal("0")


class PendingSettlementSaveRequest(CamelModel):
    mall_id: str = Field(min_length=1)
    region_code: str | None = None
    data: list[PendingSettlementItem] = Field(default_factory=list)

    @field_validator("mall_id", mode="before")
    @classmethod
    def stringify_mall_id(cls, value):
        return str(value).strip() if value is not None else value


class ArrivalUpdateCheckRequest(CamelModel):
    mall_id: str = Field(min_length=1)
    region_code: str | None = None

    @field_validator("mall_id", mode="before")
    @classmethod
    def stringify_mall_id(cls, value):
        return str(value).strip() if value is not None else value


class PromotionSalesOut(CamelModel):
    id: int
    mall_id: str
    mall_name: str
    spu_id: str | None = None
    skc_id: str | None = None
    sku_id: str
    product_name: str | None = None
    declared_price: RawDecimal | None = None
    cost_price: RawDecimal | None = None
    today_sales_cost: RawDecimal | None = None
    today_sales_volume: int
    today_sales_amount: RawDecimal | None = None
    today_promotion_sales_volume: int
    today_promotion_sales_amount: RawDecimal | None = None
    today_average_price: RawDecimal | None = None
    today_gross_profit: RawDecimal | None = None
    today_profit_rate: RawDecimal | None = None
    currency: str
    created_time: DisplayDateTime | None = None
    updated_time: DisplayDateTime | None = None


class PromotionSalesItem(CamelModel):
    mall_id: str = Field(min_length=1, max_length=255)
    mall_name: str = Field(min_length=1, max_length=255)
    spu_id: str | None = None
    skc_id: str | None = None
    sku_id: str = Field(min_length=1, max_length=255)
    sku_code: str | None = None
    sku_property: str | None = None
    goods_name: str | None = None
    declared_price: Decimal = Decimal("0")
    today_sales_volume: int = Field(default=0, ge=0)
    today_promotion_sales_volume: int = Field(default=0, ge=0)
    today_promotion_sales_amount: Decimal = Decimal("0")
    currency: str = Field(default="CNY", max_length=10)

    @field_validator("mall_id", "sku_id", "spu_id", "skc_id", mode="before")
    @classmethod
    def stringify_ids(cls, value):
        return str(value).strip() if value is not None else value


class SalesDetailsSaveRequest(CamelModel):
    mall_id: str = Field(min_length=1)
    data: list[PromotionSalesItem] = Field(default_factory=list)

    @field_validator("mall_id", mode="before")
    @classmethod
    def stringify_mall_id(cls, value):
        return str(value).strip() if value is not None else value


class MallSalesSummaryOut(CamelModel):
    mall_today_promotion_sales_volume: int
    mall_today_sales_amount: float
    mall_today_gross_profit: float
    mall_today_gross_loss_profit: float
    mall_today_sales_cost: float
    mall_today_profit_rate: str
    mall_today_average_profit: float
    mall_today_sales_volume: int
    updated_time: str


class CostSettlementOut(CamelModel):
    id: int
    mall_id: str
    mall_name: str
    sku_id: str
    sku_code: str | None = None
    sku_property: str | None = None
    product_name: str | None = None
    goods_name: str | None = None
    cost_price: RawDecimal | None = None
    pending_average_price: RawDecimal | None = None
    pending_sales_volume: int | None = None
    pending_sales_amount: Amount | None = None
    pending_profit_rate: RawDecimal | None = None
    pending_gross_profit: Amount | None = None
    d30_arrival_average_price: RawDecimal | None = None
    d30_arrival_sales_volume: int | None = None
    d30_arrival_sales_amount: Amount | None = None
    d30_arrival_profit_rate: RawDecimal | None = None
    d30_arrival_gross_profit: Amount | None = None
    pending_updated_time: DisplayDateTime | None = None
    arrival_updated_time: DisplayDateTime | None = None
    created_time: DisplayDateTime | None = None
    updated_time: DisplayDateTime | None = None


class MallSettlementSummaryOut(CamelModel):
    pending_sales_volume: int
    pending_sales_amount: float
    pending_cost_price: float
    pending_gross_profit: float
    pending_gross_loss_profit: float
    pending_average_profit: float
    pending_profit_rate: str
    d30_arrival_sales_volume: int
    d30_arrival_sales_amount: float
    d30_arrival_cost_price: float
    d30_arrival_gross_profit: float
    d30_arrival_gross_loss_profit: float
    d30_arrival_average_profit: float
    d30_arrival_profit_rate: str
    pending_updated_time: str
    arrival_updated_time: str


class CostPriceUpdateRequest(CamelModel):
    sku_id: str = Field(min_length=1)
    product_name: str | None = Field(default=None, max_length=510)
    cost_price: Decimal = Field(gt=0, max_digits=10, decimal_places=5)

    @field_validator("sku_id", mode="before")
    @classmethod
    def stringify_sku_id(cls, value):
        return str(value).strip() if value is not None else value


class PendingSyncRequest(CamelModel):
    mall_id: str = Field(min_length=1)
    sku_id: str = Field(min_length=1)

    @field_validator("mall_id", "sku_id", mode="before")
    @classmethod
    def stringify_ids(cls, value):
        return str(value).strip() if value is not None else value


class SyncResultOut(CamelModel):
    updated: int = 0
    created: int = 0
    skipped: int = 0
