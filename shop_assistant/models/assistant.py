from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shop_assistant.db.database import Base

Money = Numeric(10, 5)


class MallState(Base):
    __tablename__ = "mall_state"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mall_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    mall_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    region_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    region_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    state_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_collect_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
        index=True,
    )


class ArrivalDataDetail(Base):
    __tablename__ = "arrival_data_details"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mall_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    mall_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    region_code: Mapped[str | None] = mapped_column(String(50), index=True, nullable=True)
    region_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    accounting_time: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    sku_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    sku_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    goods_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku_property: Mapped[str | None] = mapped_column(Text, nullable=True)
    sales_volume: Mapped[int] = mapped_column(default=0, nullable=False)
    sales_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="CNY", nullable=False)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
        index=True,
    )


class PendingSettlementDetail(Base):
    __tablename__ = "pending_settlement_details"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mall_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    mall_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    region_code: Mapped[str | None] = mapped_column(String(50), index=True, nullable=True)
    region_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sku_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    sku_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    goods_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    sku_property: Mapped[str | None] = mapped_column(Text, nullable=True)
    sales_volume: Mapped[int] = mapped_column(default=0, nullable=False)
    sales_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="CNY", nullable=False)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
        index=True,
    )


class PromotionSalesDetail(Base):
    __tablename__ = "promotion_sales_details"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mall_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    mall_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    spu_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    skc_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sku_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    declared_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    cost_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_sales_cost: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_sales_volume: Mapped[int] = mapped_column(default=0, nullable=False)
    today_sales_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_promotion_sales_volume: Mapped[int] = mapped_column(default=0, nullable=False)
    today_promotion_sales_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_average_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_gross_profit: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    today_profit_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    currency: Mapped[str] = mapped_column(String(10), default="CNY", nullable=False)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
        index=True,
    )


class CostSettlement(Base):
    __tablename__ = "cost_settlement"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    mall_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    mall_name: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    sku_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    sku_code: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sku_property: Mapped[str | None] = mapped_column(Text, nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(510), nullable=True)
    goods_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost_price: Mapped[Decimal | None] = mapped_column(Money, index=True, nullable=True)
    pending_average_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    pending_sales_volume: Mapped[int | None] = mapped_column(nullable=True)
    pending_sales_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    pending_profit_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    pending_gross_profit: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    d30_arrival_average_price: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    d30_arrival_sales_volume: Mapped[int | None] = mapped_column(nullable=True)
    d30_arrival_sales_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    d30_arrival_profit_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    d30_arrival_gross_profit: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    pending_updated_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    arrival_updated_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_time: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.now,
        onupdate=datetime.now,
        nullable=False,
        index=True,
    )
