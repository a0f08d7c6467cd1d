"""mall state, settlement detail and cost settlement tables

Revision ID: 20261001_0002
Revises: 20261001_0001
Create Date: 2026-10-01 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261001_0002"
down_revision: Union[str, Sequence[str], None] = "20261001_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=10, scale=5)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_time", sa.DateTime(), nullable=False),
        sa.Column("updated_time", sa.DateTime(), nullable=False),
    ]


def _mall_columns() -> list[sa.Column]:
    return [
        sa.Column("mall_id", sa.String(length=255), nullable=False),
        sa.Column("mall_name", sa.String(length=255), nullable=False),
    ]


def _detail_columns() -> list[sa.Column]:
    return [
        sa.Column("region_code", sa.String(length=50), nullable=True),
        sa.Column("region_name", sa.String(length=50), nullable=True),
        sa.Column("sku_id", sa.String(length=255), nullable=False),
        sa.Column("sku_code", sa.String(length=255), nullable=True),
        sa.Column("goods_name", sa.Text(), nullable=True),
        sa.Column("sku_property", sa.Text(), nullable=True),
        sa.Column("sales_volume", sa.Integer(), nullable=False),
        sa.Column("sales_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "mall_state",
        sa.Column("id", sa.Integer(), nullable=False),
        *_mall_columns(),
        sa.Column("region_code", sa.String(length=50), nullable=True),
        sa.Column("region_name", sa.String(length=50), nullable=True),
        sa.Column("state_type", sa.String(length=255), nullable=True),
        sa.Column("state", sa.String(length=255), nullable=True),
        sa.Column("last_collect_time", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_mall_state_id"), "mall_state", ["id"], unique=False)
    op.create_index(op.f("ix_mall_state_mall_id"), "mall_state", ["mall_id"], unique=True)
    op.create_index(op.f("ix_mall_state_mall_name"), "mall_state", ["mall_name"], unique=False)
    op.create_index(op.f("ix_mall_state_updated_time"), "mall_state", ["updated_time"], unique=False)

    op.create_table(
        "arrival_data_details",
        sa.Column("id", sa.Integer(), nullable=False),
        *_mall_columns(),
        sa.Column("accounting_time", sa.DateTime(), nullable=False),
        *_detail_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "pending_settlement_details",
        sa.Column("id", sa.Integer(), nullable=False),
        *_mall_columns(),
        *_detail_columns(),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    for table in ("arrival_data_details", "pending_settlement_details"):
        for column in ("id", "mall_id", "mall_name", "region_code", "sku_id", "updated_time"):
            op.create_index(op.f(f"ix_{table}_{column}"), table, [column], unique=False)
    op.create_index(
        op.f("ix_arrival_data_details_accounting_time"), "arrival_data_details", ["accounting_time"], unique=False
    )

    op.create_table(
        "promotion_sales_details",
        sa.Column("id", sa.Integer(), nullable=False),
        *_mall_columns(),
        sa.Column("spu_id", sa.String(length=255), nullable=True),
        sa.Column("skc_id", sa.String(length=255), nullable=True),
        sa.Column("sku_id", sa.String(length=255), nullable=False),
        sa.Column("declared_price", MONEY, nullable=True),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("today_sales_cost", MONEY, nullable=True),
        sa.Column("today_sales_volume", sa.Integer(), nullable=False),
        sa.Column("today_sales_amount", MONEY, nullable=True),
        sa.Column("today_promotion_sales_volume", sa.Integer(), nullable=False),
        sa.Column("today_promotion_sales_amount", MONEY, nullable=True),
        sa.Column("today_average_price", MONEY, nullable=True),
        sa.Column("today_gross_profit", MONEY, nullable=True),
        sa.Column("today_profit_rate", MONEY, nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_promotion_sales_details_id"), "promotion_sales_details", ["id"], unique=False)
    op.create_index(op.f("ix_promotion_sales_details_mall_id"), "promotion_sales_details", ["mall_id"], unique=False)
    op.create_index(
        op.f("ix_promotion_sales_details_mall_name"), "promotion_sales_details", ["mall_name"], unique=False
    )
    op.create_index(op.f("ix_promotion_sales_details_sku_id"), "promotion_sales_details", ["sku_id"], unique=True)
    op.create_index(
        op.f("ix_promotion_sales_details_updated_time"), "promotion_sales_details", ["updated_time"], unique=False
    )

    op.create_table(
        "cost_settlement",
        sa.Column("id", sa.Integer(), nullable=False),
        *_mall_columns(),
        sa.Column("sku_id", sa.String(length=255), nullable=False),
        sa.Column("sku_code", sa.String(length=255), nullable=True),
        sa.Column("sku_property", sa.Text(), nullable=True),
        sa.Column("product_name", sa.String(length=510), nullable=True),
        sa.Column("goods_name", sa.Text(), nullable=True),
        sa.Column("cost_price", MONEY, nullable=True),
        sa.Column("pending_average_price", MONEY, nullable=True),
        sa.Column("pending_sales_volume", sa.Integer(), nullable=True),
        sa.Column("pending_sales_amount", MONEY, nullable=True),
        sa.Column("pending_profit_rate", MONEY, nullable=True),
        sa.Column("pending_gross_profit", MONEY, nullable=True),
        sa.Column("d30_arrival_average_price", MONEY, nullable=True),
        sa.Column("d30_arrival_sales_volume", sa.Integer(), nullable=True),
        sa.Column("d30_arrival_sales_amount", MONEY, nullable=True),
        sa.Column("d30_arrival_profit_rate", MONEY, nullable=True),
        sa.Column("d30_arrival_gross_profit", MONEY, nullable=True),
        sa.Column("pending_updated_time", sa.DateTime(), nullable=True),
        sa.Column("arrival_updated_time", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_cost_settlement_id"), "cost_settlement", ["id"], unique=False)
    op.create_index(op.f("ix_cost_settlement_mall_id"), "cost_settlement", ["mall_id"], unique=False)
    op.create_index(op.f("ix_cost_settlement_mall_name"), "cost_settlement", ["mall_name"], unique=False)
    op.create_index(op.f("ix_cost_settlement_sku_id"), "cost_settlement", ["sku_id"], unique=True)
    op.create_index(op.f("ix_cost_settlement_cost_price"), "cost_settlement", ["cost_price"], unique=False)
    op.create_index(op.f("ix_cost_settlement_updated_time"), "cost_settlement", ["updated_time"], unique=False)


def downgrade() -> None:
    op.drop_table("cost_settlement")
    op.drop_table("promotion_sales_details")
    op.drop_table("pending_settlement_details")
    op.drop_table("arrival_data_details")
    op.drop_table("mall_state")
