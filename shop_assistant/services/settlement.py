"""Profit arithmetic shared by the settlement and sales endpoints.

All functions take and return ``Decimal``. ``None`` inputs are treated the
same way a missing column is: they never raise, they produce zero.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from shop_assistant.core.config import settings

ZERO = Decimal("0")
CENT = Decimal("0.01")
STORAGE_PLACES = Decimal("0.00001")

PENDING_LOGISTICS_FEE = Decimal("0.1")
PENDING_PLATFORM_FEE_RATE = Decimal("0.025")
PENDING_COST_FEE_RATE = Decimal("0.01")


def to_decimal(value) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _dec(value) -> Decimal:
    result = to_decimal(value)
    return ZERO if result is None else result


def quantize_storage(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return value.quantize(STORAGE_PLACES, rounding=ROUND_HALF_UP)


def to_cny(amount, currency: str | None) -> Decimal:
    value = _dec(amount)
    if (currency or "").upper() == "USD":
        return value * settings.usd_to_cny_rate
    return value


def average_price(amount, volume) -> Decimal:
    """Average unit price truncated (not rounded) to cents."""
    volume_value = _dec(volume)
    if not volume_value:
        return ZERO
    return (_dec(amount) / volume_value).quantize(CENT, rounding=ROUND_FLOOR)


def pending_gross_profit(avg_price, cost_price, volume) -> Decimal:
    volume_value = _dec(volume)
    if not volume_value:
        return ZERO
    avg = _dec(avg_price)
    cost = _dec(cost_price)
    unit_profit = (
        (avg - cost - PENDING_LOGISTICS_FEE)
        - avg * PENDING_PLATFORM_FEE_RATE
        - (cost + PENDING_LOGISTICS_FEE) * PENDING_COST_FEE_RATE
    )
    return unit_profit * volume_value


def arrival_gross_profit(avg_price, cost_price, volume) -> Decimal:
    volume_value = _dec(volume)
    if not volume_value:
        return ZERO
    return (_dec(avg_price) - _dec(cost_price)) * volume_value


def profit_rate(gross_profit, cost_price, volume) -> Decimal:
    gross = _dec(gross_profit)
    cost = _dec(cost_price)
    volume_value = _dec(volume)
    if not cost or not volume_value or not gross:
        return ZERO
    return gross.quantize(CENT, rounding=ROUND_HALF_UP) / (cost * volume_value)


@dataclass(frozen=True)
class SalesMetrics:
    sales_amount: Decimal
    average_price: Decimal | None
    quantity: int
    gross_profit: Decimal | None = None
    sales_cost: Decimal | None = None
    profit_rate: Decimal | None = None


def today_sales_metrics(
    sales_volume: int,
    promotion_volume: int,
    declared_price,
    promotion_amount,
    cost_price=None,
) -> SalesMetrics:
    sales_volume = int(sales_volume or 0)
    promotion_volume = int(promotion_volume or 0)
    promo_amount = _dec(promotion_amount)

    if sales_volume > promotion_volume:
        amount = (sales_volume - promotion_volume) * _dec(declared_price) + promo_amount
        quantity = sales_volume
    else:
        amount = promo_amount
        quantity = promotion_volume
    avg = amount / quantity if quantity else None

    cost = to_decimal(cost_price)
    if not cost or avg is None:
        return SalesMetrics(sales_amount=amount, average_price=avg, quantity=quantity)

    gross = (avg - cost) * quantity
    sales_cost = cost * quantity
    return SalesMetrics(
        sales_amount=amount,
        average_price=avg,
        quantity=quantity,
        gross_profit=gross,
        sales_cost=sales_cost,
        profit_rate=gross / sales_cost if sales_cost else ZERO,
    )


def _safe_ratio(numerator: Decimal, denominator) -> Decimal:
    if not numerator or not denominator:
        return ZERO
    return numerator / denominator


def summarize_window(rows: Iterable, volume_attr: str, amount_attr: str, gross_attr: str) -> dict:
    volume = 0
    amount = ZERO
    cost = ZERO
    gross = ZERO
    loss = ZERO
    for row in rows:
        cost_price = to_decimal(row.cost_price)
        item_volume = getattr(row, volume_attr) or 0
        if not cost_price or not item_volume:
            continue
        item_gross = _dec(getattr(row, gross_attr))
        volume += int(item_volume)
        amount += _dec(getattr(row, amount_attr))
        cost += cost_price * int(item_volume)
        gross += item_gross
        if item_gross < 0:
            loss += item_gross
    return {
        "sales_volume": volume,
        "sales_amount": amount,
        "cost_price": cost,
        "gross_profit": gross,
        "gross_loss_profit": loss,
        "average_profit": _safe_ratio(gross, volume),
        "profit_rate": _safe_ratio(gross, cost),
    }


def summarize_mall_settlement(rows: list) -> dict[str, dict]:
    return {
        "pending": summarize_window(rows, "pending_sales_volume", "pending_sales_amount", "pending_gross_profit"),
        "d30_arrival": summarize_window(
            rows,
            "d30_arrival_sales_volume",
            "d30_arrival_sales_amount",
            "d30_arrival_gross_profit",
        ),
    }


def summarize_mall_sales(rows: Iterable) -> dict:
    promotion_volume = 0
    sales_volume = 0
    amount = ZERO
    gross = ZERO
    loss = ZERO
    sales_cost = ZERO
    for row in rows:
        if not to_decimal(row.cost_price):
            continue
        item_gross = _dec(row.today_gross_profit)
        promotion_volume += int(row.today_promotion_sales_volume or 0)
        sales_volume += int(row.today_sales_volume or 0)
        amount += _dec(row.today_sales_amount)
        gross += item_gross
        sales_cost += _dec(row.today_sales_cost)
        if item_gross < 0:
            loss += item_gross
    return {
        "promotion_sales_volume": promotion_volume,
        "sales_volume": sales_volume,
        "sales_amount": amount,
        "gross_profit": gross,
        "gross_loss_profit": loss,
        "sales_cost": sales_cost,
        "profit_rate": _safe_ratio(gross, sales_cost),
        "average_profit": _safe_ratio(gross, sales_volume),
    }


def format_amount(value) -> float:
    return float(_dec(value).quantize(CENT, rounding=ROUND_HALF_UP))


def format_volume(value) -> int:
    return int(_dec(value))


def format_rate(value) -> str:
    return f"{(_dec(value) * 100).quantize(CENT, rounding=ROUND_HALF_UP)}%"
