import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop_assistant.api.deps import get_mall_scope
from shop_assistant.core.config import settings
from shop_assistant.db.database import get_db
from shop_assistant.models.assistant import (
    ArrivalDataDetail,
    CostSettlement,
    MallState,
    PendingSettlementDetail,
    PromotionSalesDetail,
)
from shop_assistant.schemas.assistant import (
    ArrivalDataOut,
    ArrivalDataSaveRequest,
    ArrivalUpdateCheckRequest,
    CostPriceUpdateRequest,
    CostSettlementOut,
    MallSalesSummaryOut,
    MallScopeOut,
    MallSettlementSummaryOut,
    MallStateOut,
    MallStateSaveRequest,
    PendingSettlementOut,
    PendingSettlementSaveRequest,
    PendingSyncRequest,
    PromotionSalesOut,
    SalesDetailsSaveRequest,
    SyncResultOut,
)
from shop_assistant.schemas.common import ApiResponse, Page, format_datetime, ok
from shop_assistant.services.mall_scope import MALL_ACCESS_DENIED, MallScope, build_mall_filters, validate_mall_access
from shop_assistant.services.query_optimizer import Pagination, QueryResult, query_optimizer
from shop_assistant.services.settlement import (
    arrival_gross_profit,
    average_price,
    format_amount,
    format_rate,
    format_volume,
    pending_gross_profit,
    profit_rate,
    quantize_storage,
    summarize_mall_sales,
    summarize_mall_settlement,
    to_cny,
    today_sales_metrics,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assistant", tags=["Assistant"])


def pagination_params(
    page_index: int | None = Query(default=None, alias="pageIndex", ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1),
    cursor: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    sort_field: str | None = Query(default=None, alias="sortField"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
) -> Pagination:
    return Pagination(
        page_index=page_index,
        page_size=page_size,
        cursor=cursor,
        limit=limit,
        sort_field=sort_field,
        sort_order=sort_order,
    )


def _with_default_sort(pagination: Pagination, sort_field: str) -> Pagination:
    if pagination.is_cursor or pagination.sort_field:
        return pagination
    return replace(pagination, sort_field=sort_field)


def _page_payload(result: QueryResult, rows: list[dict]) -> dict:
    return {
        "data": rows,
        "total": result.total,
        "page_index": result.page_index,
        "page_size": result.page_size,
        "total_pages": result.total_pages,
        "has_more": result.has_more,
        "next_cursor": result.next_cursor,
    }


def _split_ids(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [value.strip() for value in raw.split(",") if value.strip()]


def _ensure_in_scope(scope: MallScope, mall_id: str) -> None:
    if not scope.allows(mall_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=MALL_ACCESS_DENIED)


def _cost_lookup(db: Session, scope: MallScope, sku_ids) -> dict[str, CostSettlement]:
    sku_ids = sorted({sku_id for sku_id in sku_ids if sku_id})
    if not sku_ids:
        return {}
    rows = db.scalars(
        select(CostSettlement).where(
            CostSettlement.sku_id.in_(sku_ids),
            CostSettlement.mall_id.in_(scope.allowed_mall_ids),
        )
    ).all()
    return {row.sku_id: row for row in rows}


def _foreign_skus(db: Session, model, scope: MallScope, sku_ids) -> set[str]:
    """SKUs among ``sku_ids`` already registered to a mall outside the scope.

    SKU ids are unique per table, so such rows can be neither read nor
    claimed by the caller.
    """
    sku_ids = sorted({sku_id for sku_id in sku_ids if sku_id})
    if not sku_ids:
        return set()
    return set(
        db.scalars(
            select(model.sku_id).where(
                model.sku_id.in_(sku_ids),
                model.mall_id.not_in(scope.allowed_mall_ids),
            )
        ).all()
    )


def _commit(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("%s: %s", conflict_detail, exc.orig)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc


def _start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def _end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max)


# ---------------------------------------------------------------------------
# Mall state
# ---------------------------------------------------------------------------


@router.get("/mall_state/permission", response_model=ApiResponse[MallScopeOut])
def get_mall_permission(scope: MallScope = Depends(get_mall_scope)):
    account = scope.account
    return ok(
        MallScopeOut(
            allowed_mall_ids=list(scope.allowed_mall_ids),
            is_plugin_mode=scope.is_plugin_mode,
            account_id=account.id if account else None,
            username=account.username if account else None,
            account_type=account.account_type if account else None,
        )
    )


@router.get("/mall_state/query", response_model=ApiResponse[Page[MallStateOut]])
def query_mall_state(
    mall_id: str | None = Query(default=None, alias="mallId"),
    mall_name: str | None = Query(default=None, alias="mallName"),
    pagination: Pagination = Depends(pagination_params),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    conditions, signature = build_mall_filters(scope, MallState.mall_id, MallState.mall_name, mall_id, mall_name)
    result = query_optimizer.optimized_query(
        db,
        MallState,
        conditions,
        signature,
        _with_default_sort(pagination, "updated_time"),
    )
    return ok(_page_payload(result, result.data))


@router.post("/mall_state/save", response_model=ApiResponse[MallStateOut])
def save_mall_state(
    payload: MallStateSaveRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    validate_mall_access(db, scope, payload.mall_id)
    now = datetime.now()
    state = db.scalar(select(MallState).where(MallState.mall_id == payload.mall_id))
    if not state:
        state = MallState(mall_id=payload.mall_id, created_time=now)
        db.add(state)
    state.mall_name = payload.mall_name
    state.state_type = payload.state_type
    state.state = payload.state
    if payload.region_code is not None:
        state.region_code = payload.region_code
    if payload.region_name is not None:
        state.region_name = payload.region_name
    state.last_collect_time = now
    state.updated_time = now
    _commit(db, "Mall state already exists")
    db.refresh(state)
    query_optimizer.clear_cache(MallState.__tablename__)
    return ok(MallStateOut.model_validate(state), "Mall state saved")


# ---------------------------------------------------------------------------
# Arrival data
# ---------------------------------------------------------------------------


@router.get("/arrival-data/query", response_model=ApiResponse[Page[ArrivalDataOut]])
def query_arrival_data(
    mall_id: str | None = None,
    mall_name: str | None = None,
    region_name: str | None = None,
    sku_id: str | None = None,
    accounting_time_start: date | None = None,
    accounting_time_end: date | None = None,
    pagination: Pagination = Depends(pagination_params),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    conditions, signature = build_mall_filters(
        scope,
        ArrivalDataDetail.mall_id,
        ArrivalDataDetail.mall_name,
        mall_id,
        mall_name,
    )
    if region_name:
        conditions.append(ArrivalDataDetail.region_name.like(f"%{region_name.strip()}%"))
        signature["region_name"] = region_name.strip()
    sku_ids = _split_ids(sku_id)
    if sku_ids:
        conditions.append(ArrivalDataDetail.sku_id.in_(sku_ids))
        signature["sku_ids"] = sorted(sku_ids)
    if accounting_time_start:
        conditions.append(ArrivalDataDetail.accounting_time >= _start_of_day(accounting_time_start))
        signature["accounting_time_start"] = accounting_time_start.isoformat()
    if accounting_time_end:
        conditions.append(ArrivalDataDetail.accounting_time <= _end_of_day(accounting_time_end))
        signature["accounting_time_end"] = accounting_time_end.isoformat()

    result = query_optimizer.optimized_query(
        db,
        ArrivalDataDetail,
        conditions,
        signature,
        _with_default_sort(pagination, "accounting_time"),
    )
    costs = _cost_lookup(db, scope, (row["sku_id"] for row in result.data))
    rows = []
    for row in result.data:
        cost = costs.get(row["sku_id"])
        row["product_name"] = cost.product_name if cost else None
        row["cost_price"] = cost.cost_price if cost else None
        row["d30_arrival_average_price"] = average_price(row["sales_amount"], row["sales_volume"])
        rows.append(row)
    return ok(_page_payload(result, rows), "Query succeeded")


@router.post("/arrival-data/save", response_model=ApiResponse[int])
def save_arrival_data(
    payload: ArrivalDataSaveRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    for mall_id in {item.mall_id for item in payload.data}:
        validate_mall_access(db, scope, mall_id)

    now = datetime.now()
    for item in payload.data:
        db.add(
            ArrivalDataDetail(
                mall_id=item.mall_id,
                mall_name=item.mall_name,
                region_code=item.region_code,
                region_name=item.region_name,
                accounting_time=item.accounting_time,
                sku_id=item.sku_id,
                sku_code=item.sku_code,
                goods_name=item.goods_name,
                sku_property=item.sku_property,
                sales_volume=item.sales_volume,
                sales_amount=item.income_amount,
                currency=item.currency,
                created_time=now,
                updated_time=item.updated_time or now,
            )
        )
    _commit(db, "Arrival data could not be saved")
    query_optimizer.clear_cache(ArrivalDataDetail.__tablename__)
    logger.info("Saved %s arrival rows", len(payload.data))
    return ok(len(payload.data), "Arrival data saved")


@router.post("/arrival-data/isUpdated", response_model=ApiResponse[list[str]])
def check_arrival_data_range(
    payload: ArrivalUpdateCheckRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    """Return the ``[begin, end]`` date range still missing, or ``[]`` when current."""
    validate_mall_access(db, scope, payload.mall_id)
    query = select(func.max(ArrivalDataDetail.accounting_time)).where(ArrivalDataDetail.mall_id == payload.mall_id)
    if payload.region_code:
        query = query.where(ArrivalDataDetail.region_code == payload.region_code)
    latest = db.scalar(query)

    end_date = date.today() - timedelta(days=1)
    if latest is None:
        begin_date = end_date - timedelta(days=settings.arrival_window_days - 1)
        return ok([begin_date.isoformat(), end_date.isoformat()], "Query succeeded")

    begin_date = latest.date() + timedelta(days=1)
    if begin_date > end_date:
        return ok([], "Query succeeded")
    return ok([begin_date.isoformat(), end_date.isoformat()], "Query succeeded")


# ---------------------------------------------------------------------------
# Pending settlement
# ---------------------------------------------------------------------------


@router.get("/pending-settlement/query", response_model=ApiResponse[Page[PendingSettlementOut]])
def query_pending_settlement(
    mall_id: str | None = Query(default=None, alias="mallId"),
    mall_name: str | None = Query(default=None, alias="mallName"),
    region_name: str | None = Query(default=None, alias="regionName"),
    sku_id: str | None = Query(default=None, alias="skuId"),
    pagination: Pagination = Depends(pagination_params),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    conditions, signature = build_mall_filters(
        scope,
        PendingSettlementDetail.mall_id,
        PendingSettlementDetail.mall_name,
        mall_id,
        mall_name,
    )
    if region_name:
        conditions.append(PendingSettlementDetail.region_name.like(f"%{region_name.strip()}%"))
        signature["region_name"] = region_name.strip()
    sku_ids = _split_ids(sku_id)
    if sku_ids:
        conditions.append(PendingSettlementDetail.sku_id.in_(sku_ids))
        signature["sku_ids"] = sorted(sku_ids)

    result = query_optimizer.optimized_query(
        db,
        PendingSettlementDetail,
        conditions,
        signature,
        _with_default_sort(pagination, "updated_time"),
    )
    costs = _cost_lookup(db, scope, (row["sku_id"] for row in result.data))
    rows = []
    for row in result.data:
        cost = costs.get(row["sku_id"])
        row["product_name"] = cost.product_name if cost else None
        row["cost_price"] = cost.cost_price if cost else None
        row["pending_average_price"] = average_price(row["sales_amount"], row["sales_volume"])
        rows.append(row)
    return ok(_page_payload(result, rows), "Query succeeded")


@router.post("/pending-settlement/save", response_model=ApiResponse[int])
def save_pending_settlement(
    payload: PendingSettlementSaveRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    validate_mall_access(db, scope, payload.mall_id)
    if any(item.mall_id != payload.mall_id for item in payload.data):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="All rows must belong to the mall being saved",
        )

    region_filter = (
        PendingSettlementDetail.region_code == payload.region_code
        if payload.region_code is not None
        else PendingSettlementDetail.region_code.is_(None)
    )
    db.execute(
        delete(PendingSettlementDetail).where(
            PendingSettlementDetail.mall_id == payload.mall_id,
            region_filter,
        )
    )
    now = datetime.now()
    for item in payload.data:
        db.add(
            PendingSettlementDetail(
                mall_id=item.mall_id,
                mall_name=item.mall_name,
                region_code=item.region_code if item.region_code is not None else payload.region_code,
                region_name=item.region_name,
                sku_id=item.sku_id,
                sku_code=item.sku_code,
                goods_name=item.goods_name,
                sku_property=item.sku_property,
                sales_volume=item.sales_volume,
                sales_amount=item.sales_amount,
                currency=item.currency,
                created_time=now,
                updated_time=item.updated_time or now,
            )
        )
    _commit(db, "Pending settlement data could not be saved")
    query_optimizer.clear_cache(PendingSettlementDetail.__tablename__)
    return ok(len(payload.data), "Pending settlement data saved")


@router.get("/pending-settlement/isUpdated", response_model=ApiResponse[bool])
def check_pending_settlement_fresh(
    mall_id: str | None = Query(default=None, alias="mallId"),
    region_code: str | None = Query(default=None, alias="regionCode"),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    target_mall_id = mall_id or scope.default_mall_id
    _ensure_in_scope(scope, target_mall_id)
    query = select(func.max(PendingSettlementDetail.updated_time)).where(
        PendingSettlementDetail.mall_id == target_mall_id
    )
    if region_code:
        query = query.where(PendingSettlementDetail.region_code == region_code)
    latest = db.scalar(query)
    threshold = datetime.now() - timedelta(hours=settings.pending_freshness_hours)
    return ok(bool(latest and latest > threshold))


# ---------------------------------------------------------------------------
# Promotion sales details
# ---------------------------------------------------------------------------


@router.get("/sales-details/query", response_model=ApiResponse[Page[PromotionSalesOut]])
def query_sales_details(
    mall_id: str | None = Query(default=None, alias="mallId"),
    mall_name: str | None = Query(default=None, alias="mallName"),
    sku_id: str | None = Query(default=None, alias="skuId"),
    pagination: Pagination = Depends(pagination_params),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    conditions, signature = build_mall_filters(
        scope,
        PromotionSalesDetail.mall_id,
        PromotionSalesDetail.mall_name,
        mall_id,
        mall_name,
    )
    sku_ids = _split_ids(sku_id)
    if sku_ids:
        conditions.append(PromotionSalesDetail.sku_id.in_(sku_ids))
        signature["sku_ids"] = sorted(sku_ids)

    result = query_optimizer.optimized_query(
        db,
        PromotionSalesDetail,
        conditions,
        signature,
        _with_default_sort(pagination, "updated_time"),
    )
    costs = _cost_lookup(db, scope, (row["sku_id"] for row in result.data))
    rows = []
    for row in result.data:
        cost = costs.get(row["sku_id"])
        row["product_name"] = cost.product_name if cost else None
        rows.append(row)
    return ok(_page_payload(result, rows), "Query succeeded")


@router.post("/sales-details/save", response_model=ApiResponse[int])
def save_sales_details(
    payload: SalesDetailsSaveRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    validate_mall_access(db, scope, payload.mall_id)
    for item in payload.data:
        _ensure_in_scope(scope, item.mall_id)
    sku_ids = [item.sku_id for item in payload.data]
    claimed = _foreign_skus(db, CostSettlement, scope, sku_ids) | _foreign_skus(
        db, PromotionSalesDetail, scope, sku_ids
    )
    if claimed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"SKU registered to another mall: {', '.join(sorted(claimed))}",
        )

    now = datetime.now()
    db.execute(
        delete(PromotionSalesDetail).where(
            PromotionSalesDetail.mall_id == payload.mall_id,
            PromotionSalesDetail.updated_time < _start_of_day(date.today()),
        )
    )

    for item in payload.data:
        cost_row = db.scalar(
            select(CostSettlement).where(
                CostSettlement.sku_id == item.sku_id,
                CostSettlement.mall_id.in_(scope.allowed_mall_ids),
            )
        )
        if not cost_row:
            cost_row = CostSettlement(
                mall_id=item.mall_id,
                mall_name=item.mall_name,
                sku_id=item.sku_id,
                sku_code=item.sku_code,
                sku_property=item.sku_property,
                goods_name=item.goods_name,
                created_time=now,
                updated_time=now,
            )
            db.add(cost_row)
            db.flush()
        cost_price = cost_row.cost_price

        declared_price = to_cny(item.declared_price, item.currency)
        promotion_amount = to_cny(item.today_promotion_sales_amount, item.currency)
        metrics = today_sales_metrics(
            item.today_sales_volume,
            item.today_promotion_sales_volume,
            declared_price,
            promotion_amount,
            cost_price,
        )

        sales_row = db.scalar(
            select(PromotionSalesDetail).where(
                PromotionSalesDetail.sku_id == item.sku_id,
                PromotionSalesDetail.mall_id.in_(scope.allowed_mall_ids),
            )
        )
        if not sales_row:
            sales_row = PromotionSalesDetail(sku_id=item.sku_id, created_time=now)
            db.add(sales_row)
        sales_row.mall_id = item.mall_id
        sales_row.mall_name = item.mall_name
        sales_row.spu_id = item.spu_id
        sales_row.skc_id = item.skc_id
        sales_row.declared_price = quantize_storage(declared_price)
        sales_row.cost_price = cost_price
        sales_row.today_sales_volume = item.today_sales_volume
        sales_row.today_promotion_sales_volume = item.today_promotion_sales_volume
        sales_row.today_promotion_sales_amount = quantize_storage(promotion_amount)
        sales_row.today_sales_amount = quantize_storage(metrics.sales_amount)
        sales_row.today_average_price = quantize_storage(metrics.average_price)
        sales_row.today_gross_profit = quantize_storage(metrics.gross_profit)
        sales_row.today_sales_cost = quantize_storage(metrics.sales_cost)
        sales_row.today_profit_rate = quantize_storage(metrics.profit_rate)
        sales_row.currency = "CNY"
        sales_row.updated_time = now
        db.flush()

    _commit(db, "Sales details could not be saved")
    query_optimizer.clear_cache(PromotionSalesDetail.__tablename__)
    query_optimizer.clear_cache(CostSettlement.__tablename__)
    return ok(len(payload.data), "Sales details saved")


@router.get("/sales-details/query_mall", response_model=ApiResponse[MallSalesSummaryOut])
def summarize_sales_details(
    mall_id: str | None = None,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    if not mall_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="mall_id is required")
    validate_mall_access(db, scope, mall_id)

    rows = db.scalars(
        select(PromotionSalesDetail)
        .where(PromotionSalesDetail.mall_id == mall_id)
        .order_by(PromotionSalesDetail.updated_time.desc())
    ).all()
    summary = summarize_mall_sales(rows)
    updated_time = rows[0].updated_time if rows else datetime.now()
    return ok(
        MallSalesSummaryOut(
            mall_today_promotion_sales_volume=format_volume(summary["promotion_sales_volume"]),
            mall_today_sales_amount=format_amount(summary["sales_amount"]),
            mall_today_gross_profit=format_amount(summary["gross_profit"]),
            mall_today_gross_loss_profit=format_amount(summary["gross_loss_profit"]),
            mall_today_sales_cost=format_amount(summary["sales_cost"]),
            mall_today_profit_rate=format_rate(summary["profit_rate"]),
            mall_today_average_profit=format_amount(summary["average_profit"]),
            mall_today_sales_volume=format_volume(summary["sales_volume"]),
            updated_time=format_datetime(updated_time),
        )
    )


# ---------------------------------------------------------------------------
# Cost settlement
# ---------------------------------------------------------------------------


@router.get("/cost-settlement/query", response_model=ApiResponse[Page[CostSettlementOut]])
def query_cost_settlement(
    mall_id: str | None = Query(default=None, alias="mallId"),
    mall_name: str | None = Query(default=None, alias="mallName"),
    sku_id: str | None = Query(default=None, alias="skuId"),
    cost_status: str | None = Query(default=None, alias="costStatus"),
    pagination: Pagination = Depends(pagination_params),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    conditions, signature = build_mall_filters(
        scope,
        CostSettlement.mall_id,
        CostSettlement.mall_name,
        mall_id,
        mall_name,
    )
    sku_ids = _split_ids(sku_id)
    if sku_ids:
        conditions.append(CostSettlement.sku_id.in_(sku_ids))
        signature["sku_ids"] = sorted(sku_ids)
    if cost_status == "completed":
        conditions.append(CostSettlement.cost_price.is_not(None))
        signature["cost_status"] = cost_status
    elif cost_status == "incomplete":
        conditions.append(CostSettlement.cost_price.is_(None))
        signature["cost_status"] = cost_status

    result = query_optimizer.optimized_query(
        db,
        CostSettlement,
        conditions,
        signature,
        _with_default_sort(pagination, "updated_time"),
    )
    return ok(_page_payload(result, result.data), "Query succeeded")


@router.get("/cost-settlement/query_mall", response_model=ApiResponse[MallSettlementSummaryOut])
def summarize_cost_settlement(
    mall_id: str | None = Query(default=None, alias="mallId"),
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    if not mall_id:
        return ok(None)
    validate_mall_access(db, scope, mall_id)

    rows = db.scalars(
        select(CostSettlement).where(CostSettlement.mall_id == mall_id).order_by(CostSettlement.id.asc())
    ).all()
    summary = summarize_mall_settlement(rows)
    pending = summary["pending"]
    arrival = summary["d30_arrival"]
    now = datetime.now()
    first = rows[0] if rows else None
    return ok(
        MallSettlementSummaryOut(
            pending_sales_volume=format_volume(pending["sales_volume"]),
            pending_sales_amount=format_amount(pending["sales_amount"]),
            pending_cost_price=format_amount(pending["cost_price"]),
            pending_gross_profit=format_amount(pending["gross_profit"]),
            pending_gross_loss_profit=format_amount(pending["gross_loss_profit"]),
            pending_average_profit=format_amount(pending["average_profit"]),
            pending_profit_rate=format_rate(pending["profit_rate"]),
            d30_arrival_sales_volume=format_volume(arrival["sales_volume"]),
            d30_arrival_sales_amount=format_amount(arrival["sales_amount"]),
            d30_arrival_cost_price=format_amount(arrival["cost_price"]),
            d30_arrival_gross_profit=format_amount(arrival["gross_profit"]),
            d30_arrival_gross_loss_profit=format_amount(arrival["gross_loss_profit"]),
            d30_arrival_average_profit=format_amount(arrival["average_profit"]),
            d30_arrival_profit_rate=format_rate(arrival["profit_rate"]),
            pending_updated_time=format_datetime((first and first.pending_updated_time) or now),
            arrival_updated_time=format_datetime((first and first.arrival_updated_time) or now),
        )
    )


def _refresh_pending_profit(row: CostSettlement) -> None:
    if not row.cost_price:
        return
    gross = pending_gross_profit(row.pending_average_price, row.cost_price, row.pending_sales_volume)
    row.pending_gross_profit = quantize_storage(gross)
    row.pending_profit_rate = quantize_storage(profit_rate(gross, row.cost_price, row.pending_sales_volume))


def _refresh_arrival_profit(row: CostSettlement) -> None:
    if not row.cost_price:
        return
    gross = arrival_gross_profit(row.d30_arrival_average_price, row.cost_price, row.d30_arrival_sales_volume)
    row.d30_arrival_gross_profit = quantize_storage(gross)
    row.d30_arrival_profit_rate = quantize_storage(
        profit_rate(gross, row.cost_price, row.d30_arrival_sales_volume)
    )


@router.post("/cost-settlement/update_cost_price", response_model=ApiResponse[CostSettlementOut])
def update_cost_price(
    payload: CostPriceUpdateRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    row = db.scalar(
        select(CostSettlement)
        .where(
            CostSettlement.sku_id == payload.sku_id,
            CostSettlement.mall_id.in_(scope.allowed_mall_ids),
        )
        .with_for_update()
    )
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="SKU settlement record not found")

    row.cost_price = payload.cost_price
    if payload.product_name is not None:
        row.product_name = payload.product_name
    _refresh_pending_profit(row)
    _refresh_arrival_profit(row)
    row.updated_time = datetime.now()
    _commit(db, "Cost price could not be updated")
    db.refresh(row)
    query_optimizer.clear_cache(CostSettlement.__tablename__)
    logger.info("Cost price updated for SKU %s", row.sku_id)
    return ok(CostSettlementOut.model_validate(row), "Cost price and profit figures updated")


def _latest(rows: list):
    return max(rows, key=lambda row: (row.updated_time, row.id))


def _apply_sku_metadata(row: CostSettlement, source) -> None:
    row.mall_name = source.mall_name or row.mall_name or ""
    if source.sku_code is not None:
        row.sku_code = source.sku_code
    if source.sku_property is not None:
        row.sku_property = source.sku_property
    if source.goods_name is not None:
        row.goods_name = source.goods_name


def _new_settlement_row(db: Session, mall_id: str, sku_id: str, now: datetime) -> CostSettlement:
    row = CostSettlement(mall_id=mall_id, mall_name="", sku_id=sku_id, created_time=now)
    db.add(row)
    return row


@router.post("/cost-settlement/update_pending", response_model=ApiResponse[SyncResultOut])
def sync_pending_settlement(
    payload: PendingSyncRequest,
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    validate_mall_access(db, scope, payload.mall_id)
    details = db.scalars(
        select(PendingSettlementDetail).where(
            PendingSettlementDetail.mall_id == payload.mall_id,
            PendingSettlementDetail.sku_id == payload.sku_id,
        )
    ).all()
    if not details:
        return ok(SyncResultOut(), "No pending settlement rows to sync")
    if _foreign_skus(db, CostSettlement, scope, [payload.sku_id]):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="SKU registered to another mall")

    volume = sum(int(detail.sales_volume or 0) for detail in details)
    amount = sum((to_cny(detail.sales_amount, detail.currency) for detail in details), Decimal("0"))
    source = _latest(details)

    now = datetime.now()
    row = db.scalar(
        select(CostSettlement)
        .where(
            CostSettlement.sku_id == payload.sku_id,
            CostSettlement.mall_id.in_(scope.allowed_mall_ids),
        )
        .with_for_update()
    )
    created = row is None
    if created:
        row = _new_settlement_row(db, payload.mall_id, payload.sku_id, now)
    _apply_sku_metadata(row, source)
    row.pending_sales_volume = volume
    row.pending_sales_amount = quantize_storage(amount)
    row.pending_average_price = average_price(amount, volume)
    _refresh_pending_profit(row)
    row.pending_updated_time = source.updated_time
    row.updated_time = now
    _commit(db, "Pending settlement could not be synced")
    query_optimizer.clear_cache(CostSettlement.__tablename__)
    return ok(
        SyncResultOut(updated=0 if created else 1, created=1 if created else 0),
        "Pending settlement synced to cost settlement",
    )


def _arrival_details_for_row(row: CostSettlement | None, details: list[ArrivalDataDetail]):
    """Pick the mall whose arrival rows feed the SKU's settlement row.

    An existing row keeps its mall. A new row needs the SKU to come from a
    single mall; otherwise the figures cannot be attributed and ``None`` is
    returned.
    """
    if row is not None:
        return [detail for detail in details if detail.mall_id == row.mall_id] or None
    if len({detail.mall_id for detail in details}) > 1:
        return None
    return details


@router.post("/cost-settlement/update_arrival", response_model=ApiResponse[SyncResultOut])
def sync_arrival_data(
    scope: MallScope = Depends(get_mall_scope),
    db: Session = Depends(get_db),
):
    today = date.today()
    window_start = _start_of_day(today - timedelta(days=settings.arrival_window_days))
    window_end = _end_of_day(today - timedelta(days=1))
    details = db.scalars(
        select(ArrivalDataDetail).where(
            ArrivalDataDetail.mall_id.in_(scope.allowed_mall_ids),
            ArrivalDataDetail.accounting_time >= window_start,
            ArrivalDataDetail.accounting_time <= window_end,
        )
    ).all()

    grouped: dict[str, list[ArrivalDataDetail]] = defaultdict(list)
    for detail in details:
        grouped[detail.sku_id].append(detail)
    claimed = _foreign_skus(db, CostSettlement, scope, grouped)
    existing: dict[str, CostSettlement] = {}
    if grouped:
        rows = db.scalars(
            select(CostSettlement)
            .where(
                CostSettlement.sku_id.in_(sorted(grouped)),
                CostSettlement.mall_id.in_(scope.allowed_mall_ids),
            )
            .with_for_update()
        ).all()
        existing = {row.sku_id: row for row in rows}

    now = datetime.now()
    result = SyncResultOut()
    skipped: list[str] = []
    for sku_id, sku_details in grouped.items():
        row = existing.get(sku_id)
        sku_details = None if sku_id in claimed else _arrival_details_for_row(row, sku_details)
        if not sku_details:
            skipped.append(sku_id)
            continue

        volume = sum(int(detail.sales_volume or 0) for detail in sku_details)
        amount = sum((to_cny(detail.sales_amount, detail.currency) for detail in sku_details), Decimal("0"))
        source = _latest(sku_details)

        created = row is None
        if created:
            row = _new_settlement_row(db, source.mall_id, sku_id, now)
        _apply_sku_metadata(row, source)
        row.d30_arrival_sales_volume = volume
        row.d30_arrival_sales_amount = quantize_storage(amount)
        row.d30_arrival_average_price = average_price(amount, volume)
        _refresh_arrival_profit(row)
        row.arrival_updated_time = source.updated_time
        row.updated_time = now
        db.flush()
        if created:
            result.created += 1
        else:
            result.updated += 1

    if skipped:
        logger.warning("Arrival sync skipped SKUs without a single owning mall: %s", ", ".join(sorted(skipped)))
    result.skipped = len(skipped)
    _commit(db, "Arrival data could not be synced")
    query_optimizer.clear_cache(CostSettlement.__tablename__)
    logger.info("Arrival sync: %s updated, %s created, %s skipped", result.updated, result.created, result.skipped)
    return ok(result, "Arrival data synced to cost settlement")
