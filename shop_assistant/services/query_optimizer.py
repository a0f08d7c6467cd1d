"""Paginated reads with a TTL memo in front of them.

Results are cached as plain dictionaries keyed by table, effective filter
signature, pagination and selected columns, so a cached page never holds on
to a database session.
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from fastapi import HTTPException, status
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from shop_assistant.core.cache import CACHE_PREFIX, TTLCache, make_query_cache_key, query_cache
from shop_assistant.core.config import settings

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "optimized_query"
CURSOR_SEPARATOR = "|"
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class Pagination:
    page_index: int | None = None
    page_size: int | None = None
    cursor: str | None = None
    limit: int | None = None
    sort_field: str | None = None
    sort_order: str | None = None

    @property
    def is_cursor(self) -> bool:
        if self.cursor is not None:
            return True
        return self.limit is not None and self.page_index is None and self.page_size is None

    def signature(self) -> dict:
        return {
            "page_index": self.page_index,
            "page_size": self.page_size,
            "cursor": self.cursor,
            "limit": self.limit,
            "sort_field": self.sort_field,
            "sort_order": self.sort_order,
        }


@dataclass(frozen=True)
class QueryResult:
    data: list[dict] = field(default_factory=list)
    total: int | None = None
    page_index: int | None = None
    page_size: int | None = None
    total_pages: int | None = None
    has_more: bool | None = None
    next_cursor: str | None = None


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name.strip()).lower()


def _serialize_cursor(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _coerce_cursor(column, cursor: str):
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return cursor
    try:
        if python_type is int:
            return int(cursor)
        if python_type is Decimal:
            return Decimal(cursor)
        if python_type is datetime:
            return datetime.fromisoformat(cursor)
    except (ValueError, InvalidOperation) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination cursor") from exc
    return cursor


class QueryOptimizer:
    def __init__(
        self,
        cache: TTLCache | None = None,
        cache_enabled: bool | None = None,
        cache_ttl: int | None = None,
        default_page_size: int | None = None,
        max_page_size: int | None = None,
        select_fields: list[str] | None = None,
    ) -> None:
        self.cache = cache if cache is not None else query_cache
        self.cache_enabled = settings.query_cache_enabled if cache_enabled is None else cache_enabled
        self.cache_ttl = cache_ttl or settings.query_cache_ttl_seconds
        self.default_page_size = default_page_size or settings.default_page_size
        self.max_page_size = max_page_size or settings.max_page_size
        self.select_fields = list(select_fields) if select_fields else []

    def set_select_fields(self, fields: list[str]) -> None:
        self.select_fields = list(fields)

    def optimized_query(
        self,
        db: Session,
        model,
        conditions: list,
        signature: dict,
        pagination: Pagination,
        table_name: str | None = None,
    ) -> QueryResult:
        table_name = table_name or model.__tablename__
        cache_key = self.cache_key(table_name, signature, pagination)
        if self.cache_enabled:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Query cache hit for %s", table_name)
                return replace(cached, data=[dict(row) for row in cached.data])

        if pagination.is_cursor:
            result = self._cursor_query(db, model, conditions, pagination)
        else:
            result = self._offset_query(db, model, conditions, pagination)

        if self.cache_enabled:
            self.cache.set(cache_key, result, self.cache_ttl)
            result = replace(result, data=[dict(row) for row in result.data])
        return result

    def cache_key(self, table_name: str, signature: dict, pagination: Pagination) -> str:
        params = {
            "table": table_name,
            "where": signature,
            "pagination": pagination.signature(),
            "fields": self.select_fields,
        }
        return make_query_cache_key(f"{CACHE_NAMESPACE}:{table_name}", params)

    def clear_cache(self, table_name: str) -> int:
        removed = self.cache.invalidate(f"{CACHE_PREFIX}{CACHE_NAMESPACE}:{table_name}:*")
        if removed:
            logger.debug("Dropped %s cached pages for %s", removed, table_name)
        return removed

    def _columns(self, model) -> list:
        table_columns = model.__table__.c
        if not self.select_fields:
            return list(table_columns)
        return [table_columns[name] for name in self.select_fields if name in table_columns]

    def _sort_column(self, model, sort_field: str | None, default: str):
        table_columns = model.__table__.c
        if sort_field:
            name = to_snake_case(sort_field)
            if name in table_columns:
                return table_columns[name]
        return table_columns[default]

    @staticmethod
    def _is_ascending(sort_order: str | None) -> bool:
        return (sort_order or "").strip().upper() == "ASC"

    def _page_size(self, requested: int | None) -> int:
        if not requested or requested < 1:
            return self.default_page_size
        return min(requested, self.max_page_size)

    def _offset_query(self, db: Session, model, conditions: list, pagination: Pagination) -> QueryResult:
        page_index = max(1, pagination.page_index or 1)
        page_size = self._page_size(pagination.page_size)
        sort_column = self._sort_column(model, pagination.sort_field, "updated_time")
        ordering = sort_column.asc() if self._is_ascending(pagination.sort_order) else sort_column.desc()

        total = db.scalar(select(func.count()).select_from(model.__table__).where(*conditions)) or 0
        rows = db.execute(
            select(*self._columns(model))
            .where(*conditions)
            .order_by(ordering, model.__table__.c.id.desc())
            .offset((page_index - 1) * page_size)
            .limit(page_size)
        ).mappings().all()

        return QueryResult(
            data=[dict(row) for row in rows],
            total=total,
            page_index=page_index,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def _cursor_query(self, db: Session, model, conditions: list, pagination: Pagination) -> QueryResult:
        limit = self._page_size(pagination.limit)
        sort_column = self._sort_column(model, pagination.sort_field, "id")
        ascending = self._is_ascending(pagination.sort_order)

        id_column = model.__table__.c.id
        tiebreak = sort_column is not id_column

        query = select(
            *self._columns(model),
            sort_column.label("_cursor"),
            id_column.label("_cursor_id"),
        ).where(*conditions)
        if pagination.cursor is not None:
            query = query.where(self._after_cursor(sort_column, id_column, pagination.cursor, ascending, tiebreak))
        if ascending:
            query = query.order_by(sort_column.asc(), id_column.asc())
        else:
            query = query.order_by(sort_column.desc(), id_column.desc())
        rows = [dict(row) for row in db.execute(query.limit(limit + 1)).mappings().all()]

        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = None
        if has_more and rows:
            next_cursor = _serialize_cursor(rows[-1]["_cursor"])
            if tiebreak:
                next_cursor = f"{next_cursor}{CURSOR_SEPARATOR}{rows[-1]['_cursor_id']}"
        for row in rows:
            row.pop("_cursor", None)
            row.pop("_cursor_id", None)
        return QueryResult(data=rows, has_more=has_more, next_cursor=next_cursor)

    @staticmethod
    def _after_cursor(sort_column, id_column, cursor: str, ascending: bool, tiebreak: bool):
        """Keyset condition for rows after ``cursor``; ties on the sort column are ordered by id."""
        if not tiebreak:
            cursor_value = _coerce_cursor(sort_column, cursor)
            return sort_column > cursor_value if ascending else sort_column < cursor_value

        value, separator, last_id = cursor.rpartition(CURSOR_SEPARATOR)
        if not separator:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid pagination cursor")
        cursor_value = _coerce_cursor(sort_column, value)
        cursor_id = _coerce_cursor(id_column, last_id)
        if ascending:
            return or_(sort_column > cursor_value, and_(sort_column == cursor_value, id_column > cursor_id))
        return or_(sort_column < cursor_value, and_(sort_column == cursor_value, id_column < cursor_id))


query_optimizer = QueryOptimizer()


def paginate_statement(db: Session, statement, page_index: int | None, page_size: int | None) -> tuple[list, dict]:
    """Run an ORM ``select`` one page at a time, bypassing the cache."""
    page_index = max(1, page_index or 1)
    page_size = min(page_size or settings.default_page_size, settings.max_page_size)
    total = db.scalar(select(func.count()).select_from(statement.order_by(None).subquery())) or 0
    items = db.scalars(statement.offset((page_index - 1) * page_size).limit(page_size)).all()
    return list(items), {
        "total": total,
        "page_index": page_index,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size),
    }
