from datetime import datetime
from decimal import Decimal
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from shop_assistant.services.settlement import format_amount

T = TypeVar("T")

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_datetime(value: datetime | None) -> str | None:
    return value.strftime(DATETIME_FORMAT) if value else None


DisplayDateTime = Annotated[datetime, PlainSerializer(format_datetime, return_type=str | None)]
Amount = Annotated[Decimal, PlainSerializer(format_amount, return_type=float)]
RawDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str = "OK"


class Page(CamelModel, Generic[T]):
    data: list[T] = Field(default_factory=list)
    total: int | None = None
    page_index: int | None = None
    page_size: int | None = None
    total_pages: int | None = None
    has_more: bool | None = None
    next_cursor: str | None = None


def ok(data=None, message: str = "OK") -> dict:
    return {"success": True, "data": data, "message": message}
