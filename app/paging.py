"""
Finder helpers shared by the list endpoints: page parameters, sort allow-lists,
status filters and date windows.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Generic, List, Optional, Type, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

from app.config import settings
from app.errors import InvalidFilterError

T = TypeVar("T")
E = TypeVar("E", bound=enum.Enum)


class PageParams(BaseModel):
    page: int = Field(default=0, ge=0)
    size: int = Field(default=20, ge=1)
    sort_by: Optional[str] = None
    sort_dir: str = Field(default="desc", pattern="^(asc|desc)$")


def page_params(
    page: int = Query(0, ge=0),
    size: Optional[int] = Query(None, ge=1),
    sort_by: Optional[str] = None,
    sort_dir: str = Query("desc", pattern="^(asc|desc|ASC|DESC)$"),
) -> PageParams:
    """Query-string dependency for list endpoints."""
    return PageParams(
        page=page,
        size=min(size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE),
        sort_by=sort_by,
        sort_dir=sort_dir.lower(),
    )


@dataclass
class Page(Generic[T]):
    content: list
    total_elements: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages - 1

    @property
    def has_previous(self) -> bool:
        return self.page > 0


class PageResponse(BaseModel, Generic[T]):
    """Page envelope returned by every list endpoint"""
    content: List[T]
    total_elements: int
    total_pages: int
    page: int
    size: int
    has_next: bool
    has_previous: bool


def paginate(query, params: PageParams, sort_columns: dict, default_sort: str) -> Page:
    """Apply the allow-listed sort and the page window to ``query``."""
    sort_by = params.sort_by or default_sort
    if sort_by not in sort_columns:
        raise InvalidFilterError("sort_by", sort_by, sort_columns.keys())
    column = sort_columns[sort_by]
    order = column.asc() if params.sort_dir == "asc" else column.desc()

    size = min(params.size, settings.MAX_PAGE_SIZE)
    total = query.order_by(None).count()
    items = query.order_by(order).offset(params.page * size).limit(size).all()
    return Page(content=items, total_elements=total, page=params.page, size=size)


def to_response(page: Page, transform) -> dict:
    return {
        "content": [transform(item) for item in page.content],
        "total_elements": page.total_elements,
        "total_pages": page.total_pages,
        "page": page.page,
        "size": page.size,
        "has_next": page.has_next,
        "has_previous": page.has_previous,
    }


def parse_status(value: Optional[str], enum_cls: Type[E], field: str = "status") -> Optional[E]:
    """Map a free-text status filter onto ``enum_cls``; blank means no filter."""
    if value is None or not value.strip():
        return None
    wanted = value.strip().upper()
    for member in enum_cls:
        if wanted in (member.value.upper(), member.name):
            return member
    raise InvalidFilterError(field, value, [m.value for m in enum_cls])


def date_window(
    start: Optional[date], end: Optional[date]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Whole-day bounds: start of ``start`` through 23:59:59 of ``end``."""
    if start and end and start > end:
        raise InvalidFilterError("start_date", start.isoformat(), [f"<= {end.isoformat()}"])
    lower = datetime.combine(start, time.min) if start else None
    upper = datetime.combine(end, time(23, 59, 59)) if end else None
    return lower, upper
