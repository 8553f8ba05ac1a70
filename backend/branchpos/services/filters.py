"""
Typed query filters and pagination.

Every list operation takes one of these dataclasses instead of passing
request arguments through to the query. Fields not listed here can not
reach the database.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from math import ceil
from typing import Any, Callable

from ..errors import ValidationError


INVENTORY_STATUSES = ("out", "low", "ok")


@dataclass
class InventoryFilter:
    branch_id: int | None = None
    product_id: int | None = None
    search: str | None = None
    status: str | None = None
    sort: str | None = None
    page: int = 1
    page_size: int = 10

    def __post_init__(self):
        if self.status is not None and self.status not in INVENTORY_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(INVENTORY_STATUSES)}")


@dataclass
class MovementFilter:
    product_id: int | None = None
    branch_id: int | None = None
    user_id: int | None = None
    movement_type: str | None = None
    document_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    page: int = 1
    page_size: int = 20


@dataclass
class SaleFilter:
    branch_id: int | None = None
    user_id: int | None = None
    date: str | None = None
    status: str | None = None


@dataclass
class ShiftFilter:
    branch_id: int | None = None
    user_id: int | None = None
    date: str | None = None
    status: str | None = None


@dataclass
class Page:
    items: list = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return ceil(self.total / self.page_size)

    def to_dict(self, serialize: Callable[[Any], dict]) -> dict:
        pagination = {}
        if self.page * self.page_size < self.total:
            pagination["next"] = {"page": self.page + 1, "limit": self.page_size}
        if self.page > 1:
            pagination["prev"] = {"page": self.page - 1, "limit": self.page_size}
        return {
            "success": True,
            "count": len(self.items),
            "total": self.total,
            "page": self.page,
            "total_pages": self.total_pages,
            "pagination": pagination,
            "data": [serialize(item) for item in self.items],
        }


def normalize_paging(page: int | None, page_size: int | None, *, default_size: int, max_size: int) -> tuple[int, int]:
    page = page if page and page > 0 else 1
    page_size = page_size if page_size and page_size > 0 else default_size
    return page, min(page_size, max_size)


def paginate(query, page: int, page_size: int) -> Page:
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return Page(items=items, total=total, page=page, page_size=page_size)
