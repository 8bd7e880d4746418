"""Pagination helpers shared by the list endpoints."""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page request.

    Attributes:
        page: Page number, starting at 0.
        size: Items per page.
        sort: Sort field name, either snake_case or camelCase.
        direction: ``ASC`` or ``DESC`` (case-insensitive).
    """

    page: int = 0
    size: int = 10
    sort: str = "id"
    direction: str = "ASC"

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("Page index must not be negative")
        if self.size < 1:
            raise ValueError("Page size must be at least 1")
        if self.direction.upper() not in ("ASC", "DESC"):
            raise ValueError(f"Invalid sort direction: {self.direction}")

    @property
    def offset(self) -> int:
        return self.page * self.size

    @property
    def descending(self) -> bool:
        return self.direction.upper() == "DESC"


@dataclass
class Page(Generic[T]):
    """One page of results plus the totals needed to navigate."""

    content: list[T]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return (self.total_elements + self.size - 1) // self.size

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    def map(self, transform: Callable[[T], Any]) -> "Page[Any]":
        return Page(
            content=[transform(item) for item in self.content],
            page=self.page,
            size=self.size,
            total_elements=self.total_elements,
        )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


async def paginate(
    session: AsyncSession,
    stmt: Select,
    request: PageRequest,
    sort_columns: Mapping[str, Any],
) -> Page[Any]:
    """Run ``stmt`` for one page, ordered by a whitelisted column."""

    columns = dict(sort_columns)
    columns.update({_camel(name): column for name, column in sort_columns.items()})
    column = columns.get(request.sort)
    if column is None:
        raise ValueError(f"Invalid sort field: {request.sort}")

    total = await session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery()))
    ordered = stmt.order_by(column.desc() if request.descending else column.asc())
    result = await session.execute(ordered.offset(request.offset).limit(request.size))
    return Page(
        content=list(result.scalars().all()),
        page=request.page,
        size=request.size,
        total_elements=total or 0,
    )


__all__ = ["Page", "PageRequest", "paginate"]
