from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from lms.core.errors import ValidationError

T = TypeVar("T")


def check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be a positive number")
    if limit < 1:
        raise ValidationError("limit must be a positive number")


def page_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": (total + limit - 1) // limit,
    }


def paginate_rows(rows: Sequence[T], page: int, limit: int) -> tuple[list[T], dict[str, int]]:
    """Slice an already ordered list to one 1-based page.

    A page past the end is empty; ``total_pages`` is 0 for an empty list.
    """
    check_page(page, limit)
    start = (page - 1) * limit
    return list(rows[start : start + limit]), page_meta(page, limit, len(rows))
