"""Formatting and pagination helpers shared by the data layer and the views."""

from __future__ import annotations

from typing import List, Union

PageToken = Union[int, str]

ELLIPSIS = "..."


def format_currency(amount: int) -> str:
    """Render an amount held in cents as US dollars, e.g. ``$1,234.56``."""

    cents = int(amount)
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{remainder:02d}"


def total_pages(count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError("page_size must be a positive integer")
    if count <= 0:
        return 0
    return -(-count // page_size)


def page_offset(page: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError("page_size must be a positive integer")
    return (max(page, 1) - 1) * page_size


def generate_pagination(current_page: int, pages: int) -> List[PageToken]:
    """Return the page links to show, collapsing long runs into ``"..."``."""

    if pages <= 7:
        return list(range(1, pages + 1))

    if current_page <= 3:
        return [1, 2, 3, ELLIPSIS, pages - 1, pages]

    if current_page >= pages - 2:
        return [1, 2, ELLIPSIS, pages - 2, pages - 1, pages]

    return [
        1,
        ELLIPSIS,
        current_page - 1,
        current_page,
        current_page + 1,
        ELLIPSIS,
        pages,
    ]


__all__ = [
    "ELLIPSIS",
    "format_currency",
    "generate_pagination",
    "page_offset",
    "total_pages",
]
