"""
Page-based pagination helpers.

Out-of-range input is corrected, never rejected: pages start at 1, a
missing or non-positive page size falls back to the default and sizes above
the maximum are clamped.
"""
from __future__ import annotations

from typing import Optional

from sqld.domain.requests import PaginationRequest, PaginationResponse

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def normalize_pagination(
    request: Optional[PaginationRequest],
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> PaginationRequest:
    """Return a corrected copy of ``request``; ``None`` yields the first page."""
    if request is None:
        return PaginationRequest(page=1, page_size=default_page_size)

    page = request.page if request.page is not None and request.page >= 1 else 1
    size = request.page_size
    if size is None or size < 1:
        size = default_page_size
    if size > max_page_size:
        size = max_page_size
    return PaginationRequest(page=page, page_size=size)


def calculate_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def total_pages(total_items: int, page_size: int) -> int:
    # Integer ceiling division.
    return -(-total_items // page_size)


def build_response_meta(total_items: int, page_size: int, page: int) -> PaginationResponse:
    return PaginationResponse(
        page=page,
        page_size=page_size,
        total_items=total_items,
        total_pages=total_pages(total_items, page_size),
    )


def has_next_page(total_items: int, page_size: int, page: int) -> bool:
    return total_pages(total_items, page_size) > page


def has_previous_page(page: int) -> bool:
    return page > 1


def next_page(page: int) -> int:
    return page + 1


def previous_page(page: int) -> int:
    return page - 1


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "build_response_meta",
    "calculate_offset",
    "has_next_page",
    "has_previous_page",
    "next_page",
    "normalize_pagination",
    "previous_page",
    "total_pages",
]
