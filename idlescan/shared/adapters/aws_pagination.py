from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from idlescan.shared.core.exceptions import PaginationError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a marker-based AWS listing."""

    items: list[T] = field(default_factory=list)
    next_cursor: str | None = None


async def walk_pages(
    fetch_page: Callable[[str | None], Awaitable[Page[T]]],
    *,
    operation_name: str,
    max_pages: int | None = None,
    log: Any = None,
) -> list[T]:
    """
    Drain a marker-based listing API into one ordered list.

    `fetch_page` is awaited with `None` for the first page and then with each
    returned `next_cursor` until the API stops returning one. Items keep API
    order across pages.

    Any error raised by `fetch_page` propagates as-is and nothing accumulated
    so far is returned. A cursor that was already requested, or running past
    `max_pages`, raises `PaginationError`: a truncated inventory is never
    handed back as if it were complete.

    `log` is the caller's bound logger; it defaults to the module logger.
    """
    if max_pages is not None and max_pages <= 0:
        raise ValueError("max_pages must be > 0 when provided")

    log = log or logger
    items: list[T] = []
    seen_cursors: set[str] = set()
    cursor: str | None = None
    pages_seen = 0

    while True:
        page = await fetch_page(cursor)
        pages_seen += 1
        items.extend(page.items)

        next_cursor = page.next_cursor
        if not next_cursor:
            break
        if next_cursor in seen_cursors:
            log.error(
                "aws_pagination_cursor_repeated",
                operation=operation_name,
                pages_seen=pages_seen,
            )
            raise PaginationError(
                f"{operation_name} returned an already visited cursor",
                details={"operation": operation_name, "pages_seen": pages_seen},
            )
        if max_pages is not None and pages_seen >= max_pages:
            log.warning(
                "aws_pagination_page_cap_reached",
                operation=operation_name,
                max_pages=max_pages,
            )
            raise PaginationError(
                f"{operation_name} exceeded {max_pages} pages",
                details={"operation": operation_name, "max_pages": max_pages},
            )
        seen_cursors.add(next_cursor)
        cursor = next_cursor

    log.debug(
        "aws_pagination_complete",
        operation=operation_name,
        pages=pages_seen,
        items=len(items),
    )
    return items


def marker_page(
    response: dict[str, Any], items_key: str, marker_key: str = "NextMarker"
) -> Page[Any]:
    """Build a `Page` from a raw AWS listing response."""
    return Page(items=list(response.get(items_key, [])), next_cursor=response.get(marker_key))
