"""Sequential, cursor-driven pagination shared by every source.

Each page request depends on the cursor returned by the previous page, so
pages are always fetched one after another. All pages are accumulated in
memory before returning; any failure discards what was collected so far.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from catalog_ingestion.errors import FetchError

logger = logging.getLogger("ingestion.pagination")

# fetch_page(cursor) -> (items, next_cursor); a falsy next_cursor ends the walk
PageFetcher = Callable[[Optional[Any]], tuple[list[Any], Optional[Any]]]


class Deadline:
    """Wall-clock budget for one complete fetch."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.seconds = seconds
        self._expires_at = clock() + seconds if seconds is not None else None

    @property
    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)

    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def check(self, what: str) -> None:
        if self.expired():
            raise FetchError(f"{what} exceeded its {self.seconds}s deadline")


def rate_limit_sleep(
    attempt: int,
    base_seconds: float = 1.0,
    deadline: Optional[Deadline] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> None:
    """Exponential backoff sleep for rate limiting, never past the deadline."""
    delay = min(base_seconds * (2 ** attempt), 60.0)  # cap at 60s
    if deadline is not None and deadline.remaining is not None:
        delay = min(delay, deadline.remaining)
    logger.warning("Rate limited, sleeping %.1fs (attempt %d)", delay, attempt)
    (sleep or time.sleep)(delay)


def collect_pages(
    fetch_page: PageFetcher,
    what: str = "fetch",
    deadline: Optional[Deadline] = None,
) -> list[Any]:
    """Walk every page starting from an empty cursor and return all items."""
    items: list[Any] = []
    cursor: Optional[Any] = None
    pages = 0
    while True:
        if deadline is not None:
            deadline.check(what)
        try:
            page_items, cursor = fetch_page(cursor)
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(f"{what} failed on page {pages + 1}: {exc}") from exc
        pages += 1
        items.extend(page_items or [])
        if not cursor:
            break
    logger.debug("Fetched %d items in %d pages for %s", len(items), pages, what)
    return items


def collect_boto3_pages(
    client: Any,
    operation: str,
    result_key: str,
    deadline: Optional[Deadline] = None,
    **kwargs: Any,
) -> list[dict]:
    """Generic paginator for boto3 APIs with the same all-or-nothing contract."""
    what = f"{client.meta.service_model.service_name}.{operation}"
    items: list[dict] = []
    try:
        paginator = client.get_paginator(operation)
        for page in paginator.paginate(**kwargs):
            items.extend(page.get(result_key, []))
            if deadline is not None:
                deadline.check(what)
    except FetchError:
        raise
    except Exception as exc:
        raise FetchError(f"{what} failed: {exc}") from exc
    return items
