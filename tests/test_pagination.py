"""Cursor pagination, deadlines and backoff."""

from __future__ import annotations

import pytest

from catalog_ingestion.errors import FetchError
from catalog_ingestion.pagination import Deadline, collect_pages, rate_limit_sleep


def _pages(sizes: list[int]):
    """Pages linked by cursors 'p1'..'pN'; returns (fetch_page, requested cursors)."""
    pages = {}
    counter = 0
    for index, size in enumerate(sizes):
        cursor = None if index == 0 else f"p{index}"
        nxt = f"p{index + 1}" if index + 1 < len(sizes) else None
        items = list(range(counter, counter + size))
        counter += size
        pages[cursor] = (items, nxt)
    requested = []

    def fetch_page(cursor):
        requested.append(cursor)
        return pages[cursor]

    return fetch_page, requested


@pytest.mark.parametrize("sizes", [[3], [100, 100, 7], [0, 5, 0, 1], [1] * 12])
def test_collects_every_item_across_pages(sizes):
    fetch_page, requested = _pages(sizes)

    items = collect_pages(fetch_page)

    assert len(items) == sum(sizes)
    assert items == list(range(sum(sizes)))
    assert requested == [None] + [f"p{i}" for i in range(1, len(sizes))]


def test_failure_mid_sequence_aborts_without_partial_result():
    calls = []

    def fetch_page(cursor):
        calls.append(cursor)
        if cursor == "p1":
            raise ConnectionError("reset by peer")
        return [1, 2], "p1"

    with pytest.raises(FetchError, match="page 2") as excinfo:
        collect_pages(fetch_page, what="test")

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert calls == [None, "p1"]


def test_deadline_stops_pagination():
    now = [0.0]
    deadline = Deadline(10, clock=lambda: now[0])

    def fetch_page(cursor):
        now[0] += 6
        return [cursor], (cursor or 0) + 1

    with pytest.raises(FetchError, match="deadline"):
        collect_pages(fetch_page, what="slow", deadline=deadline)


def test_deadline_remaining():
    now = [100.0]
    deadline = Deadline(30, clock=lambda: now[0])
    now[0] = 120.0
    assert deadline.remaining == 10.0
    assert not deadline.expired()
    assert Deadline(None).remaining is None


def test_rate_limit_sleep_is_exponential_and_capped():
    slept = []
    rate_limit_sleep(0, 2.0, sleep=slept.append)
    rate_limit_sleep(3, 2.0, sleep=slept.append)
    rate_limit_sleep(10, 2.0, sleep=slept.append)
    assert slept == [2.0, 16.0, 60.0]


def test_rate_limit_sleep_never_outlives_the_deadline():
    slept = []
    deadline = Deadline(5, clock=lambda: 0.0)
    rate_limit_sleep(4, 1.0, deadline=deadline, sleep=slept.append)
    assert slept == [5.0]
