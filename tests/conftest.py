"""Shared fakes mirroring the task runner and sink contracts."""

from __future__ import annotations

from typing import Any, Callable, Optional

import pytest

from catalog_ingestion.errors import FetchError
from catalog_ingestion.model import MutationBatch, make_entity
from catalog_ingestion.pagination import Deadline


class PersistingTaskRunner:
    """Keeps registered tasks so tests can invoke them by hand."""

    def __init__(self) -> None:
        self.tasks: list[tuple[str, Callable[[], None]]] = []

    def run(self, task_id: str, fn: Callable[[], None]) -> None:
        self.tasks.append((task_id, fn))

    @property
    def task_ids(self) -> list[str]:
        return [task_id for task_id, _ in self.tasks]


class RecordingSink:
    def __init__(self, fail_times: int = 0) -> None:
        self.batches: list[MutationBatch] = []
        self.fail_times = fail_times

    def apply_mutation(self, batch: MutationBatch) -> None:
        if self.fail_times:
            self.fail_times -= 1
            raise RuntimeError("catalog unavailable")
        self.batches.append(batch)


class FakeSource:
    """In-memory source; ``fail_times`` makes the next N fetches raise."""

    vendor_annotation: Optional[str] = "amazonaws.com/arn"

    def __init__(self, instances: list[dict], fail_times: int = 0) -> None:
        self.instances = instances
        self.fail_times = fail_times
        self.fetch_calls = 0

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        self.fetch_calls += 1
        if self.fail_times:
            self.fail_times -= 1
            raise FetchError("upstream unavailable")
        return list(self.instances)

    def identify(self, instance: dict) -> str:
        return f"arn:aws:whatever:us-east-1:0123456789:{instance['name']}"

    def extra_annotations(self, instance: dict) -> dict[str, str]:
        return {}


def simple_transformer(instance: dict) -> dict[str, Any]:
    return make_entity("Resource", instance["name"], spec={"type": "test", "owner": "somebody"})


@pytest.fixture
def task_runner() -> PersistingTaskRunner:
    return PersistingTaskRunner()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def instances() -> list[dict]:
    return [{"name": "foo"}, {"name": "bar"}, {"name": "baz"}]
