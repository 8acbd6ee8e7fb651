"""Binds a provider's reconciliation cycle to a recurring scheduled task."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional, Protocol

from catalog_ingestion.engine import CatalogSink, CycleResult, ReconciliationEngine
from catalog_ingestion.errors import ControllerStateError, UseBeforeConnectError
from catalog_ingestion.model import ProviderIdentity, RefreshContext

logger = logging.getLogger("ingestion.controller")


class TaskRunner(Protocol):
    """Runs ``fn`` periodically under ``task_id``; cadence is its own business."""

    def run(self, task_id: str, fn: Callable[[], None]) -> None:
        ...


class ControllerState(enum.Enum):
    UNCONNECTED = "unconnected"
    IDLE = "idle"
    REFRESHING = "refreshing"


class ScheduledRefreshController:
    """Unconnected -> Idle -> Refreshing -> Idle, for one provider.

    Failed cycles are logged and swallowed so the scheduler keeps invoking
    the task; the last successfully applied snapshot stays in the catalog.
    An invocation that arrives while a cycle is still running is skipped.
    """

    def __init__(self, engine: ReconciliationEngine, task_runner: TaskRunner) -> None:
        self.engine = engine
        self.task_runner = task_runner
        self._sink: Optional[CatalogSink] = None
        self._state = ControllerState.UNCONNECTED
        self._cycle_lock = threading.Lock()

    @property
    def identity(self) -> ProviderIdentity:
        return self.engine.identity

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def task_id(self) -> str:
        return self.identity.task_id

    @property
    def state(self) -> ControllerState:
        return self._state

    def connect(self, sink: CatalogSink) -> None:
        """Bind the sink and register the recurring refresh task."""
        if self._state is not ControllerState.UNCONNECTED:
            raise ControllerStateError(f"{self.name} is already connected")
        self._sink = sink
        self._state = ControllerState.IDLE
        logger.debug("Connected to the catalog", extra={"provider": self.name})
        self.task_runner.run(self.task_id, self.scheduled_refresh)

    def refresh(self, context: Optional[RefreshContext] = None) -> CycleResult:
        """Run one cycle now; errors propagate to the caller."""
        if self._sink is None:
            raise UseBeforeConnectError(f"Connection not initialized for {self.name}")
        context = context or RefreshContext.for_provider(self.identity)
        self._state = ControllerState.REFRESHING
        try:
            return self.engine.run_cycle(self._sink, context)
        finally:
            self._state = ControllerState.IDLE

    def scheduled_refresh(self) -> None:
        """Entry point handed to the task runner. Never raises for cycle failures."""
        context = RefreshContext.for_provider(self.identity)
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning(
                "%s refresh skipped, previous cycle still running",
                self.name,
                extra=context.log_extra(),
            )
            return
        try:
            self.refresh(context)
        except UseBeforeConnectError:
            raise
        except Exception as exc:
            logger.error(
                "%s refresh failed, %s",
                self.name,
                exc,
                exc_info=True,
                extra=context.log_extra(),
            )
        finally:
            self._cycle_lock.release()
