"""Reconciliation engine: one fetch -> filter -> transform -> enrich -> apply cycle.

A provider manages one or more collections (RDS instances; directory users
and groups). Each collection pairs a ``Source`` with its own filter and
transformer. The engine composes them into full-snapshot mutations and hands
those to the catalog sink.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence, Union

from catalog_ingestion.annotations import enrich, provenance_annotations
from catalog_ingestion.errors import (
    HookError,
    IngestionError,
    SinkError,
    TransformError,
    UseBeforeConnectError,
)
from catalog_ingestion.model import Entity, MutationBatch, ProviderIdentity, RefreshContext
from catalog_ingestion.pagination import Deadline

logger = logging.getLogger("ingestion.engine")

InstanceFilter = Callable[[Any], bool]
# Plain functions and coroutine functions are both accepted.
Transformer = Callable[[Any], Union[Entity, Awaitable[Entity]]]
# Receives every collection's entities at once and returns the (possibly
# rewritten) lists to commit, keyed by collection name.
MutationHook = Callable[[dict[str, list[Entity]]], Mapping[str, list[Entity]]]


class Source(Protocol):
    """Vendor-specific fetch and identity for one collection."""

    vendor_annotation: Optional[str]

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[Any]:
        ...

    def identify(self, instance: Any) -> str:
        ...

    def extra_annotations(self, instance: Any) -> dict[str, str]:
        ...


class CatalogSink(Protocol):
    def apply_mutation(self, batch: MutationBatch) -> None:
        ...


def accept_all(_instance: Any) -> bool:
    return True


async def _resolve(awaitable: Awaitable[Entity]) -> Entity:
    return await awaitable


@dataclass(frozen=True)
class Collection:
    name: str
    source: Source
    transform: Transformer
    filter: InstanceFilter = accept_all


@dataclass(frozen=True)
class CycleResult:
    instances: int
    entities: int
    batches: tuple[MutationBatch, ...]


class ReconciliationEngine:
    """Runs cycles for one provider; holds no state between cycles."""

    def __init__(
        self,
        identity: ProviderIdentity,
        collections: Sequence[Collection],
        hook: Optional[MutationHook] = None,
        transform_workers: int = 8,
        fetch_timeout_seconds: Optional[float] = None,
        split_collections: bool = False,
    ) -> None:
        if not collections:
            raise ValueError(f"{identity.name} needs at least one collection")
        names = [c.name for c in collections]
        if len(set(names)) != len(names):
            raise ValueError(f"{identity.name} has duplicate collection names: {names}")
        self.identity = identity
        self.collections = tuple(collections)
        self.hook = hook
        self.transform_workers = max(1, transform_workers)
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.split_collections = split_collections

    @property
    def name(self) -> str:
        return self.identity.name

    def run_cycle(
        self,
        sink: Optional[CatalogSink],
        context: Optional[RefreshContext] = None,
    ) -> CycleResult:
        """Build this cycle's mutations and apply them.

        Nothing reaches the sink unless every collection fetched, transformed
        and passed the hook.
        """
        if sink is None:
            raise UseBeforeConnectError(f"Connection not initialized for {self.name}")
        context = context or RefreshContext.for_provider(self.identity)
        started = time.monotonic()
        logger.debug("Refreshing %s", self.name, extra=context.log_extra())

        instance_count, entities = self._build_all(context)
        batches = self.build_mutations(entities)

        for batch in batches:
            logger.info(
                "Will apply %d entities to the catalog under %s",
                len(batch),
                batch.provider,
                extra=context.log_extra(entities=len(batch)),
            )
            try:
                sink.apply_mutation(batch)
            except Exception as exc:
                raise SinkError(f"Applying mutation for {batch.provider} failed: {exc}") from exc

        entity_count = sum(len(b) for b in batches)
        logger.info(
            "Refresh of %s complete",
            self.name,
            extra=context.log_extra(
                instances=instance_count,
                entities=entity_count,
                duration_s=round(time.monotonic() - started, 3),
            ),
        )
        return CycleResult(instances=instance_count, entities=entity_count, batches=tuple(batches))

    def build_entities(self, context: Optional[RefreshContext] = None) -> dict[str, list[Entity]]:
        """Fetch, filter, transform and enrich every collection, then run the hook."""
        return self._build_all(context or RefreshContext.for_provider(self.identity))[1]

    def build_mutations(self, entities: Mapping[str, list[Entity]]) -> list[MutationBatch]:
        if self.split_collections:
            return [
                MutationBatch.full(f"{self.name}/{c.name}", entities.get(c.name, []))
                for c in self.collections
            ]
        combined: list[Entity] = []
        for c in self.collections:
            combined.extend(entities.get(c.name, []))
        return [MutationBatch.full(self.name, combined)]

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _build_all(self, context: RefreshContext) -> tuple[int, dict[str, list[Entity]]]:
        deadline = Deadline(self.fetch_timeout_seconds) if self.fetch_timeout_seconds else None
        instance_count = 0
        entities: dict[str, list[Entity]] = {}
        for collection in self.collections:
            instances = collection.source.fetch_instances(deadline)
            instance_count += len(instances)
            logger.info(
                "Retrieved %d %s",
                len(instances),
                collection.name,
                extra=context.log_extra(collection=collection.name, instances=len(instances)),
            )
            selected = self._filter(collection, instances)
            entities[collection.name] = self._transform_all(collection, selected)
        return instance_count, self._apply_hook(entities)

    @staticmethod
    def _filter(collection: Collection, instances: list[Any]) -> list[Any]:
        try:
            return [i for i in instances if collection.filter(i)]
        except Exception as exc:
            raise TransformError(f"Filter for {collection.name} failed: {exc}") from exc

    def _transform_all(self, collection: Collection, instances: list[Any]) -> list[Entity]:
        if not instances:
            return []
        if self.transform_workers == 1 or len(instances) == 1:
            return [self._transform_one(collection, i) for i in instances]

        with ThreadPoolExecutor(
            max_workers=min(self.transform_workers, len(instances)),
            thread_name_prefix=f"transform-{collection.name}",
        ) as pool:
            futures = [pool.submit(self._transform_one, collection, i) for i in instances]
            try:
                return [f.result() for f in futures]
            except Exception:
                for f in futures:
                    f.cancel()
                raise

    @staticmethod
    def _transform_one(collection: Collection, instance: Any) -> Entity:
        source = collection.source
        try:
            provenance = provenance_annotations(
                source.identify(instance),
                vendor_annotation=source.vendor_annotation,
                extra=source.extra_annotations(instance),
            )
            entity = collection.transform(instance)
            if inspect.isawaitable(entity):
                # scheduler and pool threads have no running event loop
                entity = asyncio.run(_resolve(entity))
        except IngestionError:
            raise
        except Exception as exc:
            raise TransformError(f"Transforming {collection.name} instance failed: {exc}") from exc
        if not isinstance(entity, Mapping):
            raise TransformError(
                f"Transformer for {collection.name} returned {type(entity).__name__}, expected a dict"
            )
        return enrich(entity, provenance)

    def _apply_hook(self, entities: dict[str, list[Entity]]) -> dict[str, list[Entity]]:
        if self.hook is None:
            return entities
        try:
            result = self.hook(entities)
        except Exception as exc:
            raise HookError(f"Mutation hook for {self.name} failed: {exc}") from exc
        if not isinstance(result, Mapping):
            raise HookError(
                f"Mutation hook for {self.name} returned {type(result).__name__}, expected a mapping"
            )
        unknown = set(result) - set(entities)
        if unknown:
            raise HookError(f"Mutation hook for {self.name} returned unknown collections {sorted(unknown)}")
        # collections the hook left out keep their entities
        return {name: list(result.get(name, entities[name])) for name in entities}
