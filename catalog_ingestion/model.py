"""Core value types: provider identity, catalog entities and mutations."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

Entity = dict[str, Any]

API_VERSION = "backstage.io/v1alpha1"
FULL_MUTATION = "full"


@dataclass(frozen=True)
class ProviderIdentity:
    """Names one configured provider instance.

    The name doubles as the scheduler task prefix and the sink location key,
    so it must stay stable across restarts for the same configured instance.
    """

    kind: str
    instance_id: Optional[str] = None

    @property
    def name(self) -> str:
        if self.instance_id:
            return f"{self.kind}:{self.instance_id}"
        return self.kind

    @property
    def task_id(self) -> str:
        return f"{self.name}:refresh"

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class RefreshContext:
    """Per-invocation context threaded through one reconciliation cycle.

    The correlation id only ties log lines together; it has no effect on
    what gets reconciled.
    """

    provider: str
    task_id: str
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def for_provider(cls, identity: ProviderIdentity) -> "RefreshContext":
        return cls(provider=identity.name, task_id=identity.task_id)

    def log_extra(self, **fields: Any) -> dict[str, Any]:
        extra: dict[str, Any] = {
            "provider": self.provider,
            "task_id": self.task_id,
            "correlation_id": self.correlation_id,
        }
        extra.update(fields)
        return extra


def make_entity(
    kind: str,
    name: str,
    spec: Optional[dict[str, Any]] = None,
    annotations: Optional[dict[str, str]] = None,
    labels: Optional[dict[str, str]] = None,
) -> Entity:
    """Build a catalog entity dict, leaving out empty metadata maps."""
    metadata: dict[str, Any] = {"name": name}
    if annotations:
        metadata["annotations"] = dict(annotations)
    if labels:
        metadata["labels"] = dict(labels)
    entity: Entity = {"apiVersion": API_VERSION, "kind": kind, "metadata": metadata}
    if spec is not None:
        entity["spec"] = spec
    return entity


def entity_ref(entity: Entity) -> str:
    """Return the ``kind:namespace/name`` reference used to key stored entities."""
    metadata = entity.get("metadata") or {}
    kind = str(entity.get("kind", "")).lower()
    namespace = str(metadata.get("namespace") or "default").lower()
    name = str(metadata.get("name", "")).lower()
    return f"{kind}:{namespace}/{name}"


def annotations_of(entity: Entity) -> dict[str, str]:
    return (entity.get("metadata") or {}).get("annotations") or {}


@dataclass(frozen=True)
class EntityMutation:
    entity: Entity
    location_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"entity": copy.deepcopy(self.entity), "locationKey": self.location_key}


@dataclass(frozen=True)
class MutationBatch:
    """One complete statement of truth for one provider for one cycle.

    The sink removes anything previously stored for ``provider`` that is
    absent from ``entities``.
    """

    provider: str
    entities: tuple[EntityMutation, ...] = field(default_factory=tuple)
    type: str = FULL_MUTATION

    def __post_init__(self) -> None:
        if self.type != FULL_MUTATION:
            raise ValueError(f"Unsupported mutation type {self.type!r}, only 'full' is allowed")

    @classmethod
    def full(cls, location_key: str, entities: Iterable[Entity]) -> "MutationBatch":
        return cls(
            provider=location_key,
            entities=tuple(EntityMutation(entity=e, location_key=location_key) for e in entities),
        )

    def __len__(self) -> int:
        return len(self.entities)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "entities": [m.to_dict() for m in self.entities]}
