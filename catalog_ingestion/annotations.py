"""Provenance annotations and the merge that applies them to entities."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from catalog_ingestion.model import Entity

ANNOTATION_LOCATION = "backstage.io/managed-by-location"
ANNOTATION_ORIGIN_LOCATION = "backstage.io/managed-by-origin-location"

AWS_ARN_ANNOTATION = "amazonaws.com/arn"
OKTA_ID_ANNOTATION = "okta.com/id"
OKTA_EMAIL_ANNOTATION = "okta.com/email"
GOOGLE_ID_ANNOTATION = "google.com/id"
GOOGLE_EMAIL_ANNOTATION = "google.com/email"


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``override`` merged over ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    replaces the one in ``base``, except None, which never erases a value.
    Neither input is modified and the result shares no mutable containers
    with them.
    """
    merged: dict[str, Any] = {key: _copy(value) for key, value in base.items()}
    for key, value in override.items():
        current = merged.get(key)
        if value is None and current is not None:
            continue
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = _copy(value)
    return merged


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_copy(v) for v in value]
    return value


def provenance_annotations(
    identifier: str,
    vendor_annotation: Optional[str] = None,
    extra: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Annotations linking an entity back to the instance it came from."""
    annotations: dict[str, str] = dict(extra or {})
    if vendor_annotation:
        annotations[vendor_annotation] = identifier
    annotations[ANNOTATION_LOCATION] = identifier
    annotations[ANNOTATION_ORIGIN_LOCATION] = identifier
    return annotations


def enrich(entity: Entity, provenance: Mapping[str, str]) -> Entity:
    """Add provenance to ``entity``; annotations the transform set win."""
    return deep_merge({"metadata": {"annotations": dict(provenance)}}, entity)
