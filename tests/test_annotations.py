"""Provenance annotations and merge precedence."""

from __future__ import annotations

from catalog_ingestion.annotations import (
    ANNOTATION_LOCATION,
    ANNOTATION_ORIGIN_LOCATION,
    AWS_ARN_ANNOTATION,
    deep_merge,
    enrich,
    provenance_annotations,
)
from catalog_ingestion.model import make_entity

ARN = "arn:aws:rds:us-east-1:0123456789:db:orders"


def test_provenance_sets_all_keys_to_the_identifier():
    assert provenance_annotations(ARN, AWS_ARN_ANNOTATION) == {
        AWS_ARN_ANNOTATION: ARN,
        ANNOTATION_LOCATION: ARN,
        ANNOTATION_ORIGIN_LOCATION: ARN,
    }


def test_provenance_without_vendor_key_keeps_extras():
    annotations = provenance_annotations("url:https://x/api/v1/users/1", extra={"okta.com/email": "a@x"})
    assert annotations == {
        "okta.com/email": "a@x",
        ANNOTATION_LOCATION: "url:https://x/api/v1/users/1",
        ANNOTATION_ORIGIN_LOCATION: "url:https://x/api/v1/users/1",
    }


def test_deep_merge_recurses_and_override_wins():
    base = {"metadata": {"annotations": {"a": "base", "b": "base"}, "name": "x"}}
    override = {"metadata": {"annotations": {"b": "override", "c": "override"}}, "spec": {"type": "db"}}

    assert deep_merge(base, override) == {
        "metadata": {"annotations": {"a": "base", "b": "override", "c": "override"}, "name": "x"},
        "spec": {"type": "db"},
    }


def test_deep_merge_leaves_inputs_untouched():
    base = {"metadata": {"annotations": {"a": "1"}}}
    override = {"metadata": {"annotations": {"b": "2"}, "tags": ["t"]}}

    merged = deep_merge(base, override)
    merged["metadata"]["annotations"]["a"] = "changed"
    merged["metadata"]["tags"].append("u")

    assert base == {"metadata": {"annotations": {"a": "1"}}}
    assert override == {"metadata": {"annotations": {"b": "2"}, "tags": ["t"]}}


def test_deep_merge_none_does_not_erase():
    assert deep_merge({"a": {"b": "1"}}, {"a": None}) == {"a": {"b": "1"}}


def test_enrich_adds_missing_provenance():
    entity = make_entity("Resource", "orders", spec={"type": "rds-instance"})

    enriched = enrich(entity, provenance_annotations(ARN, AWS_ARN_ANNOTATION))

    assert enriched["metadata"]["annotations"][AWS_ARN_ANNOTATION] == ARN
    assert "annotations" not in entity["metadata"]


def test_enrich_keeps_transform_values():
    entity = make_entity("Resource", "orders", annotations={AWS_ARN_ANNOTATION: "arn:custom"})

    enriched = enrich(entity, provenance_annotations(ARN, AWS_ARN_ANNOTATION))

    assert enriched["metadata"]["annotations"] == {
        AWS_ARN_ANNOTATION: "arn:custom",
        ANNOTATION_LOCATION: ARN,
        ANNOTATION_ORIGIN_LOCATION: ARN,
    }
