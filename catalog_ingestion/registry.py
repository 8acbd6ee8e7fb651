"""Source kind registry: turns the config tree into scheduled controllers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from catalog_ingestion import transforms
from catalog_ingestion.config import (
    AWS_CONFIG_KEY,
    GOOGLE_WORKSPACE_CONFIG_KEY,
    OKTA_CONFIG_KEY,
    ConfigTree,
    IngestionSettings,
    ProviderConfig,
    get_aws_provider_configs,
    get_google_workspace_provider_configs,
    get_okta_provider_configs,
)
from catalog_ingestion.controller import ScheduledRefreshController, TaskRunner
from catalog_ingestion.engine import (
    Collection,
    InstanceFilter,
    MutationHook,
    ReconciliationEngine,
    Transformer,
    accept_all,
)
from catalog_ingestion.model import ProviderIdentity

logger = logging.getLogger("ingestion.registry")


@dataclass(frozen=True)
class KindOverrides:
    """Caller-supplied behaviour for every provider of one kind.

    ``transforms`` and ``filters`` are keyed by collection name; anything not
    given falls back to the kind's defaults.
    """

    transforms: Mapping[str, Transformer] = field(default_factory=dict)
    filters: Mapping[str, InstanceFilter] = field(default_factory=dict)
    hook: Optional[MutationHook] = None
    source_options: Mapping[str, Any] = field(default_factory=dict)
    split_collections: bool = False


def _aws_rds_sources(config: ProviderConfig, options: Mapping[str, Any]) -> dict[str, Any]:
    from catalog_ingestion.sources.aws_rds import AwsRdsSource

    return {"db_instances": AwsRdsSource.from_config(config, options.get("describe_kwargs"))}


def _okta_sources(config: ProviderConfig, options: Mapping[str, Any]) -> dict[str, Any]:
    from catalog_ingestion.sources.okta import OktaClient, OktaGroupSource, OktaUserSource

    client = OktaClient.from_config(config)
    return {
        "groups": OktaGroupSource(
            client, options.get("list_groups_params"), options.get("include_members", True)
        ),
        "users": OktaUserSource(client, options.get("list_users_params")),
    }


def _google_workspace_sources(config: ProviderConfig, options: Mapping[str, Any]) -> dict[str, Any]:
    from catalog_ingestion.sources.google_workspace import (
        GoogleWorkspaceGroupSource,
        GoogleWorkspaceUserSource,
        build_directory_service,
    )

    service = build_directory_service(config)
    return {
        "groups": GoogleWorkspaceGroupSource(service, config.endpoint, options.get("include_members", True)),
        "users": GoogleWorkspaceUserSource(service, config.endpoint),
    }


@dataclass(frozen=True)
class SourceKind:
    kind: str
    config_key: str
    resolve: Callable[[ConfigTree], list[ProviderConfig]]
    # (config, source_options) -> {collection name: Source}, in collection order
    create_sources: Callable[[ProviderConfig, Mapping[str, Any]], dict[str, Any]]
    default_transforms: Mapping[str, Transformer]
    # used when the caller supplies no hook of its own
    default_hook: Optional[MutationHook] = None


SOURCE_KINDS: dict[str, SourceKind] = {
    "aws_rds": SourceKind(
        kind="aws_rds",
        config_key=AWS_CONFIG_KEY,
        resolve=get_aws_provider_configs,
        create_sources=_aws_rds_sources,
        default_transforms={"db_instances": transforms.rds_instance_to_resource},
    ),
    "okta": SourceKind(
        kind="okta",
        config_key=OKTA_CONFIG_KEY,
        resolve=get_okta_provider_configs,
        create_sources=_okta_sources,
        default_transforms={
            "groups": transforms.okta_group_to_group,
            "users": transforms.okta_user_to_user,
        },
        default_hook=transforms.link_memberships,
    ),
    "google_workspace": SourceKind(
        kind="google_workspace",
        config_key=GOOGLE_WORKSPACE_CONFIG_KEY,
        resolve=get_google_workspace_provider_configs,
        create_sources=_google_workspace_sources,
        default_transforms={
            "groups": transforms.google_group_to_group,
            "users": transforms.google_user_to_user,
        },
        default_hook=transforms.link_memberships,
    ),
}


def build_engine(
    source_kind: SourceKind,
    config: ProviderConfig,
    settings: IngestionSettings,
    overrides: Optional[KindOverrides] = None,
) -> ReconciliationEngine:
    overrides = overrides or KindOverrides()
    sources = source_kind.create_sources(config, overrides.source_options)
    collections = [
        Collection(
            name=name,
            source=source,
            transform=overrides.transforms.get(name) or source_kind.default_transforms[name],
            filter=overrides.filters.get(name) or accept_all,
        )
        for name, source in sources.items()
    ]
    return ReconciliationEngine(
        ProviderIdentity(source_kind.kind, config.id),
        collections,
        hook=overrides.hook or source_kind.default_hook,
        transform_workers=settings.transform_workers,
        fetch_timeout_seconds=settings.fetch_timeout_seconds,
        split_collections=overrides.split_collections,
    )


def build_controllers(
    root: ConfigTree,
    task_runner: TaskRunner,
    settings: IngestionSettings,
    overrides: Optional[Mapping[str, KindOverrides]] = None,
    kinds: Optional[list[str]] = None,
) -> list[ScheduledRefreshController]:
    """One controller per configured provider instance across all kinds.

    Configuration errors propagate: a misconfigured provider stops startup
    rather than being silently left out.
    """
    overrides = overrides or {}
    controllers: list[ScheduledRefreshController] = []
    for kind in kinds or list(SOURCE_KINDS):
        source_kind = SOURCE_KINDS.get(kind)
        if source_kind is None:
            raise ValueError(f"Unknown source kind {kind!r}, expected one of {sorted(SOURCE_KINDS)}")
        for config in source_kind.resolve(root):
            engine = build_engine(source_kind, config, settings, overrides.get(kind))
            controllers.append(ScheduledRefreshController(engine, task_runner))
    names = [c.name for c in controllers]
    logger.info("Built %d providers: %s", len(controllers), names)
    return controllers
