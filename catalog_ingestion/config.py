"""Configuration tree loading and provider config resolution.

The configuration is a YAML document (path from ``CATALOG_CONFIG_FILE``,
``.env`` supported) shaped like::

    ingestion:
      database_url: postgresql://...
      fetch_timeout_seconds: 600
      intervals:
        aws_rds: 30
    catalog:
      providers:
        aws:
          east: {region: us-east-1}
          west: {region: us-west-2, accessKeyId: ..., secretAccessKey: ...}
        okta:
          main: {url: https://my.okta.com, apiToken: aws-secret://okta#token}

Each source kind is disabled when its key under ``catalog.providers`` is
absent. A missing required value under a configured instance is fatal at
startup and names the exact dotted path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, TypeVar

import yaml
from dotenv import load_dotenv

from catalog_ingestion.errors import ConfigurationError
from catalog_ingestion.secrets import resolve_secret

logger = logging.getLogger("ingestion.config")

T = TypeVar("T")

AWS_CONFIG_KEY = "catalog.providers.aws"
OKTA_CONFIG_KEY = "catalog.providers.okta"
GOOGLE_WORKSPACE_CONFIG_KEY = "catalog.providers.googleWorkspace"

DEFAULT_CONFIG_FILE = "catalog-ingestion.yaml"


class ConfigTree:
    """Read-only view over a nested mapping that knows its own dotted path."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None, path: str = "") -> None:
        self._data: Mapping[str, Any] = data or {}
        self.path = path

    def _full_key(self, key: str) -> str:
        return f"{self.path}.{key}" if self.path else key

    def _lookup(self, key: str) -> Any:
        node: Any = self._data
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return node

    def keys(self) -> list[str]:
        return [str(k) for k in self._data.keys()]

    def children(self) -> list[tuple[str, "ConfigTree"]]:
        """Direct child objects in config order, keyed by their literal key.

        Keys are not re-parsed as dotted paths, so ids such as ``prod.east``
        or an unquoted numeric account id are kept intact.
        """
        children = []
        for key, value in self._data.items():
            child_path = self._full_key(str(key))
            if not isinstance(value, Mapping):
                raise ConfigurationError(f"Invalid config value at '{child_path}', expected an object")
            children.append((str(key), ConfigTree(value, child_path)))
        return children

    def get_optional_config(self, key: str) -> Optional["ConfigTree"]:
        value = self._lookup(key)
        if value is None:
            return None
        if not isinstance(value, Mapping):
            raise ConfigurationError(
                f"Invalid config value at '{self._full_key(key)}', expected an object"
            )
        return ConfigTree(value, self._full_key(key))

    def get_config(self, key: str) -> "ConfigTree":
        tree = self.get_optional_config(key)
        if tree is None:
            raise ConfigurationError(f"Missing required config value at '{self._full_key(key)}'")
        return tree

    def get_optional_string(self, key: str) -> Optional[str]:
        value = self._lookup(key)
        if value is None:
            return None
        if isinstance(value, (Mapping, list)):
            raise ConfigurationError(
                f"Invalid config value at '{self._full_key(key)}', expected a string"
            )
        value = str(value).strip()
        return value or None

    def get_string(self, key: str) -> str:
        value = self.get_optional_string(key)
        if value is None:
            raise ConfigurationError(f"Missing required config value at '{self._full_key(key)}'")
        return value

    def get_optional_int(self, key: str) -> Optional[int]:
        value = self._lookup(key)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"Invalid config value at '{self._full_key(key)}', expected an integer"
            ) from exc

    def get_secret(self, key: str, region: Optional[str] = None) -> str:
        return resolve_secret(self.get_string(key), self._full_key(key), region)

    def get_optional_secret(self, key: str, region: Optional[str] = None) -> Optional[str]:
        value = self.get_optional_string(key)
        if value is None:
            return None
        return resolve_secret(value, self._full_key(key), region)


@dataclass(frozen=True)
class ProviderConfig:
    """One configured tenant, account or org of a source kind.

    ``endpoint`` is the AWS region, the Okta org URL or the Google Workspace
    customer id. ``credentials`` of None means ambient credentials.
    """

    id: str
    endpoint: str
    credentials: Optional[Mapping[str, str]] = None
    options: Mapping[str, Any] = field(default_factory=dict)


def resolve_provider_configs(
    root: ConfigTree,
    key: str,
    parse: Callable[[str, ConfigTree], T],
) -> list[T]:
    """Return one parsed config per child of ``key``; [] when ``key`` is absent."""
    providers = root.get_optional_config(key)
    if providers is None:
        logger.warning("Providers under '%s' will not be created as the key is missing", key)
        return []
    return [parse(child_id, child) for child_id, child in providers.children()]


def parse_aws_config(instance_id: str, node: ConfigTree) -> ProviderConfig:
    region = node.get_string("region")
    access_key_id = node.get_optional_secret("accessKeyId", region)
    secret_access_key = node.get_optional_secret("secretAccessKey", region)
    session_token = node.get_optional_secret("sessionToken", region)

    credentials: Optional[dict[str, str]] = None
    if access_key_id and secret_access_key:
        credentials = {
            "aws_access_key_id": access_key_id,
            "aws_secret_access_key": secret_access_key,
        }
        if session_token:
            credentials["aws_session_token"] = session_token

    return ProviderConfig(id=instance_id, endpoint=region, credentials=credentials)


def parse_okta_config(instance_id: str, node: ConfigTree) -> ProviderConfig:
    url = node.get_string("url").rstrip("/")
    api_token = node.get_secret("apiToken")
    return ProviderConfig(id=instance_id, endpoint=url, credentials={"api_token": api_token})


def parse_google_workspace_config(instance_id: str, node: ConfigTree) -> ProviderConfig:
    customer_id = node.get_string("customerId")
    admin_email = node.get_string("adminEmail")
    sa_key_file = node.get_optional_string("saKeyFile")
    return ProviderConfig(
        id=instance_id,
        endpoint=customer_id,
        credentials={"sa_key_file": sa_key_file} if sa_key_file else None,
        options={"admin_email": admin_email},
    )


def get_aws_provider_configs(root: ConfigTree) -> list[ProviderConfig]:
    return resolve_provider_configs(root, AWS_CONFIG_KEY, parse_aws_config)


def get_okta_provider_configs(root: ConfigTree) -> list[ProviderConfig]:
    return resolve_provider_configs(root, OKTA_CONFIG_KEY, parse_okta_config)


def get_google_workspace_provider_configs(root: ConfigTree) -> list[ProviderConfig]:
    return resolve_provider_configs(root, GOOGLE_WORKSPACE_CONFIG_KEY, parse_google_workspace_config)


@dataclass(frozen=True)
class IngestionSettings:
    database_url: Optional[str] = None
    default_interval_minutes: int = 30
    interval_minutes: Mapping[str, int] = field(default_factory=dict)
    misfire_grace_time: int = 300
    fetch_timeout_seconds: int = 600
    transform_workers: int = 8
    log_level: str = "INFO"

    def interval_for(self, kind: str) -> int:
        return self.interval_minutes.get(kind, self.default_interval_minutes)


def load_settings(root: ConfigTree) -> IngestionSettings:
    """Read ``ingestion.*``; DATABASE_URL and LOG_LEVEL env vars take precedence."""
    node = root.get_optional_config("ingestion") or ConfigTree({}, "ingestion")
    defaults = IngestionSettings()

    database_url = os.environ.get("DATABASE_URL") or node.get_optional_string("database_url")
    if database_url:
        database_url = resolve_secret(database_url, "ingestion.database_url")

    intervals: dict[str, int] = {}
    interval_node = node.get_optional_config("intervals")
    if interval_node is not None:
        for kind in interval_node.keys():
            minutes = interval_node.get_optional_int(kind)
            if minutes is None or minutes <= 0:
                raise ConfigurationError(
                    f"Invalid config value at 'ingestion.intervals.{kind}', expected a positive integer"
                )
            intervals[kind] = minutes

    return IngestionSettings(
        database_url=database_url,
        default_interval_minutes=(
            node.get_optional_int("default_interval_minutes") or defaults.default_interval_minutes
        ),
        interval_minutes=intervals,
        misfire_grace_time=node.get_optional_int("misfire_grace_time") or defaults.misfire_grace_time,
        fetch_timeout_seconds=(
            node.get_optional_int("fetch_timeout_seconds") or defaults.fetch_timeout_seconds
        ),
        transform_workers=node.get_optional_int("transform_workers") or defaults.transform_workers,
        log_level=os.environ.get("LOG_LEVEL") or node.get_optional_string("log_level") or defaults.log_level,
    )


def load_config(path: Optional[str] = None) -> ConfigTree:
    """Load the YAML config tree. Locally a .env file may set CATALOG_CONFIG_FILE."""
    load_dotenv()

    path = path or os.environ.get("CATALOG_CONFIG_FILE", DEFAULT_CONFIG_FILE)
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file {path} not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file {path} is not valid YAML: {exc}") from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the top level")
    return ConfigTree(data)
