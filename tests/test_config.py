"""Config tree access and provider config resolution."""

from __future__ import annotations

import logging

import pytest

from catalog_ingestion.config import (
    ConfigTree,
    ProviderConfig,
    get_aws_provider_configs,
    get_google_workspace_provider_configs,
    get_okta_provider_configs,
    load_config,
    load_settings,
)
from catalog_ingestion.errors import ConfigurationError


def _providers(**kinds) -> ConfigTree:
    return ConfigTree({"catalog": {"providers": kinds}})


def test_no_config_returns_nothing_and_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="ingestion.config"):
        assert get_aws_provider_configs(ConfigTree({})) == []
    assert "catalog.providers.aws" in caplog.text


def test_empty_provider_list_returns_nothing():
    assert get_aws_provider_configs(_providers(aws={})) == []


def test_one_record_per_configured_instance():
    root = _providers(
        aws={
            "east": {"region": "us-east-1"},
            "west": {
                "region": "us-west-2",
                "accessKeyId": "accessKeyId",
                "secretAccessKey": "secretAccessKey",
            },
        }
    )

    assert get_aws_provider_configs(root) == [
        ProviderConfig(id="east", endpoint="us-east-1", credentials=None),
        ProviderConfig(
            id="west",
            endpoint="us-west-2",
            credentials={
                "aws_access_key_id": "accessKeyId",
                "aws_secret_access_key": "secretAccessKey",
            },
        ),
    ]


def test_session_token_is_carried_with_static_credentials():
    root = _providers(
        aws={"main": {"region": "eu-west-1", "accessKeyId": "a", "secretAccessKey": "s", "sessionToken": "t"}}
    )
    (config,) = get_aws_provider_configs(root)
    assert config.credentials["aws_session_token"] == "t"


def test_access_key_without_secret_falls_back_to_ambient_credentials():
    root = _providers(aws={"main": {"region": "eu-west-1", "accessKeyId": "a"}})
    (config,) = get_aws_provider_configs(root)
    assert config.credentials is None


def test_missing_region_names_the_exact_path():
    root = _providers(aws={"east": {"region": "us-east-1"}, "west": {"accessKeyId": "a"}})
    with pytest.raises(ConfigurationError, match=r"'catalog\.providers\.aws\.west\.region'"):
        get_aws_provider_configs(root)


@pytest.mark.parametrize(
    "settings, missing",
    [
        ({"url": "https://my.okta.com"}, "apiToken"),
        ({"apiToken": "my-okta-token"}, "url"),
    ],
)
def test_okta_required_values(settings, missing):
    with pytest.raises(ConfigurationError) as excinfo:
        get_okta_provider_configs(_providers(okta={"my-okta": settings}))
    assert str(excinfo.value) == f"Missing required config value at 'catalog.providers.okta.my-okta.{missing}'"


def test_okta_config():
    root = _providers(
        okta={
            "my-okta": {"url": "https://my.okta.com/", "apiToken": "my-okta-token"},
            "other-okta": {"url": "https://other.okta.com", "apiToken": "other-okta-token"},
        }
    )
    configs = get_okta_provider_configs(root)
    assert [c.id for c in configs] == ["my-okta", "other-okta"]
    assert configs[0].endpoint == "https://my.okta.com"
    assert configs[0].credentials == {"api_token": "my-okta-token"}


def test_secret_references_are_resolved(monkeypatch):
    monkeypatch.setenv("OKTA_TOKEN", "from-env")
    root = _providers(okta={"main": {"url": "https://my.okta.com", "apiToken": "env://OKTA_TOKEN"}})
    (config,) = get_okta_provider_configs(root)
    assert config.credentials == {"api_token": "from-env"}


def test_unset_secret_reference_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("OKTA_TOKEN", raising=False)
    root = _providers(okta={"main": {"url": "https://my.okta.com", "apiToken": "env://OKTA_TOKEN"}})
    with pytest.raises(ConfigurationError, match="OKTA_TOKEN"):
        get_okta_provider_configs(root)


def test_google_workspace_config():
    root = _providers(
        googleWorkspace={"corp": {"customerId": "C0123", "adminEmail": "admin@example.com"}}
    )
    (config,) = get_google_workspace_provider_configs(root)
    assert config.endpoint == "C0123"
    assert config.credentials is None
    assert config.options == {"admin_email": "admin@example.com"}


def test_google_workspace_requires_admin_email():
    root = _providers(googleWorkspace={"corp": {"customerId": "C0123"}})
    with pytest.raises(ConfigurationError, match="catalog.providers.googleWorkspace.corp.adminEmail"):
        get_google_workspace_provider_configs(root)


def test_instance_must_be_an_object():
    with pytest.raises(ConfigurationError, match="catalog.providers.aws.east"):
        get_aws_provider_configs(_providers(aws={"east": "us-east-1"}))


def test_instance_ids_are_taken_literally():
    root = _providers(aws={"prod.east": {"region": "us-east-1"}, 123456789012: {"region": "eu-west-1"}})

    assert [(c.id, c.endpoint) for c in get_aws_provider_configs(root)] == [
        ("prod.east", "us-east-1"),
        ("123456789012", "eu-west-1"),
    ]


def test_missing_value_under_dotted_id_names_the_path():
    with pytest.raises(ConfigurationError, match=r"'catalog\.providers\.aws\.prod\.east\.region'"):
        get_aws_provider_configs(_providers(aws={"prod.east": {}}))


def test_load_config_keeps_numeric_account_ids(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("catalog:\n  providers:\n    aws:\n      123456789012:\n        region: us-east-1\n")

    assert [c.id for c in get_aws_provider_configs(load_config(str(path)))] == ["123456789012"]


def test_settings_defaults_and_overrides(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    root = ConfigTree(
        {
            "ingestion": {
                "database_url": "postgresql://localhost/catalog",
                "intervals": {"okta": 60},
                "transform_workers": 2,
            }
        }
    )

    settings = load_settings(root)

    assert settings.database_url == "postgresql://localhost/catalog"
    assert settings.interval_for("okta") == 60
    assert settings.interval_for("aws_rds") == 30
    assert settings.transform_workers == 2
    assert settings.fetch_timeout_seconds == 600


def test_environment_wins_over_file_settings(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://env/catalog")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = load_settings(ConfigTree({"ingestion": {"database_url": "postgresql://file/catalog"}}))
    assert settings.database_url == "postgresql://env/catalog"
    assert settings.log_level == "DEBUG"


def test_invalid_interval_is_rejected():
    with pytest.raises(ConfigurationError, match="ingestion.intervals.okta"):
        load_settings(ConfigTree({"ingestion": {"intervals": {"okta": 0}}}))


def test_load_config_reads_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("catalog:\n  providers:\n    aws:\n      east:\n        region: us-east-1\n")

    root = load_config(str(path))

    assert [c.id for c in get_aws_provider_configs(root)] == ["east"]


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(str(tmp_path / "absent.yaml"))
