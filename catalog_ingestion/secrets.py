"""Secret references for credential values in the provider configuration.

A credential value in the config tree is either a literal or a reference:

  - "aws-secret://secret-name"         -> AWS Secrets Manager
  - "aws-secret://secret-name#key"     -> AWS Secrets Manager (JSON key)
  - "gcp-secret://project/secret/ver"  -> GCP Secret Manager
  - "env://VAR_NAME"                   -> environment variable
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from catalog_ingestion.errors import ConfigurationError

logger = logging.getLogger("ingestion.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"
_ENV_PREFIX = "env://"


def resolve_secret(value: str, path: str = "", region: Optional[str] = None) -> str:
    """Resolve a secret reference to its plaintext value.

    ``path`` is the dotted config path the value came from and only appears
    in error messages. Literals are returned unchanged.
    """
    try:
        if value.startswith(_AWS_PREFIX):
            return _resolve_aws_secret(value[len(_AWS_PREFIX):], region)
        if value.startswith(_GCP_PREFIX):
            return _resolve_gcp_secret(value[len(_GCP_PREFIX):])
        if value.startswith(_ENV_PREFIX):
            return _resolve_env(value[len(_ENV_PREFIX):])
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(f"Unable to resolve secret at '{path}': {exc}") from exc
    return value


def _resolve_env(name: str) -> str:
    resolved = os.environ.get(name)
    if not resolved:
        raise ConfigurationError(f"Environment variable {name} referenced by config is not set")
    return resolved


def _resolve_aws_secret(ref: str, region: Optional[str]) -> str:
    import boto3

    secret_name, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager",
        region_name=region or os.environ.get("AWS_REGION", "us-east-1"),
    )
    secret_string = client.get_secret_value(SecretId=secret_name)["SecretString"]
    logger.debug("Resolved AWS secret %s", secret_name)

    if json_key:
        return str(json.loads(secret_string)[json_key])
    return secret_string


def _resolve_gcp_secret(ref: str) -> str:
    """ref is "projects/P/secrets/N/versions/V" or a bare secret name."""
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Available on Cloud Run / GCE only."""
    import requests

    try:
        resp = requests.get(
            "http://metadata.google.internal/computeMetadata/v1/project/project-id",
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ConfigurationError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc
    return resp.text
