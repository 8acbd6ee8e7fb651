"""AWS RDS source: DB instances via the DescribeDBInstances paginator."""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig

from catalog_ingestion.annotations import AWS_ARN_ANNOTATION
from catalog_ingestion.config import ProviderConfig
from catalog_ingestion.pagination import Deadline, collect_boto3_pages

logger = logging.getLogger("ingestion.aws_rds")

PAGE_SIZE = 100

# Bounds a single hanging request; the cycle-wide bound is the fetch Deadline
_CLIENT_CONFIG = BotoConfig(
    connect_timeout=10,
    read_timeout=60,
    retries={"max_attempts": 5, "mode": "standard"},
)


def create_rds_client(config: ProviderConfig) -> Any:
    """No explicit creds -- falls back to the IAM role / environment chain."""
    return boto3.client(
        "rds",
        region_name=config.endpoint,
        config=_CLIENT_CONFIG,
        **dict(config.credentials or {}),
    )


class AwsRdsSource:
    vendor_annotation = AWS_ARN_ANNOTATION

    def __init__(self, client: Any, describe_kwargs: Optional[dict[str, Any]] = None) -> None:
        self._client = client
        self._describe_kwargs = dict(describe_kwargs or {})

    @classmethod
    def from_config(
        cls, config: ProviderConfig, describe_kwargs: Optional[dict[str, Any]] = None
    ) -> "AwsRdsSource":
        return cls(create_rds_client(config), describe_kwargs)

    def fetch_instances(self, deadline: Optional[Deadline] = None) -> list[dict]:
        logger.info("Fetching RDS DB instances")
        return collect_boto3_pages(
            self._client,
            "describe_db_instances",
            "DBInstances",
            deadline=deadline,
            PaginationConfig={"PageSize": PAGE_SIZE},
            **self._describe_kwargs,
        )

    def identify(self, instance: dict) -> str:
        return instance["DBInstanceArn"]

    def extra_annotations(self, instance: dict) -> dict[str, str]:
        return {}
