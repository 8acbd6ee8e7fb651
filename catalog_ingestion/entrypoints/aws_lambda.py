"""AWS Lambda handler running one reconciliation cycle.

Deployed as a Lambda function triggered by EventBridge rules, one rule per
provider, as an alternative to the long-running scheduler.

Event format:
  {"provider": "aws_rds:east"}
  {"provider": "okta"}          (every configured okta instance)
"""

from __future__ import annotations

import json
import logging

from catalog_ingestion.cli import _open_sink, run_once
from catalog_ingestion.config import load_config, load_settings
from catalog_ingestion.errors import ConfigurationError, IngestionError
from catalog_ingestion.logging_config import configure_logging

logger = logging.getLogger("ingestion.lambda")


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    provider = event.get("provider", "")
    if not provider:
        return {"statusCode": 400, "body": "Missing 'provider' in event"}

    try:
        root = load_config()
        settings = load_settings(root)
    except ConfigurationError as exc:
        return {"statusCode": 500, "body": json.dumps({"provider": provider, "error": str(exc)})}

    configure_logging(settings.log_level)
    logger.info("Lambda invoked for provider=%s", provider)

    try:
        sink = _open_sink(settings)
    except ConfigurationError as exc:
        return {"statusCode": 500, "body": json.dumps({"provider": provider, "error": str(exc)})}

    try:
        results = run_once(root, settings, sink, provider)
        return {
            "statusCode": 200,
            "body": json.dumps({"provider": provider, "results": results}),
        }
    except IngestionError as exc:
        logger.error("Sync failed for %s: %s", provider, exc, exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"provider": provider, "error": str(exc)}),
        }
    finally:
        sink.close()
