"""CLI entry point: sync, scheduler, status."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable, Optional

from catalog_ingestion.config import ConfigTree, IngestionSettings, load_config, load_settings
from catalog_ingestion.controller import ScheduledRefreshController
from catalog_ingestion.db import PostgresCatalogSink
from catalog_ingestion.errors import ConfigurationError, IngestionError
from catalog_ingestion.logging_config import configure_logging
from catalog_ingestion.registry import SOURCE_KINDS, build_controllers

logger = logging.getLogger("ingestion.cli")


class ImmediateTaskRunner:
    """Records tasks instead of scheduling them; used for one-shot runs."""

    def __init__(self) -> None:
        self.tasks: dict[str, Callable[[], None]] = {}

    def run(self, task_id: str, fn: Callable[[], None]) -> None:
        self.tasks[task_id] = fn


def _open_sink(settings: IngestionSettings) -> PostgresCatalogSink:
    if not settings.database_url:
        raise ConfigurationError(
            "Missing required config value at 'ingestion.database_url' (or DATABASE_URL)"
        )
    sink = PostgresCatalogSink(settings.database_url)
    sink.ensure_schema()
    return sink


def _select(
    controllers: list[ScheduledRefreshController], provider: Optional[str]
) -> list[ScheduledRefreshController]:
    if not provider or provider == "all":
        return controllers
    selected = [c for c in controllers if c.name == provider or c.identity.kind == provider]
    if not selected:
        raise ConfigurationError(
            f"No configured provider matches {provider!r}; known: {[c.name for c in controllers]}"
        )
    return selected


def run_once(
    root: ConfigTree,
    settings: IngestionSettings,
    sink,
    provider: Optional[str] = None,
) -> dict[str, int]:
    """Run one cycle per selected provider. Returns {provider: entities applied}.

    Unlike scheduled runs, failures propagate after every provider was tried.
    """
    controllers = _select(build_controllers(root, ImmediateTaskRunner(), settings), provider)
    results: dict[str, int] = {}
    failures: list[str] = []
    for controller in controllers:
        controller.connect(sink)
        logger.info("Starting sync for %s", controller.name)
        try:
            results[controller.name] = controller.refresh().entities
        except IngestionError as exc:
            logger.error("Sync failed for %s: %s", controller.name, exc, extra={"provider": controller.name})
            failures.append(controller.name)
    if failures:
        raise IngestionError(f"Sync failed for {', '.join(failures)}")
    return results


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one-shot sync for the specified provider(s)."""
    root = load_config(args.config)
    settings = load_settings(root)
    sink = _open_sink(settings)
    try:
        results = run_once(root, settings, sink, args.provider)
        logger.info("Sync results: %s", results)
    finally:
        sink.close()


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from catalog_ingestion.scheduler import create_scheduler, start_scheduler

    root = load_config(args.config)
    settings = load_settings(root)
    sink = _open_sink(settings)
    try:
        scheduler, task_runner = create_scheduler(settings)
        controllers = _select(build_controllers(root, task_runner, settings), args.provider)
        for controller in controllers:
            controller.connect(sink)
        start_scheduler(scheduler)
    finally:
        sink.close()


def cmd_status(args: argparse.Namespace) -> None:
    """Show what each provider currently contributes to the catalog."""
    root = load_config(args.config)
    sink = _open_sink(load_settings(root))
    try:
        rows = sink.location_summary()
        if not rows:
            print("No entities ingested yet.")
            return

        fmt = "{:<48}  {:>8}  {}"
        print(fmt.format("PROVIDER", "ENTITIES", "LAST SYNCED"))
        print("-" * 80)
        for r in rows:
            synced = str(r["last_synced_at"])[:19] if r["last_synced_at"] else ""
            print(fmt.format(r["provider"], r["entities"], synced))
    finally:
        sink.close()


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="catalog-ingestion",
        description="Reconcile external inventory into the catalog",
    )
    parser.add_argument("--config", "-c", help="Path to the YAML config (default: $CATALOG_CONFIG_FILE)")
    parser.add_argument("--log-level", default=None, help="Log level (default: $LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    provider_help = f"Provider name (e.g. aws_rds:east) or kind ({', '.join(SOURCE_KINDS)}); default: all"

    sync_parser = subparsers.add_parser("sync", help="Run one reconciliation cycle now")
    sync_parser.add_argument("--provider", "-p", default="all", help=provider_help)
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled refresh loop")
    sched_parser.add_argument("--provider", "-p", default="all", help=provider_help)
    sched_parser.set_defaults(func=cmd_scheduler)

    status_parser = subparsers.add_parser("status", help="Show entity counts per provider")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)
    configure_logging(args.log_level or os.environ.get("LOG_LEVEL", "INFO"))

    try:
        args.func(args)
    except IngestionError as exc:
        logger.error("%s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
