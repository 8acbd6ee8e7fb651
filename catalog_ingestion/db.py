"""PostgreSQL catalog sink: connection pool and full-replace mutations."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Generator, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from catalog_ingestion.model import MutationBatch, entity_ref

logger = logging.getLogger("ingestion.db")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS catalog_entities (
    provider        TEXT        NOT NULL,
    entity_ref      TEXT        NOT NULL,
    location_key    TEXT        NOT NULL,
    entity          JSONB       NOT NULL,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    last_synced_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (provider, entity_ref)
)
"""


class PostgresCatalogSink:
    """Stores each provider's latest snapshot in ``catalog_entities``.

    ``apply_mutation`` replaces everything a provider contributed before in
    one transaction: rows missing from the batch are deleted, the rest are
    upserted.
    """

    def __init__(self, dsn: str, min_connections: int = 1, max_connections: int = 5) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=min_connections,
            maxconn=max_connections,
            dsn=dsn,
        )

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a cursor inside an auto-commit/rollback transaction."""
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        with self.transaction() as cur:
            cur.execute(SCHEMA_SQL)

    def apply_mutation(self, batch: MutationBatch) -> None:
        rows_by_ref: dict[str, tuple] = {}
        for mutation in batch.entities:
            ref = entity_ref(mutation.entity)
            if ref in rows_by_ref:
                logger.warning(
                    "Duplicate entity %s in mutation, keeping the last one",
                    ref,
                    extra={"provider": batch.provider},
                )
            rows_by_ref[ref] = (
                batch.provider,
                ref,
                mutation.location_key,
                psycopg2.extras.Json(mutation.entity),
            )

        with self.transaction() as cur:
            cur.execute(
                """DELETE FROM catalog_entities
                   WHERE provider = %s AND NOT (entity_ref = ANY(%s))""",
                (batch.provider, list(rows_by_ref)),
            )
            deleted = cur.rowcount
            upserted = self.upsert_batch(
                cur,
                "catalog_entities",
                ["provider", "entity_ref", "location_key", "entity"],
                list(rows_by_ref.values()),
                conflict_columns=["provider", "entity_ref"],
                update_columns=["location_key", "entity"],
            )
        logger.info(
            "Applied full mutation: %d upserted, %d deleted",
            upserted,
            deleted,
            extra={"provider": batch.provider, "entities": len(rows_by_ref)},
        )

    def upsert_batch(
        self,
        cur,
        table: str,
        columns: list[str],
        rows: Sequence[tuple],
        conflict_columns: list[str],
        update_columns: list[str],
    ) -> int:
        """Bulk upsert using execute_values with ON CONFLICT DO UPDATE.

        Returns the number of rows affected.
        """
        if not rows:
            return 0

        col_list = ", ".join(columns)
        conflict_list = ", ".join(conflict_columns)
        set_clauses = ", ".join(
            f"{c} = EXCLUDED.{c}" for c in update_columns
        )
        # Always refresh timestamps on update
        set_clauses += ", updated_at = NOW(), last_synced_at = NOW()"

        sql = (
            f"INSERT INTO {table} ({col_list}) VALUES %s "
            f"ON CONFLICT ({conflict_list}) DO UPDATE SET {set_clauses}"
        )

        psycopg2.extras.execute_values(cur, sql, rows, page_size=500)
        return cur.rowcount

    def location_summary(self) -> list[dict[str, Any]]:
        """Entity counts and last sync time per provider, for status display."""
        with self.transaction() as cur:
            cur.execute(
                """SELECT provider, COUNT(*) AS entities, MAX(last_synced_at) AS last_synced_at
                   FROM catalog_entities
                   GROUP BY provider
                   ORDER BY provider"""
            )
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]
