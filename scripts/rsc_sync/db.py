"""Database helpers: connection pool, upsert sink, relic marking, run tracking."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator, Iterable, Optional, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool
from psycopg2 import sql

from scripts.rsc_sync.config import DatabaseConfig
from scripts.rsc_sync.errors import SinkError
from scripts.rsc_sync.models import record_columns, record_key, record_row

logger = logging.getLogger("rsc_sync.db")


@dataclass(frozen=True)
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0


class Database:
    """Thin wrapper around a ThreadedConnectionPool with upsert helpers."""

    def __init__(self, config: DatabaseConfig) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=config.min_connections,
            maxconn=config.max_connections,
            dsn=config.url,
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
        """Yield a cursor inside a commit/rollback transaction.

        psycopg2 errors surface as SinkError after the rollback.
        """
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise SinkError(str(exc).strip()) from exc
            except Exception:
                conn.rollback()
                raise

    # ------------------------------------------------------------------
    # Upsert sink
    # ------------------------------------------------------------------

    def upsert_batch(
        self,
        cur,
        table: str,
        columns: Sequence[str],
        rows: Sequence[tuple],
        conflict_columns: Sequence[str],
        page_size: int = 500,
    ) -> UpsertResult:
        """Bulk upsert using execute_values with ON CONFLICT DO UPDATE.

        Rows whose non-key columns are unchanged are left alone, so running
        the same batch twice reports zero inserts and zero updates. A row
        seen again clears its relic flag.
        """
        if not rows:
            return UpsertResult()

        update_columns = [c for c in columns if c not in conflict_columns]
        target = sql.Identifier(table)
        col_list = sql.SQL(", ").join(sql.Identifier(c) for c in columns)
        conflict_list = sql.SQL(", ").join(sql.Identifier(c) for c in conflict_columns)

        set_clauses = [
            sql.SQL("{c} = EXCLUDED.{c}").format(c=sql.Identifier(c)) for c in update_columns
        ]
        set_clauses.append(sql.SQL("is_relic = FALSE"))
        set_clauses.append(sql.SQL("last_updated = NOW()"))

        current = [sql.SQL("{t}.{c}").format(t=target, c=sql.Identifier(c)) for c in update_columns]
        current.append(sql.SQL("{t}.is_relic").format(t=target))
        incoming = [sql.SQL("EXCLUDED.{c}").format(c=sql.Identifier(c)) for c in update_columns]
        incoming.append(sql.SQL("FALSE"))

        query = sql.SQL(
            "INSERT INTO {table} ({cols}) VALUES %s "
            "ON CONFLICT ({conflict}) DO UPDATE SET {sets} "
            "WHERE ({current}) IS DISTINCT FROM ({incoming}) "
            "RETURNING (xmax = 0) AS inserted"
        ).format(
            table=target,
            cols=col_list,
            conflict=conflict_list,
            sets=sql.SQL(", ").join(set_clauses),
            current=sql.SQL(", ").join(current),
            incoming=sql.SQL(", ").join(incoming),
        )

        returned = psycopg2.extras.execute_values(cur, query, rows, page_size=page_size, fetch=True)
        inserted = sum(1 for (was_insert,) in returned if was_insert)
        return UpsertResult(inserted=inserted, updated=len(returned) - inserted)

    def upsert(
        self,
        table: str,
        natural_key: Sequence[str],
        records: Sequence[Any],
        drop_existing: bool = False,
        scope: Optional[dict[str, Any]] = None,
    ) -> UpsertResult:
        """Upsert records in one transaction.

        Records are de-duplicated on the natural key (last one wins). With
        ``drop_existing`` the scope's rows are deleted first, inside the same
        transaction, so a failure leaves the table untouched.
        """
        unique = dedupe(records, natural_key)
        if len(unique) != len(records):
            logger.warning(
                "Dropped %d duplicate %s rows", len(records) - len(unique), table,
            )
        columns = record_columns(type(unique[0])) if unique else []
        rows = [record_row(r) for r in unique]

        with self.transaction() as cur:
            deleted = 0
            if drop_existing:
                deleted = self._delete_scope(cur, table, scope)
            result = self.upsert_batch(cur, table, columns, rows, list(natural_key))
        return UpsertResult(inserted=result.inserted, updated=result.updated, deleted=deleted)

    def _delete_scope(self, cur, table: str, scope: Optional[dict[str, Any]]) -> int:
        conditions = _scope_conditions(scope)
        query = sql.SQL("DELETE FROM {table}").format(table=sql.Identifier(table))
        if conditions:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        cur.execute(query)
        return cur.rowcount

    def mark_missing_as_relic(
        self,
        table: str,
        natural_key: Sequence[str],
        present_keys: Iterable[tuple],
        scope: Optional[dict[str, Any]] = None,
    ) -> int:
        """Flag stored rows whose key is absent from ``present_keys``.

        Only rows inside ``scope`` (column -> value equality filters) are
        considered. Returns the number of rows newly flagged.
        """
        keys = list(dict.fromkeys(tuple(k) for k in present_keys))
        target = sql.Identifier(table)
        conditions = [sql.SQL("{t}.is_relic = FALSE").format(t=target)]
        conditions.extend(_scope_conditions(scope))

        with self.transaction() as cur:
            if not keys:
                cur.execute(
                    sql.SQL("UPDATE {table} SET is_relic = TRUE, last_updated = NOW() WHERE {where}").format(
                        table=target, where=sql.SQL(" AND ").join(conditions),
                    )
                )
                return cur.rowcount

            matches = sql.SQL(" AND ").join(
                sql.SQL("p.{c} = {t}.{c}").format(c=sql.Identifier(c), t=target) for c in natural_key
            )
            conditions.append(
                sql.SQL("NOT EXISTS (SELECT 1 FROM (VALUES %s) AS p ({cols}) WHERE {matches})").format(
                    cols=sql.SQL(", ").join(sql.Identifier(c) for c in natural_key),
                    matches=matches,
                )
            )
            query = sql.SQL("UPDATE {table} SET is_relic = TRUE, last_updated = NOW() WHERE {where}").format(
                table=target, where=sql.SQL(" AND ").join(conditions),
            )
            # All keys must land in one statement for NOT EXISTS to be correct
            psycopg2.extras.execute_values(cur, query, keys, page_size=len(keys))
            return cur.rowcount

    # ------------------------------------------------------------------
    # Sync run tracking
    # ------------------------------------------------------------------

    def record_run_start(
        self,
        instance_id: str,
        entity_type: str,
        metadata: Optional[dict] = None,
    ) -> str:
        """Insert a new sync_runs row with status RUNNING. Returns the run id."""
        run_id = str(uuid.uuid4())
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sync_runs
                   (id, rsc_instance, entity_type, status, run_metadata)
                   VALUES (%s, %s, %s, 'RUNNING', %s)""",
                (
                    run_id,
                    instance_id,
                    entity_type,
                    psycopg2.extras.Json(metadata or {}),
                ),
            )
        return run_id

    def record_run_end(
        self,
        run_id: str,
        status: str,
        fetched: int = 0,
        inserted: int = 0,
        updated: int = 0,
        skipped: int = 0,
        failed: int = 0,
        relics: int = 0,
        error_message: Optional[str] = None,
        error_detail: Optional[dict] = None,
    ) -> None:
        """Finalise a sync_runs row."""
        with self.transaction() as cur:
            cur.execute(
                """UPDATE sync_runs
                   SET status = %s,
                       finished_at = NOW(),
                       records_fetched = %s,
                       records_inserted = %s,
                       records_updated = %s,
                       records_skipped = %s,
                       records_failed = %s,
                       records_relic = %s,
                       error_message = %s,
                       error_detail = %s
                   WHERE id = %s""",
                (
                    status,
                    fetched,
                    inserted,
                    updated,
                    skipped,
                    failed,
                    relics,
                    error_message,
                    psycopg2.extras.Json(error_detail) if error_detail else None,
                    run_id,
                ),
            )

    def get_recent_runs(
        self,
        instance_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Fetch recent sync runs for status display."""
        filters = []
        params: list[Any] = []
        if instance_id:
            filters.append("rsc_instance = %s")
            params.append(instance_id)
        if entity_type:
            filters.append("entity_type = %s")
            params.append(entity_type)
        where = f"WHERE {' AND '.join(filters)}" if filters else ""
        params.append(limit)

        with self.transaction() as cur:
            cur.execute(
                f"""SELECT id, rsc_instance, entity_type, status, started_at,
                           finished_at, records_fetched, records_inserted,
                           records_updated, records_failed, records_relic,
                           error_message
                    FROM sync_runs
                    {where}
                    ORDER BY started_at DESC LIMIT %s""",
                params,
            )
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]

    def ensure_schema(self, statements: Sequence[str]) -> None:
        with self.transaction() as cur:
            for statement in statements:
                cur.execute(statement)


def dedupe(records: Sequence[Any], natural_key: Sequence[str]) -> list[Any]:
    """Keep the last record for each natural key, in first-seen order."""
    by_key: dict[tuple, Any] = {}
    for record in records:
        by_key[record_key(record, list(natural_key))] = record
    return list(by_key.values())


def _scope_conditions(scope: Optional[dict[str, Any]]) -> list[sql.Composable]:
    """Equality filters with values bound as literals.

    execute_values owns the single %s placeholder in the relic query, so
    scope values are composed with sql.Literal rather than passed as params.
    """
    return [
        sql.SQL("{c} = {v}").format(c=sql.Identifier(c), v=sql.Literal(v))
        for c, v in (scope or {}).items()
    ]
