"""Reporting table DDL, derived from the record dataclasses in models.py."""

from __future__ import annotations

import typing
from dataclasses import fields
from datetime import datetime

from scripts.rsc_sync.catalog import CATALOG, EntitySpec

_PG_TYPES = {
    str: "TEXT",
    int: "INTEGER",
    float: "DOUBLE PRECISION",
    bool: "BOOLEAN",
    datetime: "TIMESTAMPTZ",
}

SYNC_RUNS_DDL = """
CREATE TABLE IF NOT EXISTS sync_runs (
    id               UUID PRIMARY KEY,
    rsc_instance     TEXT NOT NULL,
    entity_type      TEXT NOT NULL,
    status           TEXT NOT NULL,
    started_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    finished_at      TIMESTAMPTZ,
    records_fetched  INTEGER NOT NULL DEFAULT 0,
    records_inserted INTEGER NOT NULL DEFAULT 0,
    records_updated  INTEGER NOT NULL DEFAULT 0,
    records_skipped  INTEGER NOT NULL DEFAULT 0,
    records_failed   INTEGER NOT NULL DEFAULT 0,
    records_relic    INTEGER NOT NULL DEFAULT 0,
    error_message    TEXT,
    error_detail     JSONB,
    run_metadata     JSONB NOT NULL DEFAULT '{}'::jsonb
)
"""


def column_type(annotation) -> str:
    """Map a dataclass field annotation to a PostgreSQL column type."""
    args = [a for a in typing.get_args(annotation) if a is not type(None)]
    base = args[0] if args else annotation
    try:
        return _PG_TYPES[base]
    except KeyError:
        raise TypeError(f"No column type for {annotation!r}") from None


def table_ddl(spec: EntitySpec) -> str:
    hints = typing.get_type_hints(spec.record_type)
    lines = []
    for f in fields(spec.record_type):
        null = " NOT NULL" if f.name in spec.natural_key else ""
        lines.append(f"    {f.name} {column_type(hints[f.name])}{null}")
    lines.append("    last_updated TIMESTAMPTZ NOT NULL DEFAULT NOW()")
    lines.append("    is_relic BOOLEAN NOT NULL DEFAULT FALSE")
    lines.append(f"    PRIMARY KEY ({', '.join(spec.natural_key)})")
    body = ",\n".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {spec.table} (\n{body}\n)"


def all_ddl() -> list[str]:
    return [SYNC_RUNS_DDL.strip()] + [table_ddl(spec) for spec in CATALOG.values()]
