"""CLI entry point: connect, fetch, sync, compliance, live mounts, status."""

from __future__ import annotations

import argparse
import csv
import getpass
import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Generator, Optional, Sequence

from scripts.rsc_sync.catalog import CATALOG, DEFAULT_SYNC_ENTITIES, get_entity
from scripts.rsc_sync.compliance import window_anchor
from scripts.rsc_sync.config import RscConfig, SyncConfig, load_config
from scripts.rsc_sync.convert import format_utc
from scripts.rsc_sync.db import Database
from scripts.rsc_sync.errors import RscError
from scripts.rsc_sync.logging_config import configure_logging
from scripts.rsc_sync.mappers import MapContext
from scripts.rsc_sync.models import record_columns, record_dict
from scripts.rsc_sync.pipeline import EntityResult, Pipeline, needs_context, time_window_variables
from scripts.rsc_sync.schema import all_ddl
from scripts.rsc_sync.session import Session, connect, disconnect
from scripts.rsc_sync.sync import SyncOptions, SyncReport, SyncRunner

logger = logging.getLogger("rsc_sync.cli")

# Entity groups run together by the scheduler and the cloud entry points
JOB_GROUPS: dict[str, tuple[str, ...]] = {
    "inventory": ("clusters", "sla_domains", "objects", "tag_assignments", "live_mounts"),
    "events": ("events", "audit_logs"),
    "compliance": ("object_compliance", "object_compliance_days"),
    "all": DEFAULT_SYNC_ENTITIES,
}


@contextmanager
def open_session(config: SyncConfig, rsc: Optional[RscConfig] = None) -> Generator[Session, None, None]:
    """Connect with the configured credentials and disconnect on exit."""
    rsc = rsc or config.rsc
    if rsc is None:
        raise ValueError(
            "RSC credentials not configured: set RSC_SERVICE_ACCOUNT_FILE "
            "or RSC_CLIENT_ID / RSC_CLIENT_SECRET / RSC_ACCESS_TOKEN_URI"
        )
    session = connect(rsc, timeout=config.fetch.request_timeout, verify_tls=config.fetch.verify_tls)
    try:
        yield session
    finally:
        disconnect(session)


def sync_options(config: SyncConfig, entities: Sequence[str], **overrides: Any) -> SyncOptions:
    values: dict[str, Any] = {
        "entities": tuple(entities),
        "event_hours": config.event_hours,
        "compliance_days": config.compliance.days,
        "window_hour": config.compliance.window_hour,
        "window_minute": config.compliance.window_minute,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return SyncOptions(**values)


def run_sync(config: SyncConfig, db: Database, options: SyncOptions) -> SyncReport:
    """Connect, run one sync over ``options.entities`` and disconnect."""
    with open_session(config) as session:
        pipeline = Pipeline.from_config(session, config.fetch)
        return SyncRunner(pipeline, db, options).run()


def print_report(report: SyncReport) -> None:
    fmt = "{:<24}  {:<8}  {:>8}  {:>8}  {:>8}  {:>8}  {:>7}  {:>7}  {}"
    print(fmt.format(
        "ENTITY", "STATUS", "FETCHED", "INSERTED", "UPDATED", "SKIPPED", "FAILED", "RELICS", "ERROR",
    ))
    print("-" * 120)
    for e in report.entities:
        print(fmt.format(
            e.entity, e.status, e.fetched, e.inserted, e.updated,
            e.skipped, e.failed, e.relics, (e.error or "")[:40],
        ))


def _jsonable(record: Any) -> dict[str, Any]:
    return {
        k: format_utc(v) if isinstance(v, datetime) else v
        for k, v in record_dict(record).items()
    }


def write_records(records: Sequence[Any], record_type: type, fmt: str, out=None) -> None:
    out = out or sys.stdout
    rows = [_jsonable(r) for r in records]
    if fmt == "csv":
        writer = csv.DictWriter(out, fieldnames=record_columns(record_type))
        writer.writeheader()
        writer.writerows(rows)
    else:
        json.dump(rows, out, indent=2, default=str)
        out.write("\n")


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def cmd_connect(args: argparse.Namespace) -> None:
    """Verify credentials and print the instance that answered."""
    config = load_config(args.credentials)
    rsc = None
    if args.prompt:
        rsc = RscConfig(
            client_id=input("Client ID: ").strip(),
            client_secret=getpass.getpass("Client secret: "),
            access_token_uri=input("Access token URI: ").strip(),
        )
    with open_session(config, rsc) as session:
        print(f"Connected to {session.instance_id} ({session.graphql_url})")


def cmd_fetch(args: argparse.Namespace) -> None:
    """Read path: fetch one entity and print it as JSON or CSV."""
    config = load_config(args.credentials)
    spec = get_entity(args.entity)
    now = datetime.now(timezone.utc)

    with open_session(config) as session:
        pipeline = Pipeline.from_config(session, config.fetch)
        if needs_context([spec.name]):
            ctx, lookups = pipeline.build_context(now)
        else:
            ctx, lookups = MapContext(instance_id=session.instance_id, now=now), {}
        since = now - timedelta(hours=args.hours) if args.hours else None

        if spec.name in lookups:
            result = lookups[spec.name]
        elif spec.derived:
            summary, days = pipeline.fetch_object_compliance(
                ctx,
                window_anchor(now, config.compliance.window_hour, config.compliance.window_minute),
                config.compliance.days,
            )
            result = summary if spec.name == "object_compliance" else days
        elif spec.per_object:
            if not args.object_id:
                raise ValueError(f"{spec.name} needs --object-id")
            per_object = pipeline.fetch_per_object(spec.name, args.object_id, ctx)
            result = EntityResult(entity=spec.name)
            for oid in args.object_id:
                result.merge(per_object[oid])
        elif spec.name == "events" and args.object_id:
            result = pipeline.fetch_object_events(args.object_id, ctx, since=since)
        else:
            result = pipeline.fetch_entity(spec, ctx, time_window_variables(spec.name, since))

    records = result.records[: args.limit] if args.limit else result.records
    write_records(records, spec.record_type, args.format)
    _warn_incomplete(result)


def _warn_incomplete(result: EntityResult) -> None:
    if not result.complete:
        logger.warning(
            "%s results are incomplete: %s", result.entity, result.error,
            extra={"entity_type": result.entity, "records": len(result.records)},
        )


def cmd_sync(args: argparse.Namespace) -> None:
    """Write path: fetch entities and upsert them into PostgreSQL."""
    config = load_config(args.credentials)
    db = Database(config.database)
    try:
        options = sync_options(
            config,
            args.entity or DEFAULT_SYNC_ENTITIES,
            drop_existing=args.drop_existing,
            mark_relics=not args.no_relics,
            exclude_log_backups=args.exclude_log_backups,
            event_hours=args.hours,
            sample=args.sample,
            exclude_object_types=tuple(args.exclude_object_type or ()),
        )
        report = run_sync(config, db, options)
        print_report(report)
        if not report.ok:
            sys.exit(2)
    finally:
        db.close()


def cmd_compliance(args: argparse.Namespace) -> None:
    """Per-object daily compliance, printed or written to the database."""
    config = load_config(args.credentials)
    overrides = {
        "compliance_days": args.days,
        "window_hour": args.window_hour,
        "window_minute": args.window_minute,
        "sample": args.sample,
        "exclude_object_types": tuple(args.exclude_object_type or ()),
    }

    if args.write:
        db = Database(config.database)
        try:
            report = run_sync(config, db, sync_options(config, JOB_GROUPS["compliance"], **overrides))
            print_report(report)
            if not report.ok:
                sys.exit(2)
        finally:
            db.close()
        return

    options = sync_options(config, JOB_GROUPS["compliance"], **overrides)
    now = datetime.now(timezone.utc)
    with open_session(config) as session:
        pipeline = Pipeline.from_config(session, config.fetch)
        ctx, _ = pipeline.build_context(now)
        summary, _ = pipeline.fetch_object_compliance(
            ctx,
            window_anchor(now, options.window_hour, options.window_minute),
            options.compliance_days,
            sample=options.sample,
            exclude_types=options.exclude_object_types,
        )

    fmt = "{:<40}  {:<24}  {:>6}  {:>7}  {:>6}  {:>8}  {}"
    print(fmt.format("OBJECT", "TYPE", "DAYS", "STRIKES", "PCT", "LAST 24H", "LAST SNAPSHOT"))
    print("-" * 120)
    for r in sorted(summary.records, key=lambda r: (-r.strikes, r.object)):
        print(fmt.format(
            r.object[:40], r.object_type[:24], r.days_backed_up, r.strikes,
            r.compliance_pct, "yes" if r.last_24h_backup else "no",
            format_utc(r.last_snapshot_utc) or "",
        ))
    _warn_incomplete(summary)


def cmd_mount(args: argparse.Namespace) -> None:
    from scripts.rsc_sync.live_mount import mount

    config = load_config(args.credentials)
    with open_session(config) as session:
        pipeline = Pipeline.from_config(session, config.fetch)
        result = mount(
            pipeline.client,
            object_id=args.object_id,
            snapshot_id=args.snapshot_id,
            vm_name=args.vm_name,
            host_id=args.host_id,
            power_on=args.power_on,
        )
    print(f"Live mount request {result.id}: {result.status}")


def cmd_unmount(args: argparse.Namespace) -> None:
    from scripts.rsc_sync.live_mount import unmount

    config = load_config(args.credentials)
    with open_session(config) as session:
        pipeline = Pipeline.from_config(session, config.fetch)
        result = unmount(pipeline.client, args.mount_id, force=args.force)
    print(f"Unmount request {result.id}: {result.status}")


def cmd_init_db(args: argparse.Namespace) -> None:
    """Create the reporting tables and sync_runs if missing."""
    config = load_config(args.credentials)
    db = Database(config.database)
    try:
        statements = all_ddl()
        db.ensure_schema(statements)
        logger.info("Schema ready (%d statements)", len(statements))
    finally:
        db.close()


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from scripts.rsc_sync.scheduler import start_scheduler

    config = load_config(args.credentials)
    db = Database(config.database)
    try:
        start_scheduler(config, db)
    finally:
        db.close()


def cmd_status(args: argparse.Namespace) -> None:
    """Show recent sync runs."""
    config = load_config(args.credentials)
    db = Database(config.database)

    try:
        runs = db.get_recent_runs(
            instance_id=config.rsc.instance_id if config.rsc else None,
            entity_type=args.entity,
            limit=args.limit,
        )
        if not runs:
            print("No sync runs found.")
            return

        fmt = "{:<36}  {:<24}  {:<8}  {:<20}  {:<20}  {:>8}  {:>8}  {:>8}  {}"
        print(fmt.format(
            "RUN ID", "ENTITY", "STATUS", "STARTED", "FINISHED",
            "FETCHED", "INSERTED", "UPDATED", "ERROR",
        ))
        print("-" * 160)
        for r in runs:
            started = str(r["started_at"])[:19] if r["started_at"] else ""
            finished = str(r["finished_at"])[:19] if r["finished_at"] else ""
            error = (r.get("error_message") or "")[:40]
            print(fmt.format(
                str(r["id"])[:36],
                r["entity_type"],
                r["status"],
                started,
                finished,
                r.get("records_fetched", 0),
                r.get("records_inserted", 0),
                r.get("records_updated", 0),
                error,
            ))
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rsc-sync",
        description="Rubrik Security Cloud reporting sync",
    )
    parser.add_argument(
        "--credentials", "-c",
        help="RSC service account JSON file (default: $RSC_SERVICE_ACCOUNT_FILE)",
    )
    parser.add_argument("--log-level", default="INFO", help="Log level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    entity_names = sorted(CATALOG)

    connect_parser = subparsers.add_parser("connect", help="Verify RSC credentials")
    connect_parser.add_argument("--prompt", action="store_true", help="Prompt for client credentials")
    connect_parser.set_defaults(func=cmd_connect)

    fetch_parser = subparsers.add_parser("fetch", help="Fetch one entity and print it")
    fetch_parser.add_argument("entity", choices=entity_names)
    fetch_parser.add_argument("--format", "-f", choices=["json", "csv"], default="json")
    fetch_parser.add_argument("--limit", "-l", type=int, help="Print at most N records")
    fetch_parser.add_argument("--hours", type=int, help="Only events / audit logs from the last H hours")
    fetch_parser.add_argument(
        "--object-id", action="append",
        help="Object to fetch snapshots or event history for (repeatable)",
    )
    fetch_parser.set_defaults(func=cmd_fetch)

    sync_parser = subparsers.add_parser("sync", help="Fetch entities and upsert them")
    sync_parser.add_argument(
        "--entity", "-e", action="append", choices=entity_names,
        help="Entity to sync (repeatable, default: all inventory and event entities)",
    )
    sync_parser.add_argument("--drop-existing", action="store_true", help="Delete this instance's rows first")
    sync_parser.add_argument("--exclude-log-backups", action="store_true", help="Skip log backup events")
    sync_parser.add_argument("--hours", type=int, help="Event / audit log window in hours")
    sync_parser.add_argument("--sample", type=int, help="Compliance: sample N objects")
    sync_parser.add_argument(
        "--exclude-object-type", action="append",
        help="Object type to leave out (repeatable)",
    )
    sync_parser.add_argument("--no-relics", action="store_true", help="Do not flag missing rows as relics")
    sync_parser.set_defaults(func=cmd_sync)

    compliance_parser = subparsers.add_parser("compliance", help="Daily backup compliance per object")
    compliance_parser.add_argument("--days", type=int, help="Number of daily windows (default: 7)")
    compliance_parser.add_argument("--window-hour", type=int, choices=range(24), metavar="H")
    compliance_parser.add_argument("--window-minute", type=int, choices=range(60), metavar="M")
    compliance_parser.add_argument("--sample", type=int, help="Sample N objects")
    compliance_parser.add_argument("--exclude-object-type", action="append")
    compliance_parser.add_argument("--write", action="store_true", help="Upsert results instead of printing")
    compliance_parser.set_defaults(func=cmd_compliance)

    mount_parser = subparsers.add_parser("mount", help="Live mount a vSphere VM snapshot")
    mount_parser.add_argument("snapshot_id")
    mount_parser.add_argument("--object-id", required=True, help="ID of the VM the snapshot belongs to")
    mount_parser.add_argument("--vm-name", help="Name for the mounted VM")
    mount_parser.add_argument("--host-id", help="ESXi host to mount on")
    mount_parser.add_argument("--power-on", action="store_true")
    mount_parser.set_defaults(func=cmd_mount)

    unmount_parser = subparsers.add_parser("unmount", help="Remove a vSphere live mount")
    unmount_parser.add_argument("mount_id")
    unmount_parser.add_argument("--force", action="store_true")
    unmount_parser.set_defaults(func=cmd_unmount)

    init_parser = subparsers.add_parser("init-db", help="Create reporting tables")
    init_parser.set_defaults(func=cmd_init_db)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    status_parser = subparsers.add_parser("status", help="Show recent sync runs")
    status_parser.add_argument("--entity", "-e", choices=entity_names, help="Filter by entity")
    status_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Number of runs to show (default: 10)",
    )
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        args.func(args)
    except (RscError, ValueError, KeyError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
