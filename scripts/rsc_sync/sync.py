"""Write path: fetch entities concurrently, then upsert them one at a time.

Fetching runs on the pipeline's worker pool. Writes are serialized, one
transaction per entity, each wrapped in sync_runs tracking so a run
reports fetched / inserted / updated / skipped / failed / relic counts per
entity rather than a bare "done".
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from scripts.rsc_sync.catalog import DEFAULT_SYNC_ENTITIES, EntitySpec, get_entity
from scripts.rsc_sync.compliance import window_anchor
from scripts.rsc_sync.db import Database
from scripts.rsc_sync.errors import SinkError
from scripts.rsc_sync.mappers import MapContext
from scripts.rsc_sync.models import record_key
from scripts.rsc_sync.pipeline import EntityResult, Pipeline, needs_context, time_window_variables

logger = logging.getLogger("rsc_sync.sync")

STATUS_SUCCESS = "SUCCESS"
STATUS_PARTIAL = "PARTIAL"
STATUS_FAILED = "FAILED"

COMPLIANCE_ENTITIES = ("object_compliance", "object_compliance_days")


@dataclass(frozen=True)
class SyncOptions:
    entities: Sequence[str] = DEFAULT_SYNC_ENTITIES
    drop_existing: bool = False
    mark_relics: bool = True
    exclude_log_backups: bool = False
    event_hours: Optional[int] = 24
    sample: Optional[int] = None
    exclude_object_types: Sequence[str] = ()
    compliance_days: int = 7
    window_hour: int = 20
    window_minute: int = 0


@dataclass
class EntityReport:
    entity: str
    status: str = STATUS_SUCCESS
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    relics: int = 0
    error: Optional[str] = None
    run_id: Optional[str] = None


@dataclass
class SyncReport:
    entities: list[EntityReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(e.status == STATUS_SUCCESS for e in self.entities)

    def totals(self) -> dict[str, int]:
        keys = ("fetched", "inserted", "updated", "skipped", "failed", "relics")
        return {k: sum(getattr(e, k) for e in self.entities) for k in keys}


class SyncRunner:
    def __init__(
        self,
        pipeline: Pipeline,
        db: Database,
        options: SyncOptions = SyncOptions(),
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> None:
        self.pipeline = pipeline
        self.db = db
        self.options = options
        self.cancel = cancel
        self.deadline = deadline
        self.instance_id = pipeline.instance_id
        # Entities whose result was filtered client-side; absence there is not a relic signal
        self._filtered: set[str] = set()

    def run(self) -> SyncReport:
        requested = [get_entity(name).name for name in self.options.entities]
        results = self.fetch(requested)
        report = SyncReport()
        for name in requested:
            report.entities.append(self.write(get_entity(name), results[name]))
        return report

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(self, requested: Sequence[str]) -> dict[str, EntityResult]:
        opts = self.options
        for name in requested:
            if get_entity(name).per_object:
                raise ValueError(f"{name} is fetched per object and cannot be synced in bulk")

        now = datetime.now(timezone.utc)
        if needs_context(requested):
            ctx, lookups = self.pipeline.build_context(now)
        else:
            ctx, lookups = MapContext(instance_id=self.instance_id, now=now), {}
        results: dict[str, EntityResult] = {k: v for k, v in lookups.items() if k in requested}

        since = now - timedelta(hours=opts.event_hours) if opts.event_hours else None
        bulk = [name for name in requested if name not in results and not get_entity(name).derived]

        variables = {name: time_window_variables(name, since) for name in bulk}
        results.update(
            self.pipeline.fetch_many(bulk, ctx, variables, cancel=self.cancel, deadline=self.deadline)
        )
        for name in bulk:
            if name not in results:
                results[name] = EntityResult(entity=name, complete=False)

        if "objects" in results and opts.exclude_object_types:
            excluded = {t.lower() for t in opts.exclude_object_types}
            if results["objects"].drop(lambda r: r.object_type.lower() in excluded):
                self._filtered.add("objects")

        if "events" in results and opts.exclude_log_backups:
            results["events"].drop(lambda r: r.is_log_backup)

        if any(name in requested for name in COMPLIANCE_ENTITIES):
            anchor = window_anchor(now, opts.window_hour, opts.window_minute)
            objects = results.get("objects")
            summary, days = self.pipeline.fetch_object_compliance(
                ctx,
                anchor,
                opts.compliance_days,
                objects=objects.records if objects is not None and objects.complete else None,
                sample=opts.sample,
                exclude_types=opts.exclude_object_types,
                cancel=self.cancel,
                deadline=self.deadline,
            )
            if opts.sample is not None or opts.exclude_object_types:
                self._filtered.add("object_compliance")
            results["object_compliance"] = summary
            results["object_compliance_days"] = days

        return results

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, spec: EntitySpec, result: EntityResult) -> EntityReport:
        opts = self.options
        report = EntityReport(
            entity=spec.name,
            fetched=result.fetched,
            skipped=result.skipped,
            failed=result.failed,
        )
        scope = {"rsc_instance": self.instance_id}
        started = time.monotonic()
        run_id = self.db.record_run_start(
            instance_id=self.instance_id,
            entity_type=spec.name,
            metadata={"pages": result.pages, "drop_existing": opts.drop_existing},
        )
        report.run_id = run_id

        try:
            written = self.db.upsert(
                spec.table,
                spec.natural_key,
                result.records,
                drop_existing=opts.drop_existing,
                scope=scope,
            )
            report.inserted = written.inserted
            report.updated = written.updated

            if self._should_mark_relics(spec, result):
                present = [record_key(r, list(spec.natural_key)) for r in result.records]
                report.relics = self.db.mark_missing_as_relic(
                    spec.table, spec.natural_key, present, scope=scope,
                )
        except SinkError as exc:
            report.status = STATUS_FAILED
            report.error = str(exc)
            self.db.record_run_end(
                run_id=run_id,
                status=STATUS_FAILED,
                fetched=report.fetched,
                skipped=report.skipped,
                failed=report.failed,
                error_message=str(exc)[:1000],
                error_detail={"traceback": traceback.format_exc()},
            )
            logger.error(
                "Write failed for %s: %s", spec.name, exc,
                extra={"entity_type": spec.name, "run_id": run_id},
            )
            return report

        if result.error is not None:
            report.error = str(result.error)
            report.status = STATUS_FAILED if not result.records and not result.fetched else STATUS_PARTIAL
        elif not result.complete:
            report.status = STATUS_PARTIAL

        self.db.record_run_end(
            run_id=run_id,
            status=report.status,
            fetched=report.fetched,
            inserted=report.inserted,
            updated=report.updated,
            skipped=report.skipped,
            failed=report.failed,
            relics=report.relics,
            error_message=report.error[:1000] if report.error else None,
        )
        log = logger.info if report.status == STATUS_SUCCESS else logger.warning
        log(
            "Sync %s for %s", report.status.lower(), spec.name,
            extra={
                "entity_type": spec.name,
                "records": report.fetched,
                "inserted": report.inserted,
                "updated": report.updated,
                "skipped": report.skipped,
                "failed": report.failed,
                "run_id": run_id,
                "duration_s": round(time.monotonic() - started, 2),
            },
        )
        return report

    def _should_mark_relics(self, spec: EntitySpec, result: EntityResult) -> bool:
        return (
            self.options.mark_relics
            and spec.mark_relics
            and not self.options.drop_existing
            and result.complete
            and result.error is None
            and spec.name not in self._filtered
        )
