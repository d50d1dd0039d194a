"""Generic fetch -> map pipeline driven by the entity catalog.

Every catalog entity goes through the same steps: build the request,
page through the connection, flatten each node with the entity's mapper.
Independent entities and per-object fetches run on a bounded thread pool;
the GraphQL client's RequestLimiter keeps the total request rate in check.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Hashable, Iterable, Optional, Sequence, TypeVar

from scripts.rsc_sync.catalog import EntitySpec, get_entity
from scripts.rsc_sync.compliance import build_compliance_records
from scripts.rsc_sync.config import FetchConfig
from scripts.rsc_sync.convert import format_utc
from scripts.rsc_sync.errors import FetchCancelled, MappingError, RscError
from scripts.rsc_sync.graphql_client import GraphQLClient
from scripts.rsc_sync.mappers import MapContext
from scripts.rsc_sync.models import ObjectRecord
from scripts.rsc_sync.paginator import PageResult, Paginator
from scripts.rsc_sync.rate_limit import RequestLimiter
from scripts.rsc_sync.session import Session

logger = logging.getLogger("rsc_sync.pipeline")

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")


@dataclass
class EntityResult:
    """Outcome of fetching and mapping one entity type."""

    entity: str
    records: list[Any] = field(default_factory=list)
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    pages: int = 0
    complete: bool = True
    error: Optional[RscError] = None

    def drop(self, predicate: Callable[[Any], bool]) -> int:
        """Remove records matching ``predicate``; they count as skipped."""
        kept = [r for r in self.records if not predicate(r)]
        dropped = len(self.records) - len(kept)
        self.records = kept
        self.skipped += dropped
        return dropped

    def merge(self, other: "EntityResult") -> None:
        self.records.extend(other.records)
        self.fetched += other.fetched
        self.skipped += other.skipped
        self.failed += other.failed
        self.pages += other.pages
        if not other.complete:
            self.complete = False
            self.error = self.error or other.error


def run_parallel(
    tasks: dict[K, Callable[[], R]],
    workers: int,
    cancel: Optional[threading.Event] = None,
) -> dict[K, R]:
    """Run independent callables on a bounded pool, keyed like ``tasks``.

    Tasks not yet started when ``cancel`` is set are not run.
    """
    if not tasks:
        return {}
    results: dict[K, R] = {}
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(tasks)))) as pool:
        futures = {}
        for key, task in tasks.items():
            futures[key] = pool.submit(_unless_cancelled, task, cancel)
        for key, future in futures.items():
            outcome = future.result()
            if outcome is not _SKIPPED:
                results[key] = outcome
    return results


_SKIPPED = object()


def _unless_cancelled(task: Callable[[], R], cancel: Optional[threading.Event]) -> Any:
    if cancel is not None and cancel.is_set():
        return _SKIPPED
    return task()


LOOKUP_ENTITIES = ("clusters", "sla_domains")


def needs_context(entities: Iterable[str]) -> bool:
    """True when any entity is a lookup or maps against the lookups."""
    return any(name in LOOKUP_ENTITIES or get_entity(name).needs_lookups for name in entities)


def time_window_variables(entity: str, since: Optional[datetime]) -> dict[str, Any]:
    """Server-side time filters for entities fetched over a window."""
    if since is None:
        return {}
    stamp = format_utc(since)
    if entity == "events":
        return {"filters": {"lastUpdatedTimeGt": stamp}}
    if entity == "audit_logs":
        return {"filters": {"timeGt": stamp}}
    return {}


class Pipeline:
    """Fetch-and-map front end over one GraphQL client."""

    def __init__(
        self,
        client: GraphQLClient,
        page_size: int = 500,
        max_pages: int = 1000,
        workers: int = 4,
    ) -> None:
        self.client = client
        self.paginator = Paginator(client, max_pages=max_pages)
        self.page_size = page_size
        self.workers = workers

    @classmethod
    def from_config(cls, session: Session, fetch: FetchConfig) -> "Pipeline":
        limiter = RequestLimiter(
            max_concurrent=fetch.max_concurrent_requests,
            rate_per_second=fetch.requests_per_second,
        )
        client = GraphQLClient(
            session,
            timeout=fetch.request_timeout,
            max_retries=fetch.max_retries,
            limiter=limiter,
        )
        return cls(client, page_size=fetch.page_size, max_pages=fetch.max_pages, workers=fetch.workers)

    @property
    def instance_id(self) -> str:
        return self.client.session.instance_id

    # ------------------------------------------------------------------
    # Single entity
    # ------------------------------------------------------------------

    def fetch_nodes(
        self,
        spec: EntitySpec,
        variables: Optional[dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> PageResult:
        request = spec.request(self.page_size, **(variables or {}))
        return self.paginator.fetch_all(request, spec.node_path, cancel=cancel, deadline=deadline)

    def map_nodes(self, spec: EntitySpec, nodes: Iterable[Any], ctx: MapContext) -> tuple[list[Any], int]:
        """Flatten nodes; MappingErrors are logged and the node skipped."""
        records: list[Any] = []
        failed = 0
        for node in nodes:
            try:
                mapped = spec.mapper(node, ctx)
            except MappingError as exc:
                failed += 1
                logger.warning(
                    "Skipping %s node %s: %s", spec.name, exc.natural_key, exc,
                    extra={"entity_type": spec.name},
                )
                continue
            if spec.multi:
                records.extend(mapped)
            else:
                records.append(mapped)
        return records, failed

    def fetch_entity(
        self,
        entity: str | EntitySpec,
        ctx: MapContext,
        variables: Optional[dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> EntityResult:
        spec = entity if isinstance(entity, EntitySpec) else get_entity(entity)
        if spec.derived or spec.mapper is None:
            raise ValueError(f"{spec.name} is derived and has no connection query")

        started = time.monotonic()
        page = self.fetch_nodes(spec, variables, cancel=cancel, deadline=deadline)
        records, failed = self.map_nodes(spec, page.nodes, ctx)
        result = EntityResult(
            entity=spec.name,
            records=records,
            fetched=len(page.nodes),
            failed=failed,
            pages=page.pages,
            complete=page.complete,
            error=page.error,
        )
        logger.info(
            "Fetched %s", spec.name,
            extra={
                "entity_type": spec.name,
                "records": len(records),
                "pages": page.pages,
                "failed": failed,
                "duration_s": round(time.monotonic() - started, 2),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Lookups and fan-out
    # ------------------------------------------------------------------

    def build_context(self, now: Optional[datetime] = None) -> tuple[MapContext, dict[str, EntityResult]]:
        """Fetch SLA domains and clusters once and index them by ID.

        The returned results can be written by the caller so the lookups
        are not fetched a second time.
        """
        base = MapContext(instance_id=self.instance_id, now=now or datetime.now(timezone.utc))
        lookups = run_parallel(
            {name: (lambda name=name: self.fetch_entity(name, base)) for name in LOOKUP_ENTITIES},
            self.workers,
        )
        ctx = MapContext(
            instance_id=base.instance_id,
            now=base.now,
            sla_domains={r.sla_domain_id: r for r in lookups["sla_domains"].records},
            clusters={r.cluster_id: r for r in lookups["clusters"].records},
        )
        return ctx, lookups

    def fetch_many(
        self,
        entities: Sequence[str],
        ctx: MapContext,
        variables: Optional[dict[str, dict[str, Any]]] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> dict[str, EntityResult]:
        """Fetch independent entities concurrently."""
        variables = variables or {}
        tasks = {
            name: (
                lambda name=name: self.fetch_entity(
                    name, ctx, variables.get(name), cancel=cancel, deadline=deadline
                )
            )
            for name in entities
        }
        return run_parallel(tasks, self.workers, cancel=cancel)

    def fetch_per_object(
        self,
        entity: str,
        object_ids: Sequence[str],
        ctx: MapContext,
        variable_name: str = "workloadId",
        variables: Optional[dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> dict[str, EntityResult]:
        """One connection fetch per object, on the worker pool.

        Objects whose fetch never started because of cancellation get an
        empty, incomplete result so callers can tell them apart.
        """
        spec = get_entity(entity)

        def task(object_id: str) -> EntityResult:
            merged = dict(variables or {})
            if variable_name == "objectFid":
                filters = dict(merged.get("filters") or {})
                filters["objectFid"] = [object_id]
                merged["filters"] = filters
            else:
                merged[variable_name] = object_id
            return self.fetch_entity(spec, ctx, merged, cancel=cancel, deadline=deadline)

        results = run_parallel(
            {oid: (lambda oid=oid: task(oid)) for oid in object_ids},
            self.workers,
            cancel=cancel,
        )
        for oid in object_ids:
            if oid not in results:
                results[oid] = EntityResult(
                    entity=spec.name,
                    complete=False,
                    error=FetchCancelled(f"{spec.name} for {oid} not started"),
                )
        return results

    def fetch_object_events(
        self,
        object_ids: Sequence[str],
        ctx: MapContext,
        since: Optional[datetime] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> EntityResult:
        """Event history for each object, merged into one result."""
        per_object = self.fetch_per_object(
            "events", object_ids, ctx,
            variable_name="objectFid",
            variables=time_window_variables("events", since),
            cancel=cancel, deadline=deadline,
        )
        merged = EntityResult(entity="events")
        for oid in object_ids:
            merged.merge(per_object[oid])
        return merged

    # ------------------------------------------------------------------
    # Compliance
    # ------------------------------------------------------------------

    def fetch_object_compliance(
        self,
        ctx: MapContext,
        anchor: datetime,
        days: int,
        objects: Optional[list[ObjectRecord]] = None,
        sample: Optional[int] = None,
        exclude_types: Sequence[str] = (),
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> tuple[EntityResult, EntityResult]:
        """Per-object daily compliance over the last ``days`` windows.

        Returns (object_compliance, object_compliance_days) results.
        """
        summary = EntityResult(entity="object_compliance")
        day_rows = EntityResult(entity="object_compliance_days")

        if objects is None:
            fetched = self.fetch_entity("objects", ctx, cancel=cancel, deadline=deadline)
            objects = fetched.records
            summary.failed += fetched.failed
            if not fetched.complete:
                summary.complete = False
                summary.error = fetched.error

        eligible = filter_objects(objects, exclude_types=exclude_types, sample=sample, compliance_only=True)
        summary.fetched = len(objects)
        summary.skipped = len(objects) - len(eligible)

        since = anchor - days * timedelta(days=1)
        snapshot_vars = {"timeRange": {"start": format_utc(since), "end": format_utc(ctx.now)}}
        per_object = self.fetch_per_object(
            "snapshots", [o.object_id for o in eligible], ctx,
            variables=snapshot_vars, cancel=cancel, deadline=deadline,
        )

        for obj in eligible:
            snaps = per_object[obj.object_id]
            summary.pages += snaps.pages
            summary.failed += snaps.failed
            if snaps.error is not None and not snaps.records and snaps.pages == 0:
                summary.failed += 1
                summary.complete = False
                summary.error = summary.error or snaps.error
                continue
            if not snaps.complete:
                summary.complete = False
                summary.error = summary.error or snaps.error
            record, days_for_object = build_compliance_records(
                obj,
                [s.date_utc for s in snaps.records],
                anchor,
                days,
                ctx.now,
                complete=snaps.complete,
            )
            summary.records.append(record)
            day_rows.records.extend(days_for_object)

        day_rows.fetched = len(day_rows.records)
        day_rows.complete = summary.complete
        day_rows.error = summary.error
        return summary, day_rows


def filter_objects(
    objects: Sequence[ObjectRecord],
    exclude_types: Sequence[str] = (),
    sample: Optional[int] = None,
    compliance_only: bool = False,
    seed: Optional[int] = None,
) -> list[ObjectRecord]:
    """Apply type exclusions, the compliance eligibility rule and sampling."""
    excluded = {t.lower() for t in exclude_types}
    selected = [
        o for o in objects
        if o.object_type.lower() not in excluded
        and (not compliance_only or o.report_on_compliance)
    ]
    if sample is not None and 0 <= sample < len(selected):
        selected = random.Random(seed).sample(selected, sample)
    return selected
