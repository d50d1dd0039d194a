"""Daily backup-window compliance.

A snapshot taken at 07:00 does not prove that the calendar day was
covered: backups are expected around a fixed time each evening. Coverage
is therefore judged against 24-hour windows anchored at a configurable
hour:minute UTC (default 20:00) rather than at midnight.

Day k covers the half-open interval

    [anchor - (k + 1) days, anchor - k days)

so window starts are inclusive, window ends exclusive, and a snapshot
counts towards at most one day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from scripts.rsc_sync.convert import hours_since
from scripts.rsc_sync.models import (
    ObjectComplianceDayRecord,
    ObjectComplianceRecord,
    ObjectRecord,
)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DayCoverage:
    day: int
    start: datetime
    end: datetime
    snapshot: Optional[datetime] = None

    @property
    def found(self) -> bool:
        return self.snapshot is not None


@dataclass(frozen=True)
class ComplianceSummary:
    days: int
    backed_up: int
    strikes: int
    last_24h_backup: bool
    last_24h_strike: bool
    latest_snapshot: Optional[datetime]
    hours_since: Optional[float]

    @property
    def compliance_pct(self) -> float:
        if not self.days:
            return 0.0
        return round(100.0 * self.backed_up / self.days, 1)


def window_anchor(now: datetime, hour: int = 20, minute: int = 0) -> datetime:
    """Most recent hour:minute UTC at or before ``now``."""
    now = now.astimezone(timezone.utc)
    anchor = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if anchor > now:
        anchor -= ONE_DAY
    return anchor


def day_windows(anchor: datetime, days: int) -> list[tuple[datetime, datetime]]:
    if days < 1:
        raise ValueError("days must be at least 1")
    return [(anchor - (k + 1) * ONE_DAY, anchor - k * ONE_DAY) for k in range(days)]


def daily_coverage(
    snapshot_times: Iterable[Optional[datetime]],
    anchor: datetime,
    days: int,
) -> list[DayCoverage]:
    """Per-day coverage, keeping the most recent snapshot in each window."""
    windows = day_windows(anchor, days)
    chosen: list[Optional[datetime]] = [None] * days
    for taken in snapshot_times:
        if taken is None:
            continue
        for k, (start, end) in enumerate(windows):
            if start <= taken < end:
                if chosen[k] is None or taken > chosen[k]:
                    chosen[k] = taken
                break
    return [
        DayCoverage(day=k, start=start, end=end, snapshot=chosen[k])
        for k, (start, end) in enumerate(windows)
    ]


def summarize(
    coverage: list[DayCoverage],
    snapshot_times: Iterable[Optional[datetime]],
    now: datetime,
) -> ComplianceSummary:
    times = [t for t in snapshot_times if t is not None]
    latest = max(times) if times else None
    recent = any(now - ONE_DAY < t <= now for t in times)
    backed_up = sum(1 for day in coverage if day.found)
    return ComplianceSummary(
        days=len(coverage),
        backed_up=backed_up,
        strikes=len(coverage) - backed_up,
        last_24h_backup=recent,
        last_24h_strike=not recent,
        latest_snapshot=latest,
        hours_since=hours_since(latest, now),
    )


def build_compliance_records(
    obj: ObjectRecord,
    snapshot_times: list[Optional[datetime]],
    anchor: datetime,
    days: int,
    now: datetime,
    complete: bool = True,
) -> tuple[ObjectComplianceRecord, list[ObjectComplianceDayRecord]]:
    """Object summary row plus one row per reported day."""
    coverage = daily_coverage(snapshot_times, anchor, days)
    summary = summarize(coverage, snapshot_times, now)

    # The object's own lastSnapshot may predate the fetched window
    latest = summary.latest_snapshot
    if obj.last_snapshot_utc is not None and (latest is None or obj.last_snapshot_utc > latest):
        latest = obj.last_snapshot_utc

    record = ObjectComplianceRecord(
        rsc_instance=obj.rsc_instance,
        object_id=obj.object_id,
        object=obj.object,
        object_type=obj.object_type,
        location=obj.location,
        sla_domain=obj.sla_domain,
        sla_domain_id=obj.sla_domain_id,
        cluster=obj.cluster,
        cluster_id=obj.cluster_id,
        window_start_utc=anchor,
        days_reported=summary.days,
        days_backed_up=summary.backed_up,
        strikes=summary.strikes,
        compliance_pct=summary.compliance_pct,
        last_24h_backup=summary.last_24h_backup,
        last_24h_strike=summary.last_24h_strike,
        last_snapshot_utc=latest,
        hours_since=hours_since(latest, now),
        complete=complete,
        url=obj.url,
    )
    day_rows = [
        ObjectComplianceDayRecord(
            rsc_instance=obj.rsc_instance,
            object_id=obj.object_id,
            window_start_utc=day.start,
            window_end_utc=day.end,
            day=day.day,
            backed_up=day.found,
            snapshot_utc=day.snapshot,
        )
        for day in coverage
    ]
    return record, day_rows
