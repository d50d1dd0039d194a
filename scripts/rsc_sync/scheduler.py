"""APScheduler-based interval scheduling for entity group syncs."""

from __future__ import annotations

import logging
import time
from typing import Callable

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.rsc_sync.config import SyncConfig
from scripts.rsc_sync.db import Database
from scripts.rsc_sync.errors import RscError

logger = logging.getLogger("rsc_sync.scheduler")

BACKOFF_BASE_SECONDS = 30


def sync_group(
    group: str,
    config: SyncConfig,
    db: Database,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Run one entity group sync, retrying failed connects or writes."""
    from scripts.rsc_sync.cli import JOB_GROUPS, run_sync, sync_options

    max_retries = config.scheduler.max_retries
    options = sync_options(config, JOB_GROUPS[group])

    for attempt in range(max_retries + 1):
        try:
            report = run_sync(config, db, options)
        except RscError as exc:
            if attempt < max_retries:
                delay = BACKOFF_BASE_SECONDS * (2 ** attempt)
                logger.warning(
                    "Sync %s failed (attempt %d/%d), retrying in %ds: %s",
                    group, attempt + 1, max_retries, delay, exc,
                )
                sleep(delay)
                continue
            logger.error("Sync %s failed after %d retries: %s", group, max_retries, exc)
            return

        totals = report.totals()
        if report.ok:
            logger.info("Sync %s complete: %s", group, totals)
        else:
            failed = [e.entity for e in report.entities if e.status != "SUCCESS"]
            logger.warning("Sync %s finished with problems in %s: %s", group, failed, totals)
        return


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: SyncConfig, db: Database) -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone="UTC")
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    # Clusters, SLA domains, objects, tags, live mounts
    scheduler.add_job(
        sync_group,
        "interval",
        minutes=sched.inventory_interval_min,
        args=["inventory", config, db],
        id="inventory",
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
    )

    # Events and audit logs
    scheduler.add_job(
        sync_group,
        "interval",
        minutes=sched.events_interval_min,
        args=["events", config, db],
        id="events",
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
    )

    # Daily compliance runs when the window closes
    if sched.compliance_interval_hours == 24:
        trigger = {"trigger": "cron", "hour": config.compliance.window_hour, "minute": config.compliance.window_minute}
    else:
        trigger = {"trigger": "interval", "hours": sched.compliance_interval_hours}
    scheduler.add_job(
        sync_group,
        args=["compliance", config, db],
        id="compliance",
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
        **trigger,
    )

    return scheduler


def start_scheduler(config: SyncConfig, db: Database) -> None:
    """Start the blocking scheduler with interval jobs for each entity group."""
    scheduler = build_scheduler(config, db)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()
