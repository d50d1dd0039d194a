"""GCP Cloud Run Job entry point for RSC reporting syncs.

Deployed as Cloud Run Jobs triggered by Cloud Scheduler.
The RSC_SYNC_JOB env var selects the entity group.

Usage:
  RSC_SYNC_JOB=inventory python -m scripts.rsc_sync.entrypoints.gcp_cloudrun
  RSC_SYNC_JOB=events python -m scripts.rsc_sync.entrypoints.gcp_cloudrun
  RSC_SYNC_JOB=compliance python -m scripts.rsc_sync.entrypoints.gcp_cloudrun
"""

from __future__ import annotations

import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.rsc_sync.cli import JOB_GROUPS, print_report, run_sync, sync_options
from scripts.rsc_sync.config import load_config
from scripts.rsc_sync.db import Database
from scripts.rsc_sync.errors import RscError
from scripts.rsc_sync.logging_config import configure_logging

logger = logging.getLogger("rsc_sync.cloudrun")


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    job = os.environ.get("RSC_SYNC_JOB", "")
    if job not in JOB_GROUPS:
        logger.error("RSC_SYNC_JOB must be one of %s", sorted(JOB_GROUPS))
        sys.exit(1)

    logger.info("Cloud Run Job started for job=%s", job)

    config = load_config()
    db = Database(config.database)

    try:
        report = run_sync(config, db, sync_options(config, JOB_GROUPS[job]))
        print_report(report)
        logger.info("Sync complete for %s: %s", job, report.totals())
        if not report.ok:
            sys.exit(2)
    except (RscError, ValueError) as exc:
        logger.error("Sync failed for %s: %s", job, exc, exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
