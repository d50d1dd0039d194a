"""AWS Lambda handler for RSC reporting syncs.

Deployed as Lambda functions triggered by EventBridge rules.
Each invocation syncs one entity group.

Event format:
  {"job": "inventory"}
  {"job": "events"}
  {"job": "compliance"}
"""

from __future__ import annotations

import json
import logging
import os
import sys

# Ensure the project root is on sys.path for Lambda packaging
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", ".."))

from scripts.rsc_sync.cli import JOB_GROUPS, run_sync, sync_options
from scripts.rsc_sync.config import load_config
from scripts.rsc_sync.db import Database
from scripts.rsc_sync.errors import RscError
from scripts.rsc_sync.logging_config import configure_logging

logger = logging.getLogger("rsc_sync.lambda")


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    job = event.get("job", "")
    if job not in JOB_GROUPS:
        return {"statusCode": 400, "body": f"'job' must be one of {sorted(JOB_GROUPS)}"}

    logger.info("Lambda invoked for job=%s", job)

    config = load_config()
    db = Database(config.database)

    try:
        report = run_sync(config, db, sync_options(config, JOB_GROUPS[job]))
        entities = [
            {"entity": e.entity, "status": e.status, "fetched": e.fetched,
             "inserted": e.inserted, "updated": e.updated, "failed": e.failed,
             "relics": e.relics, "error": e.error}
            for e in report.entities
        ]
        logger.info("Sync complete for %s: %s", job, report.totals())
        return {
            "statusCode": 200 if report.ok else 207,
            "body": json.dumps({"job": job, "entities": entities}),
        }
    except (RscError, ValueError) as exc:
        logger.error("Sync failed for %s: %s", job, exc, exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"job": job, "error": str(exc)}),
        }
    finally:
        db.close()
