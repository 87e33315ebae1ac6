"""Huey periodic tasks for artifact housekeeping.

Run with ``huey_consumer clipper.workers.queue.huey``. Sweeping is keyed on
record files only, so the consumer can run beside the API process.
"""

from __future__ import annotations

import logging

from huey import SqliteHuey, crontab

from clipper.core.settings import PATHS
from clipper.services.config_store import load_config
from clipper.services.job_store import JobStore
from clipper.services.sweeper import sweep_expired_jobs

logger = logging.getLogger(__name__)

huey = SqliteHuey("clipper", filename=str(PATHS.queue_path))

SWEEP_INTERVAL_MINUTES = load_config().retention.sweep_interval_minutes


@huey.periodic_task(crontab(minute=f"*/{SWEEP_INTERVAL_MINUTES}"), retries=0)
def sweep_expired_task() -> list[str]:
    removed = sweep_expired_jobs(JobStore(PATHS.jobs_root), PATHS)
    if removed:
        logger.info("Expiry sweep removed %d job(s)", len(removed))
    return removed
