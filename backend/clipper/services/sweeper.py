"""Removal of expired job records and the artifacts they reference."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from clipper.core.settings import AppPaths
from clipper.schemas.job import Job
from clipper.services.job_store import JobStore, now_ms
from clipper.services.metadata import metadata_cache_path
from clipper.services.validation import extract_video_id

logger = logging.getLogger(__name__)

SourceRemovedCallback = Callable[[str, bool], None]


def is_expired(job: Job, now: int) -> bool:
    return now > job.expires_at


def _remove_file(path: Path) -> bool:
    # Shared artifacts may already be gone via another job's sweep.
    if not path.is_file():
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def sweep_expired_jobs(
    store: JobStore,
    paths: AppPaths,
    now: Optional[int] = None,
    on_source_removed: Optional[SourceRemovedCallback] = None,
) -> list[str]:
    """Delete every expired record plus its referenced files.

    Files still referenced by a record that has not expired are kept; every
    clip of a video shares one download. Returns the ids of the removed
    records. Safe to run repeatedly and from several processes.
    """
    now = now_ms() if now is None else now
    removed: list[str] = []

    jobs = store.list_jobs()
    in_use = {
        (job.simulated, ref)
        for job in jobs
        if not is_expired(job, now)
        for ref in (job.fetched_artifact, job.clipped_artifact)
        if ref
    }

    # Active jobs may be reusing a cached download before recording its ref.
    active_sources = {
        (job.simulated, extract_video_id(job.source_url))
        for job in jobs
        if not job.is_terminal and not is_expired(job, now)
    }

    def _releasable(job: Job, ref: Optional[str]) -> bool:
        return bool(ref) and (job.simulated, ref) not in in_use

    def _source_releasable(job: Job) -> bool:
        video_id = extract_video_id(job.source_url)
        return _releasable(job, job.fetched_artifact) and (job.simulated, video_id) not in active_sources

    for job in jobs:
        if not is_expired(job, now):
            continue

        layout = paths.layout(job.simulated)
        store.delete_job(job.id)

        if _source_releasable(job) and _remove_file(layout.resolve(job.fetched_artifact)):
            logger.info("Deleted download: %s", job.fetched_artifact)
            video_id = extract_video_id(job.source_url)
            if video_id:
                metadata_cache_path(layout, video_id).unlink(missing_ok=True)
                if on_source_removed is not None:
                    on_source_removed(video_id, job.simulated)

        if _releasable(job, job.clipped_artifact) and job.clipped_artifact != job.fetched_artifact:
            if _remove_file(layout.resolve(job.clipped_artifact)):
                logger.info("Deleted clip: %s", job.clipped_artifact)

        logger.info("Cleaned up expired job: %s", job.id)
        removed.append(job.id)

    return removed
