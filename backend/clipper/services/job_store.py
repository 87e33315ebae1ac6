"""File-backed persistence for job records.

One JSON file per job under ``jobs_root``. Every write replaces the whole
file atomically, so readers never observe a partially written record.
Read-modify-write helpers hold a per-id lock for the whole cycle.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import ValidationError

from clipper.schemas.job import Job

logger = logging.getLogger(__name__)

_JOB_ID_PATTERN = re.compile(r"^[\w-]+$")

JobMutator = Callable[[Job], None]


def now_ms() -> int:
    return int(time.time() * 1000)


class JobStore:
    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        # job id -> [lock, holders]; entries live only while someone holds or waits on them.
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def _path(self, job_id: str) -> Optional[Path]:
        if not _JOB_ID_PATTERN.match(job_id):
            return None
        return self.root / f"{job_id}.json"

    @contextmanager
    def _lock(self, job_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.get(job_id)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[job_id] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[job_id]

    def _read(self, path: Path) -> Optional[Job]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return Job.model_validate(payload)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, ValidationError):
            logger.exception("Unreadable job record: %s", path)
            return None

    def _write(self, job: Job) -> None:
        path = self._path(job.id)
        if path is None:
            raise ValueError(f"invalid job id: {job.id!r}")
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{job.id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(job.to_record(), f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_job(self, job_id: str) -> Optional[Job]:
        path = self._path(job_id)
        if path is None:
            return None
        return self._read(path)

    def list_jobs(self) -> list[Job]:
        jobs: list[Job] = []
        for path in sorted(self.root.glob("*.json")):
            job = self._read(path)
            if job is not None:
                jobs.append(job)
        return jobs

    def save_job(self, job: Job) -> Job:
        with self._lock(job.id):
            job.updated_at = now_ms()
            self._write(job)
            return job

    def create_job(self, job: Job) -> tuple[Job, bool]:
        """Write ``job`` unless a non-terminal record with its id exists.

        Returns the record now stored under the id and whether it was created.
        """
        with self._lock(job.id):
            existing = self.get_job(job.id)
            if existing is not None and not existing.is_terminal:
                return existing, False
            job.updated_at = now_ms()
            self._write(job)
            return job, True

    def update_job(self, job_id: str, mutate: JobMutator) -> Optional[Job]:
        """Apply ``mutate`` to the stored record; a missing record stays missing."""
        with self._lock(job_id):
            job = self.get_job(job_id)
            if job is None:
                return None
            mutate(job)
            job.updated_at = now_ms()
            self._write(job)
            return job

    def pop_job(self, job_id: str, mutate: Optional[JobMutator] = None) -> Optional[Job]:
        """Apply ``mutate`` and remove the record in one locked step."""
        with self._lock(job_id):
            job = self.get_job(job_id)
            if job is None:
                return None
            if mutate is not None:
                mutate(job)
                job.updated_at = now_ms()
            self._unlink(job_id)
            return job

    def delete_job(self, job_id: str) -> bool:
        with self._lock(job_id):
            return self._unlink(job_id)

    def _unlink(self, job_id: str) -> bool:
        path = self._path(job_id)
        if path is None or not path.exists():
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted job record: %s", job_id)
        return True
