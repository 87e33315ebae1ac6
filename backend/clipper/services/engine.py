"""Job engine: identity, lifecycle and the download -> clip pipeline.

Each accepted job runs as its own asyncio task. The engine is the only
writer of job records apart from cancellation, and every pipeline write is
made on behalf of a run token: once a job is cancelled or superseded, late
progress updates from its still-running tools are dropped instead of
resurrecting the record.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional

from clipper.core.constants import (
    CANCELLED_MESSAGE,
    DOWNLOAD_PROGRESS_MAX,
    PROGRESS_DONE,
    STATUS_ORDER,
    TRANSITIONS,
    JobStatus,
)
from clipper.core.errors import ArtifactMissing, ClipperError, DependencyMissing, InvalidTransition, JobNotFound
from clipper.core.settings import AppPaths, ArtifactLayout
from clipper.schemas.config import AppConfig
from clipper.schemas.job import ClipRequest, Job
from clipper.schemas.metadata import VideoMetadata
from clipper.services.fetcher import FetchOrchestrator
from clipper.services.job_store import JobStore, now_ms
from clipper.services.metadata import MetadataCache
from clipper.services.process import ProcessRunner
from clipper.services.simulated import SimulatedRunner
from clipper.services.sweeper import sweep_expired_jobs
from clipper.services.transcoder import TranscodeOrchestrator, clip_stem
from clipper.services.validation import extract_video_id, time_to_seconds

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Job interrupted by service restart"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def make_job_id(url: str, start: str, end: str) -> str:
    video_id = extract_video_id(url)
    if not video_id:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
        return f"job_{now_ms()}_{suffix}"
    return clip_stem(video_id, start, end)


def transition(job: Job, target: JobStatus) -> None:
    if target not in TRANSITIONS[job.status]:
        raise InvalidTransition(f"Cannot move job from {job.status.value} to {target.value}")
    job.status = target


@dataclass
class Toolchain:
    runner: ProcessRunner
    layout: ArtifactLayout
    fetcher: FetchOrchestrator
    transcoder: TranscodeOrchestrator
    metadata: MetadataCache


class _Run:
    """Write token for one pipeline execution of a job id."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.stale = False
        self.cleanup: Optional[asyncio.TimerHandle] = None

    def cancel_cleanup(self) -> None:
        if self.cleanup is not None:
            self.cleanup.cancel()
            self.cleanup = None


class _Superseded(Exception):
    """The run no longer owns its job record."""


class JobEngine:
    def __init__(
        self,
        store: JobStore,
        paths: AppPaths,
        config: AppConfig,
        runner: Optional[ProcessRunner] = None,
        simulated_runner: Optional[ProcessRunner] = None,
        metadata_cache: Optional[MetadataCache] = None,
    ) -> None:
        self.store = store
        self.paths = paths
        self.config = config
        self._toolchains = {
            False: self._build_toolchain(runner or ProcessRunner(), paths.artifacts, metadata_cache),
            True: self._build_toolchain(simulated_runner or SimulatedRunner(), paths.simulated_artifacts, None),
        }
        self._runs: dict[str, _Run] = {}
        self._tasks: set[asyncio.Task] = set()
        limit = config.pipeline.max_parallel_jobs
        self._slots = asyncio.Semaphore(limit) if limit > 0 else None

    def _build_toolchain(
        self,
        runner: ProcessRunner,
        layout: ArtifactLayout,
        metadata_cache: Optional[MetadataCache],
    ) -> Toolchain:
        layout.ensure()
        if metadata_cache is None:
            metadata_cache = MetadataCache(
                runner,
                layout,
                self.config.tools,
                max_entries=self.config.pipeline.metadata_memo_size,
                ttl_s=self.config.pipeline.metadata_memo_ttl_s,
            )
        return Toolchain(
            runner=runner,
            layout=layout,
            fetcher=FetchOrchestrator(runner, layout, self.config.tools),
            transcoder=TranscodeOrchestrator(runner, layout, self.config.tools, self.config.transcode),
            metadata=metadata_cache,
        )

    def toolchain(self, simulated: bool = False) -> Toolchain:
        return self._toolchains[bool(simulated)]

    # Query surface

    async def submit(self, request: ClipRequest) -> tuple[Job, bool]:
        """Create (or reuse) the job for ``request`` and start its pipeline.

        Returns ``(job, created)``. Returns as soon as the record is on disk;
        pipeline failures are only visible by polling the job.

        The metadata snapshot is looked up before the record is written, so a
        slow ``yt-dlp --dump-json`` (cache miss) delays the return. Lookup
        failures never block creation; the snapshot is then left empty.
        """
        job_id = make_job_id(request.url, request.start, request.end)
        existing = self.store.get_job(job_id)
        if existing is not None and not existing.is_terminal:
            logger.info("Job %s already %s, reusing it", job_id, existing.status.value)
            return existing, False

        metadata = await self.toolchain(request.simulated).metadata.fetch(request.url)

        created_at = now_ms()
        job = Job(
            id=job_id,
            source_url=request.url,
            start_time=request.start,
            end_time=request.end,
            format_hint=request.format_hint,
            metadata_snapshot=metadata,
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + self.config.retention.expiry_hours * 3600 * 1000,
            simulated=request.simulated,
        )
        stored, created = self.store.create_job(job)
        if not created:
            return stored, False

        previous = self._runs.pop(job_id, None)
        if previous is not None:
            previous.stale = True
            previous.cancel_cleanup()

        run = _Run(job_id)
        self._runs[job_id] = run
        task = asyncio.create_task(self._run_pipeline(run), name=f"clip-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Job %s created", job_id)
        return stored, True

    def get_status(self, job_id: str) -> Job:
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list_jobs(self) -> list[Job]:
        jobs = self.store.list_jobs()
        jobs.sort(key=lambda job: (STATUS_ORDER[job.status], -job.created_at))
        return jobs

    def cancel(self, job_id: str) -> Job:
        def _mark_cancelled(job: Job) -> None:
            if job.is_terminal:
                raise InvalidTransition(f"Cannot cancel job with status: {job.status.value}")
            transition(job, JobStatus.FAILED)
            job.error_message = CANCELLED_MESSAGE

        job = self.store.pop_job(job_id, _mark_cancelled)
        if job is None:
            raise JobNotFound(job_id)

        run = self._runs.pop(job_id, None)
        if run is not None:
            run.stale = True
            run.cancel_cleanup()
        logger.info("Job %s cancelled", job_id)
        return job

    async def get_metadata(self, url: str, simulated: bool = False) -> Optional[VideoMetadata]:
        return await self.toolchain(simulated).metadata.fetch(url)

    async def check_dependencies(self, simulated: bool = False) -> dict[str, bool]:
        runner = self.toolchain(simulated).runner
        tools = self.config.tools
        yt_dlp, ffmpeg = await asyncio.gather(
            runner.available(tools.yt_dlp_bin, "--version"),
            runner.available(tools.ffmpeg_bin, "-version"),
        )
        return {"yt_dlp": yt_dlp, "ffmpeg": ffmpeg}

    # Housekeeping

    def sweep_expired(self, now: Optional[int] = None) -> list[str]:
        removed = sweep_expired_jobs(self.store, self.paths, now=now, on_source_removed=self._forget_metadata)
        for job_id in removed:
            run = self._runs.pop(job_id, None)
            if run is not None:
                run.stale = True
                run.cancel_cleanup()
        return removed

    def _forget_metadata(self, video_id: str, simulated: bool) -> None:
        self.toolchain(simulated).metadata.invalidate(video_id)

    def fail_interrupted_jobs(self) -> list[str]:
        """Fail records left active by a previous process; nothing drives them now."""
        failed: list[str] = []
        for job in self.store.list_jobs():
            if job.is_terminal or job.id in self._runs:
                continue
            run = _Run(job.id)
            self._runs[job.id] = run
            try:
                self._write(run, lambda j: self._mark_failed(j, INTERRUPTED_MESSAGE))
            except _Superseded:
                self._runs.pop(job.id, None)
                continue
            self._schedule_cleanup(run, self.config.retention.failed_cleanup_delay_s)
            failed.append(job.id)
        if failed:
            logger.warning("Marked %d interrupted job(s) as failed", len(failed))
        return failed

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for run in self._runs.values():
            run.cancel_cleanup()
        for task in list(self._tasks):
            task.cancel()
        await self.join()

    # Pipeline

    def _write(self, run: _Run, mutate: Callable[[Job], None]) -> Job:
        if run.stale or self._runs.get(run.job_id) is not run:
            run.stale = True
            raise _Superseded(run.job_id)
        job = self.store.update_job(run.job_id, mutate)
        if job is None:
            # Record removed outside the engine, e.g. by the periodic sweep.
            run.stale = True
            run.cancel_cleanup()
            if self._runs.get(run.job_id) is run:
                del self._runs[run.job_id]
            raise _Superseded(run.job_id)
        return job

    def _progress_callback(self, run: _Run) -> Callable[[int], None]:
        def _raise_progress(job: Job, value: int) -> None:
            if not job.is_terminal:
                job.progress = max(job.progress, min(value, PROGRESS_DONE))

        def _on_progress(value: int) -> None:
            if run.stale:
                return
            try:
                self._write(run, lambda job: _raise_progress(job, value))
            except _Superseded:
                logger.info("Job %s no longer tracked, ignoring progress", run.job_id)

        return _on_progress

    @staticmethod
    def _advance(job: Job, target: JobStatus, progress: Optional[int] = None, **fields: object) -> None:
        transition(job, target)
        if progress is not None:
            job.progress = max(job.progress, progress)
        for name, value in fields.items():
            setattr(job, name, value)

    @staticmethod
    def _mark_failed(job: Job, message: str) -> None:
        if job.is_terminal:
            return
        transition(job, JobStatus.FAILED)
        job.error_message = message

    def _schedule_cleanup(self, run: _Run, delay_s: float) -> None:
        run.cancel_cleanup()
        loop = asyncio.get_running_loop()
        run.cleanup = loop.call_later(delay_s, self._cleanup, run)

    def _cleanup(self, run: _Run) -> None:
        run.cleanup = None
        if self._runs.get(run.job_id) is not run:
            return
        del self._runs[run.job_id]
        self.store.delete_job(run.job_id)

    def _covers_full_duration(self, job: Job, metadata: Optional[VideoMetadata]) -> bool:
        if metadata is None or metadata.duration <= 0:
            return False
        if time_to_seconds(job.start_time) != 0:
            return False
        tolerance = self.config.pipeline.full_duration_tolerance_s
        return abs(time_to_seconds(job.end_time) - metadata.duration) < tolerance

    async def _require_tools(self, simulated: bool) -> None:
        deps = await self.check_dependencies(simulated)
        if not deps["yt_dlp"]:
            raise DependencyMissing("yt-dlp")
        if not deps["ffmpeg"]:
            raise DependencyMissing("ffmpeg")

    async def _run_pipeline(self, run: _Run) -> None:
        try:
            if self._slots is None:
                await self._process(run)
            else:
                async with self._slots:
                    await self._process(run)
        except _Superseded:
            logger.info("Job %s was cancelled or replaced; discarding its results", run.job_id)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) if isinstance(exc, ClipperError) else f"{type(exc).__name__}: {exc}"
            logger.warning("Job %s failed: %s", run.job_id, message, exc_info=not isinstance(exc, ClipperError))
            try:
                self._write(run, lambda job: self._mark_failed(job, message))
            except _Superseded:
                return
            self._schedule_cleanup(run, self.config.retention.failed_cleanup_delay_s)

    async def _process(self, run: _Run) -> None:
        job = self.store.get_job(run.job_id)
        if job is None:
            raise _Superseded(run.job_id)
        toolchain = self.toolchain(job.simulated)
        on_progress = self._progress_callback(run)

        await self._require_tools(job.simulated)

        self._write(run, lambda j: self._advance(j, JobStatus.DOWNLOADING))
        video_id = extract_video_id(job.source_url)
        if not video_id:
            raise ClipperError("Could not extract video ID from URL")

        fetched = await toolchain.fetcher.fetch(video_id, job.source_url, job.format_hint, on_progress)
        fetched_ref = toolchain.layout.ref_for(fetched.path)

        metadata = job.metadata_snapshot or await toolchain.metadata.fetch(job.source_url)
        skip_clip = self._covers_full_duration(job, metadata)

        self._write(
            run,
            lambda j: self._advance(
                j,
                JobStatus.CLIPPING,
                progress=PROGRESS_DONE if skip_clip else DOWNLOAD_PROGRESS_MAX,
                fetched_artifact=fetched_ref,
            ),
        )

        if skip_clip:
            logger.info("Job %s requests the full video, skipping clipping", run.job_id)
            if not fetched.path.is_file():
                raise ArtifactMissing(f"Downloaded file disappeared: {fetched_ref}")
            clipped_ref = fetched_ref
        else:
            clipped = await toolchain.transcoder.clip(
                video_id, fetched.path, job.start_time, job.end_time, on_progress
            )
            clipped_ref = toolchain.layout.ref_for(clipped.path)

        self._write(
            run,
            lambda j: self._advance(j, JobStatus.COMPLETED, progress=PROGRESS_DONE, clipped_artifact=clipped_ref),
        )
        logger.info("Job %s completed: %s", run.job_id, clipped_ref)
        self._schedule_cleanup(run, self.config.retention.completed_cleanup_delay_s)
