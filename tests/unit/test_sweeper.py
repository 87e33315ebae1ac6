import asyncio

from clipper.core.constants import JobStatus
from clipper.core.settings import PATHS, AppPaths
from clipper.schemas.job import Job
from clipper.services.job_store import JobStore, now_ms
from clipper.services.metadata import metadata_cache_path
from clipper.services.sweeper import is_expired, sweep_expired_jobs

URL = "https://www.youtube.com/watch?v=ABCDEFGHIJK"


def _expired_job(paths: AppPaths, job_id: str = "ABCDEFGHIJK_clip_00-00-10_to_00-00-30", expires_in: int = -1) -> Job:
    layout = paths.artifacts
    download = layout.downloads_dir / "ABCDEFGHIJK_download.mp4"
    clip = layout.clips_dir / f"{job_id}.mp4"
    download.write_bytes(b"video")
    clip.write_bytes(b"clip")
    metadata_cache_path(layout, "ABCDEFGHIJK").write_text("{}", encoding="utf-8")

    now = now_ms()
    return Job(
        id=job_id,
        status=JobStatus.COMPLETED,
        source_url=URL,
        start_time="00:00:10",
        end_time="00:00:30",
        progress=100,
        fetched_artifact=layout.ref_for(download),
        clipped_artifact=layout.ref_for(clip),
        created_at=now - 1000,
        updated_at=now - 1000,
        expires_at=now + expires_in,
    )


def test_is_expired_is_strict() -> None:
    job = Job(
        id="x",
        source_url=URL,
        start_time="00:00:00",
        end_time="00:00:10",
        created_at=0,
        updated_at=0,
        expires_at=100,
    )
    assert is_expired(job, 100) is False
    assert is_expired(job, 101) is True


def test_sweep_removes_record_and_artifacts(paths: AppPaths, store: JobStore) -> None:
    job = store.save_job(_expired_job(paths))
    forgotten: list = []

    removed = sweep_expired_jobs(store, paths, on_source_removed=lambda vid, sim: forgotten.append((vid, sim)))

    assert removed == [job.id]
    assert store.get_job(job.id) is None
    assert not paths.artifacts.resolve(job.fetched_artifact).exists()
    assert not paths.artifacts.resolve(job.clipped_artifact).exists()
    assert not metadata_cache_path(paths.artifacts, "ABCDEFGHIJK").exists()
    assert forgotten == [("ABCDEFGHIJK", False)]


def test_sweep_keeps_live_jobs(paths: AppPaths, store: JobStore) -> None:
    job = store.save_job(_expired_job(paths, expires_in=60_000))

    assert sweep_expired_jobs(store, paths) == []
    assert store.get_job(job.id) is not None
    assert paths.artifacts.resolve(job.clipped_artifact).exists()


def test_sweep_tolerates_shared_and_missing_files(paths: AppPaths, store: JobStore) -> None:
    first = store.save_job(_expired_job(paths))
    second = store.save_job(_expired_job(paths, job_id="ABCDEFGHIJK_clip_00-01-00_to_00-01-30"))
    paths.artifacts.resolve(second.clipped_artifact).unlink()

    removed = sweep_expired_jobs(store, paths)

    assert sorted(removed) == sorted([first.id, second.id])
    assert store.list_jobs() == []


def test_full_video_job_deletes_shared_file_once(paths: AppPaths, store: JobStore) -> None:
    job = _expired_job(paths)
    job.clipped_artifact = job.fetched_artifact
    store.save_job(job)

    assert sweep_expired_jobs(store, paths) == [job.id]
    assert not paths.artifacts.resolve(job.fetched_artifact).exists()


def test_sweep_keeps_download_shared_with_active_job(paths: AppPaths, store: JobStore) -> None:
    expired = store.save_job(_expired_job(paths))
    active = _expired_job(paths, job_id="ABCDEFGHIJK_clip_00-01-00_to_00-01-30", expires_in=60_000)
    active.status = JobStatus.CLIPPING
    active.progress = 60
    active.clipped_artifact = None
    store.save_job(active)

    removed = sweep_expired_jobs(store, paths)

    assert removed == [expired.id]
    assert paths.artifacts.resolve(expired.fetched_artifact).exists()
    assert metadata_cache_path(paths.artifacts, "ABCDEFGHIJK").exists()
    assert not paths.artifacts.resolve(expired.clipped_artifact).exists()
    assert store.get_job(active.id).status == JobStatus.CLIPPING


def test_sweep_keeps_download_reused_by_downloading_job(paths: AppPaths, store: JobStore) -> None:
    expired = store.save_job(_expired_job(paths))
    now = now_ms()
    store.save_job(
        Job(
            id="ABCDEFGHIJK_clip_00-02-00_to_00-02-30",
            status=JobStatus.DOWNLOADING,
            source_url=URL,
            start_time="00:02:00",
            end_time="00:02:30",
            created_at=now,
            updated_at=now,
            expires_at=now + 60_000,
        )
    )

    assert sweep_expired_jobs(store, paths) == [expired.id]
    assert paths.artifacts.resolve(expired.fetched_artifact).exists()


def test_engine_sweep_forgets_cached_metadata(engine, store: JobStore, paths: AppPaths, fake_runner) -> None:
    async def scenario():
        await engine.get_metadata(URL)
        store.save_job(_expired_job(paths))
        removed = engine.sweep_expired()
        await engine.get_metadata(URL)
        return removed

    removed = asyncio.run(scenario())

    assert removed == ["ABCDEFGHIJK_clip_00-00-10_to_00-00-30"]
    assert sum(1 for call in fake_runner.calls if "--dump-json" in call) == 2


def test_periodic_task_sweeps_runtime_root() -> None:
    from clipper.workers.queue import sweep_expired_task

    store = JobStore(PATHS.jobs_root)
    job = store.save_job(_expired_job(PATHS, job_id="ABCDEFGHIJK_clip_00-02-00_to_00-02-30"))

    removed = sweep_expired_task.call_local()

    assert job.id in removed
    assert store.get_job(job.id) is None
