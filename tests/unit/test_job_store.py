import json

import pytest

from clipper.core.constants import JobStatus
from clipper.schemas.job import Job
from clipper.services.job_store import JobStore, now_ms


def _job(job_id: str = "ABCDEFGHIJK_clip_00-00-10_to_00-00-30", status: JobStatus = JobStatus.PENDING) -> Job:
    now = now_ms()
    return Job(
        id=job_id,
        status=status,
        source_url="https://youtu.be/ABCDEFGHIJK",
        start_time="00:00:10",
        end_time="00:00:30",
        created_at=now,
        updated_at=now,
        expires_at=now + 48 * 3600 * 1000,
    )


def test_record_uses_camel_case_keys(store: JobStore) -> None:
    job = _job()
    job.fetched_artifact = "/downloads/ABCDEFGHIJK_download.mp4"
    store.save_job(job)

    raw = json.loads((store.root / f"{job.id}.json").read_text(encoding="utf-8"))
    assert raw["url"] == "https://youtu.be/ABCDEFGHIJK"
    assert raw["startTime"] == "00:00:10"
    assert raw["downloadedFile"] == "/downloads/ABCDEFGHIJK_download.mp4"
    assert raw["status"] == "pending"
    assert "clippedFile" not in raw
    assert "error" not in raw

    loaded = store.get_job(job.id)
    assert loaded == job


def test_create_job_keeps_active_record(store: JobStore) -> None:
    first, created = store.create_job(_job())
    assert created is True

    second, created = store.create_job(_job())
    assert created is False
    assert second.created_at == first.created_at


def test_create_job_replaces_terminal_record(store: JobStore) -> None:
    store.save_job(_job(status=JobStatus.FAILED))
    job, created = store.create_job(_job())
    assert created is True
    assert store.get_job(job.id).status == JobStatus.PENDING


def test_update_missing_record_stays_missing(store: JobStore) -> None:
    assert store.update_job("missing", lambda job: None) is None
    assert store.get_job("missing") is None


def test_update_job_applies_mutation(store: JobStore) -> None:
    job = store.save_job(_job())
    updated = store.update_job(job.id, lambda j: setattr(j, "progress", 42))
    assert updated.progress == 42
    assert store.get_job(job.id).progress == 42


def test_pop_job_keeps_record_when_mutation_fails(store: JobStore) -> None:
    job = store.save_job(_job())

    def _reject(_: Job) -> None:
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        store.pop_job(job.id, _reject)
    assert store.get_job(job.id) is not None

    popped = store.pop_job(job.id, lambda j: setattr(j, "status", JobStatus.FAILED))
    assert popped.status == JobStatus.FAILED
    assert store.get_job(job.id) is None


def test_unsafe_ids_are_never_touched(store: JobStore) -> None:
    assert store.get_job("../config") is None
    assert store.delete_job("../config") is False


def test_corrupt_record_is_skipped(store: JobStore) -> None:
    store.save_job(_job())
    (store.root / "broken.json").write_text("{not json", encoding="utf-8")

    assert [job.id for job in store.list_jobs()] == ["ABCDEFGHIJK_clip_00-00-10_to_00-00-30"]
    assert store.get_job("broken") is None


def test_locks_are_released_after_use(store: JobStore) -> None:
    job = store.save_job(_job())
    store.update_job(job.id, lambda j: setattr(j, "progress", 10))
    with store._lock(job.id):
        with store._lock(job.id):
            assert store._locks[job.id][1] == 2
    store.pop_job(job.id)

    assert store._locks == {}
