"""FastAPI route definitions."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from clipper.core.errors import ArtifactMissing, InvalidArtifactPath, InvalidTransition, JobNotFound
from clipper.core.settings import APP_VERSION
from clipper.schemas.config import AppConfig
from clipper.schemas.job import ArtifactOut, CancelResponse, ClipRequest, Job, JobCreateResponse
from clipper.schemas.metadata import VideoMetadata
from clipper.services.artifacts import delete_artifact, list_artifacts
from clipper.services.config_store import load_config, save_config
from clipper.services.engine import JobEngine

router = APIRouter(prefix="/api", tags=["api"])


def get_engine(request: Request) -> JobEngine:
    return request.app.state.engine


@router.get("/health")
async def health(engine: JobEngine = Depends(get_engine)) -> dict[str, object]:
    deps = await engine.check_dependencies()
    jobs = engine.list_jobs()
    return {
        "version": APP_VERSION,
        "yt_dlp_available": deps["yt_dlp"],
        "ffmpeg_available": deps["ffmpeg"],
        "jobs": len(jobs),
        "active_jobs": sum(1 for job in jobs if not job.is_terminal),
    }


@router.get("/config", response_model=AppConfig)
def get_config(request: Request) -> AppConfig:
    return load_config(request.app.state.paths.config_path)


@router.put("/config", response_model=AppConfig)
def put_config(config: AppConfig, request: Request) -> AppConfig:
    # Takes effect on the next start; running pipelines keep their settings.
    return save_config(config, request.app.state.paths.config_path)


@router.post("/jobs", response_model=JobCreateResponse)
async def create_job(payload: ClipRequest, engine: JobEngine = Depends(get_engine)) -> JobCreateResponse:
    job, _ = await engine.submit(payload)
    return JobCreateResponse(job_id=job.id, job=job)


@router.get("/jobs", response_model=list[Job])
def list_jobs(engine: JobEngine = Depends(get_engine)) -> list[Job]:
    return engine.list_jobs()


@router.get("/jobs/{job_id}", response_model=Job)
def get_job(job_id: str, engine: JobEngine = Depends(get_engine)) -> Job:
    try:
        return engine.get_status(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc


@router.post("/jobs/{job_id}/cancel", response_model=CancelResponse)
async def cancel_job(job_id: str, engine: JobEngine = Depends(get_engine)) -> CancelResponse:
    try:
        engine.cancel(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return CancelResponse(success=True, message="Job cancelled successfully")


@router.get("/jobs/{job_id}/events")
async def stream_job_events(job_id: str, engine: JobEngine = Depends(get_engine)) -> EventSourceResponse:
    try:
        engine.get_status(job_id)
    except JobNotFound as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc

    async def event_generator():
        last_update = None
        while True:
            job = engine.store.get_job(job_id)
            if job is None:
                yield {"event": "end", "data": json.dumps({"jobId": job_id, "removed": True})}
                break

            if job.updated_at != last_update:
                last_update = job.updated_at
                yield {"event": "job", "id": str(job.updated_at), "data": json.dumps(job.to_record())}

            if job.is_terminal:
                yield {"event": "end", "data": json.dumps({"jobId": job_id, "removed": False})}
                break

            await asyncio.sleep(1)

    return EventSourceResponse(event_generator())


@router.get("/metadata", response_model=VideoMetadata)
async def get_metadata(
    url: str = Query(..., min_length=1),
    dry_run: bool = Query(False, alias="dryRun"),
    engine: JobEngine = Depends(get_engine),
) -> VideoMetadata:
    metadata = await engine.get_metadata(url, simulated=dry_run)
    if metadata is None:
        raise HTTPException(status_code=404, detail="Could not fetch video metadata")
    return metadata


@router.get("/artifacts", response_model=list[ArtifactOut])
def get_artifacts(
    dry_run: bool = Query(False, alias="dryRun"),
    engine: JobEngine = Depends(get_engine),
) -> list[ArtifactOut]:
    return list_artifacts(engine.toolchain(dry_run).layout)


@router.delete("/artifacts")
def remove_artifact(
    ref: str = Query(..., min_length=1),
    dry_run: bool = Query(False, alias="dryRun"),
    engine: JobEngine = Depends(get_engine),
) -> dict[str, object]:
    try:
        delete_artifact(engine.toolchain(dry_run).layout, ref)
    except InvalidArtifactPath as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ArtifactMissing as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": True, "path": ref}
