"""Pydantic schemas for job records and API payloads.

Field aliases are the on-disk record keys; a record written by this service
is interchangeable with one written by any other compatible implementation.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clipper.core.constants import TERMINAL_STATES, JobStatus
from clipper.schemas.metadata import VideoMetadata
from clipper.services.validation import TIME_PATTERN, YOUTUBE_URL_PATTERN, normalize_time, time_to_seconds


class Job(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: JobStatus = JobStatus.PENDING
    source_url: str = Field(alias="url")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    format_hint: Optional[str] = Field(None, alias="formatId")
    progress: int = Field(0, ge=0, le=100)
    fetched_artifact: Optional[str] = Field(None, alias="downloadedFile")
    clipped_artifact: Optional[str] = Field(None, alias="clippedFile")
    error_message: Optional[str] = Field(None, alias="error")
    metadata_snapshot: Optional[VideoMetadata] = Field(None, alias="metadata")
    created_at: int = Field(alias="createdAt")
    updated_at: int = Field(alias="updatedAt")
    expires_at: int = Field(alias="expiresAt")
    simulated: bool = Field(False, alias="dryRun")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClipRequest(BaseModel):
    """Validated clip request; times are normalized to HH:MM:SS."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    start: str
    end: str
    format_hint: Optional[str] = Field(None, alias="formatId")
    simulated: bool = Field(False, alias="dryRun")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = value.strip()
        if not YOUTUBE_URL_PATTERN.match(value):
            raise ValueError("Must be a valid YouTube URL")
        return value

    @field_validator("start", "end")
    @classmethod
    def _check_time(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be mm:ss or hh:mm:ss")
        return normalize_time(value)

    @field_validator("format_hint")
    @classmethod
    def _blank_format_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @model_validator(mode="after")
    def _check_range(self) -> "ClipRequest":
        if time_to_seconds(self.end) <= time_to_seconds(self.start):
            raise ValueError("End time must be after start time")
        return self


class JobCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    job: Job


class CancelResponse(BaseModel):
    success: bool
    message: str


class ArtifactOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    path: str
    size: int
    created_at: int = Field(alias="createdAt")
    type: str
    extension: str
