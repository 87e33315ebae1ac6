"""Pydantic schemas for persisted app configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

from clipper.core.constants import DEFAULT_FORMAT_SELECTOR


class ToolsConfig(BaseModel):
    yt_dlp_bin: str = "yt-dlp"
    ffmpeg_bin: str = "ffmpeg"
    default_format: str = DEFAULT_FORMAT_SELECTOR


class TranscodeConfig(BaseModel):
    video_codec: str = "libx264"
    preset: str = "veryslow"
    crf: int = Field(18, ge=0, le=51)
    audio_codec: str = "aac"
    audio_bitrate: str = "320k"
    container_ext: str = "mp4"


class RetentionConfig(BaseModel):
    expiry_hours: int = Field(48, ge=1)
    completed_cleanup_delay_s: float = Field(5.0, ge=0)
    failed_cleanup_delay_s: float = Field(30.0, ge=0)
    sweep_interval_minutes: int = Field(15, ge=1, le=59)


class PipelineConfig(BaseModel):
    full_duration_tolerance_s: float = Field(2.0, ge=0)
    # 0 keeps pipelines unbounded.
    max_parallel_jobs: int = Field(0, ge=0)
    metadata_memo_size: int = Field(256, ge=1)
    metadata_memo_ttl_s: float = Field(3600.0, gt=0)


class AppConfig(BaseModel):
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    transcode: TranscodeConfig = Field(default_factory=TranscodeConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
