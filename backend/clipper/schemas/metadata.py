"""Pydantic schemas for source video metadata."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FormatOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    format_id: str = Field(alias="formatId")
    label: str
    ext: str = ""
    filesize: Optional[int] = None
    height: Optional[int] = None
    is_audio_only: bool = Field(False, alias="isAudioOnly")
    needs_audio_mux: bool = Field(False, alias="needsAudioMux")


class VideoMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = "Unknown"
    duration: float = 0
    thumbnail: str = ""
    uploader: str = "Unknown"
    formats: list[FormatOption] = Field(default_factory=list)
