"""Project-wide constants and state definitions."""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    CLIPPING = "clipping"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {JobStatus.COMPLETED, JobStatus.FAILED}

# Listing order: active jobs first.
STATUS_ORDER = {
    JobStatus.PENDING: 0,
    JobStatus.DOWNLOADING: 1,
    JobStatus.CLIPPING: 2,
    JobStatus.COMPLETED: 3,
    JobStatus.FAILED: 4,
}

# Download fills 0-50, clipping 50-95, the last 5 only once the clip is verified.
DOWNLOAD_PROGRESS_MAX = 50
CLIP_PROGRESS_MAX = 95
PROGRESS_DONE = 100

# Order matters: the first existing extension is reused.
VIDEO_EXTENSIONS = (
    ".mp4",
    ".webm",
    ".mkv",
    ".flv",
    ".avi",
    ".mov",
    ".3gp",
    ".m4v",
)

DEFAULT_FORMAT_SELECTOR = "bestvideo+bestaudio"

CANCELLED_MESSAGE = "Job cancelled by user"

TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.DOWNLOADING, JobStatus.FAILED},
    JobStatus.DOWNLOADING: {JobStatus.CLIPPING, JobStatus.FAILED},
    JobStatus.CLIPPING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}
