"""Input parsing helpers for clip requests.

Time strings accept ``ss``-padded ``mm:ss`` and ``hh:mm:ss`` forms and are
normalized to ``HH:MM:SS`` before they reach the engine.
"""

from __future__ import annotations

import re
from typing import Optional

TIME_PATTERN = re.compile(r"^(?:([0-1]?\d|2[0-3]):)?([0-5]?\d):([0-5]\d)$")

YOUTUBE_URL_PATTERN = re.compile(
    r"^(https?://)?(www\.)?"
    r"(youtube\.com/(watch\?v=|embed/|v/|live/|shorts/)|youtu\.be/)"
    r"[\w-]{11}([?&].*)?$"
)

_VIDEO_ID_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/"
    r"|youtube\.com/live/|youtube\.com/shorts/)([\w-]{11})"
)


def normalize_time(value: str) -> str:
    match = TIME_PATTERN.match(value.strip())
    if not match:
        return value
    hours = match.group(1) or "00"
    minutes = match.group(2)
    seconds = match.group(3)
    return f"{hours.zfill(2)}:{minutes.zfill(2)}:{seconds.zfill(2)}"


def time_to_seconds(value: str) -> int:
    hours, minutes, seconds = (int(part) for part in normalize_time(value).split(":"))
    return hours * 3600 + minutes * 60 + seconds


def seconds_to_time(total_seconds: int) -> str:
    total_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def time_slug(value: str) -> str:
    """Filename-safe form of a normalized time (``00:01:05`` -> ``00-01-05``)."""
    return value.replace(":", "-")


def extract_video_id(url: str) -> Optional[str]:
    match = _VIDEO_ID_PATTERN.search(url)
    if match:
        return match.group(1)
    return None
