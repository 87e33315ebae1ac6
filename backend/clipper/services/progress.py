"""Progress extractors for yt-dlp and ffmpeg output.

Both tools only expose human-oriented log lines, so all log-format coupling
lives here. Each extractor is fed one line at a time and returns the overall
job progress the line implies, or ``None``.
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Optional, Protocol

from clipper.core.constants import CLIP_PROGRESS_MAX, DOWNLOAD_PROGRESS_MAX


class ProgressExtractor(Protocol):
    def feed(self, line: str) -> Optional[int]:
        ...


class DownloadProgress:
    """yt-dlp download output: percentage plus the produced file name.

    The download maps onto 0-50 of overall progress. A merge notice always
    wins over an earlier destination notice since merging happens last.
    """

    PERCENT = re.compile(r"^\[download\]\s+(\d+(?:\.\d+)?)%")
    DESTINATION = re.compile(r"\[download\] Destination: (.+)")
    ALREADY_DOWNLOADED = re.compile(r"\[download\] (.+) has already been downloaded")
    MERGER = re.compile(r'\[Merger\] Merging formats into "(.+)"')

    def __init__(self) -> None:
        self.output_path: Optional[Path] = None

    def feed(self, line: str) -> Optional[int]:
        text = line.strip()

        for pattern in (self.DESTINATION, self.ALREADY_DOWNLOADED, self.MERGER):
            match = pattern.search(text)
            if match:
                self.output_path = Path(match.group(1).strip())
                return None

        match = self.PERCENT.search(text)
        if not match:
            return None
        percent = min(float(match.group(1)), 100.0)
        return min(int(percent // 2), DOWNLOAD_PROGRESS_MAX)


class TranscodeProgress:
    """ffmpeg ``time=HH:MM:SS`` markers mapped onto 50-95 of overall progress."""

    TIME = re.compile(r"time=(\d+):(\d+):(\d+)")

    def __init__(self, total_seconds: float) -> None:
        self.total_seconds = total_seconds

    def feed(self, line: str) -> Optional[int]:
        if self.total_seconds <= 0:
            return None
        match = self.TIME.search(line)
        if not match:
            return None
        hours, minutes, seconds = (int(part) for part in match.groups())
        elapsed = hours * 3600 + minutes * 60 + seconds
        fraction = min(elapsed / self.total_seconds, 1.0)
        span = CLIP_PROGRESS_MAX - DOWNLOAD_PROGRESS_MAX
        return DOWNLOAD_PROGRESS_MAX + math.floor(fraction * span)
