"""Dry-run tool backend.

Plays back scripted yt-dlp/ffmpeg output and writes placeholder files, so a
whole job can be exercised without the real tools or network access.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from clipper.services.process import LineCallback, ProcessResult, ProcessRunner, tool_name
from clipper.services.validation import extract_video_id, time_to_seconds

logger = logging.getLogger(__name__)

MOCK_TITLES = [
    "Amazing Tutorial - Learn Everything You Need to Know",
    "Epic Gaming Moments Compilation",
    "How to Build Modern Web Applications",
    "Beautiful Nature Documentary - 4K",
    "Music Mix - Best Songs of the Year",
]

MOCK_UPLOADERS = [
    "Tech Channel",
    "Gaming Pro",
    "Code Academy",
    "Nature Films",
    "Music Station",
]

DOWNLOAD_STEPS = [5, 15, 30, 50, 75, 95, 100]
PLACEHOLDER_BYTES = b"simulated media\n"


def mock_dump(video_id: str) -> dict[str, object]:
    """A ``yt-dlp --dump-json`` payload derived deterministically from the id."""
    seed = sum(ord(ch) for ch in video_id)
    mib = 1024 * 1024
    return {
        "id": video_id,
        "title": MOCK_TITLES[seed % len(MOCK_TITLES)],
        "duration": 60 + seed % 1740,
        "thumbnail": f"https://i.ytimg.com/vi/{video_id}/maxresdefault.jpg",
        "uploader": MOCK_UPLOADERS[seed % len(MOCK_UPLOADERS)],
        "formats": [
            {"format_id": "18", "ext": "mp4", "height": 360, "vcodec": "avc1", "acodec": "mp4a", "filesize": 15 * mib},
            {"format_id": "22", "ext": "mp4", "height": 720, "vcodec": "avc1", "acodec": "mp4a", "filesize": 45 * mib},
            {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a", "filesize": 3 * mib},
        ],
    }


def _arg_after(argv: Sequence[str], flag: str) -> Optional[str]:
    try:
        return argv[list(argv).index(flag) + 1]
    except (ValueError, IndexError):
        return None


class SimulatedRunner(ProcessRunner):
    def __init__(self, step_delay_s: float = 0.3) -> None:
        self.step_delay_s = step_delay_s

    async def _tick(self) -> None:
        await asyncio.sleep(self.step_delay_s)

    async def run(
        self,
        argv: Sequence[str],
        on_line: Optional[LineCallback] = None,
        collect_stdout: bool = False,
    ) -> ProcessResult:
        name = tool_name(argv)
        logger.info("[DRY RUN] %s %s", name, " ".join(argv[1:]))
        emit = on_line or (lambda line: None)

        if len(argv) == 2 and argv[1] in {"--version", "-version"}:
            return ProcessResult(returncode=0, stdout=f"{name} simulated" if collect_stdout else "")
        if name.startswith("yt-dlp") and "--dump-json" in argv:
            return await self._dump(argv)
        if name.startswith("yt-dlp"):
            return await self._download(argv, emit)
        if name.startswith("ffmpeg"):
            return await self._clip(argv, emit)
        return ProcessResult(returncode=0)

    async def _dump(self, argv: Sequence[str]) -> ProcessResult:
        await self._tick()
        video_id = extract_video_id(argv[-1]) or "dQw4w9WgXcQ"
        return ProcessResult(returncode=0, stdout=json.dumps(mock_dump(video_id)))

    async def _download(self, argv: Sequence[str], emit: LineCallback) -> ProcessResult:
        template = _arg_after(argv, "-o")
        if template is None:
            return ProcessResult(returncode=2)
        target = Path(template.replace("%(ext)s", "mp4"))

        emit(f"[download] Destination: {target}")
        for percent in DOWNLOAD_STEPS:
            await self._tick()
            emit(f"[download] {percent:5.1f}% of 50.00MiB at 5.00MiB/s ETA 00:{10 - percent // 10:02d}")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(PLACEHOLDER_BYTES)
        return ProcessResult(returncode=0)

    async def _clip(self, argv: Sequence[str], emit: LineCallback) -> ProcessResult:
        output = Path(argv[-1])
        duration = _arg_after(argv, "-t")
        total = time_to_seconds(duration) if duration else 0

        emit("ffmpeg version 6.0 Copyright (c) 2000-2023 the FFmpeg developers")
        elapsed = 0
        while elapsed < total:
            await self._tick()
            elapsed = min(total, elapsed + max(1, total // 5))
            hours, rest = divmod(elapsed, 3600)
            minutes, seconds = divmod(rest, 60)
            emit(
                f"frame=  150 fps= 30 q=28.0 size=    1024kB "
                f"time={hours:02d}:{minutes:02d}:{seconds:02d}.00 bitrate=1024.0kbits/s speed=2.0x"
            )

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(PLACEHOLDER_BYTES)
        return ProcessResult(returncode=0)
