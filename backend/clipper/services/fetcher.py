"""Source download via yt-dlp, reusing files fetched by earlier jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from clipper.core.constants import DOWNLOAD_PROGRESS_MAX, VIDEO_EXTENSIONS
from clipper.core.errors import ArtifactMissing, ToolExitFailure
from clipper.core.settings import ArtifactLayout
from clipper.schemas.config import ToolsConfig
from clipper.services.process import ProcessRunner
from clipper.services.progress import DownloadProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class FetchResult:
    path: Path
    cached: bool


def download_stem(video_id: str) -> str:
    return f"{video_id}_download"


class FetchOrchestrator:
    def __init__(self, runner: ProcessRunner, layout: ArtifactLayout, tools: ToolsConfig) -> None:
        self.runner = runner
        self.layout = layout
        self.tools = tools

    def find_existing(self, video_id: str) -> Optional[Path]:
        stem = download_stem(video_id)
        for ext in VIDEO_EXTENSIONS:
            candidate = self.layout.downloads_dir / f"{stem}{ext}"
            if candidate.is_file():
                return candidate
        return None

    def _scan_for_output(self, video_id: str) -> Optional[Path]:
        existing = self.find_existing(video_id)
        if existing:
            return existing
        prefix = f"{download_stem(video_id)}."
        for path in sorted(self.layout.downloads_dir.iterdir()):
            if path.is_file() and path.name.startswith(prefix) and not path.name.endswith((".part", ".ytdl")):
                return path
        return None

    def build_command(self, video_id: str, url: str, format_hint: Optional[str]) -> list[str]:
        template = self.layout.downloads_dir / f"{download_stem(video_id)}.%(ext)s"
        return [
            self.tools.yt_dlp_bin,
            "-f",
            format_hint or self.tools.default_format,
            "-o",
            str(template),
            "--progress",
            "--newline",
            url,
        ]

    async def fetch(
        self,
        video_id: str,
        url: str,
        format_hint: Optional[str],
        on_progress: ProgressCallback,
    ) -> FetchResult:
        existing = self.find_existing(video_id)
        if existing:
            logger.info("Video already downloaded: %s", existing)
            on_progress(DOWNLOAD_PROGRESS_MAX)
            return FetchResult(path=existing, cached=True)

        self.layout.downloads_dir.mkdir(parents=True, exist_ok=True)
        extractor = DownloadProgress()

        def _on_line(line: str) -> None:
            progress = extractor.feed(line)
            if progress is not None:
                on_progress(progress)

        cmd = self.build_command(video_id, url, format_hint)
        result = await self.runner.run(cmd, on_line=_on_line)
        if result.returncode != 0:
            raise ToolExitFailure("yt-dlp", result.returncode)

        downloaded = extractor.output_path
        if downloaded is not None and not downloaded.is_absolute():
            downloaded = self.layout.downloads_dir / downloaded.name
        if downloaded is None or not downloaded.is_file():
            downloaded = self._scan_for_output(video_id)
        if downloaded is None or not downloaded.is_file():
            raise ArtifactMissing("Download completed but file not found")

        logger.info("Downloaded %s -> %s", url, downloaded)
        return FetchResult(path=downloaded, cached=False)
