"""Clip trimming and re-encoding via ffmpeg."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from clipper.core.constants import PROGRESS_DONE
from clipper.core.errors import ArtifactMissing, ToolExitFailure
from clipper.core.settings import ArtifactLayout
from clipper.schemas.config import ToolsConfig, TranscodeConfig
from clipper.services.process import ProcessRunner
from clipper.services.progress import TranscodeProgress
from clipper.services.validation import seconds_to_time, time_slug, time_to_seconds

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


@dataclass
class ClipResult:
    path: Path
    cached: bool


def clip_stem(video_id: str, start: str, end: str) -> str:
    return f"{video_id}_clip_{time_slug(start)}_to_{time_slug(end)}"


class TranscodeOrchestrator:
    def __init__(
        self,
        runner: ProcessRunner,
        layout: ArtifactLayout,
        tools: ToolsConfig,
        transcode: TranscodeConfig,
    ) -> None:
        self.runner = runner
        self.layout = layout
        self.tools = tools
        self.transcode = transcode

    def clip_path(self, video_id: str, start: str, end: str) -> Path:
        return self.layout.clips_dir / f"{clip_stem(video_id, start, end)}.{self.transcode.container_ext}"

    def build_command(self, source: Path, output: Path, start: str, duration_seconds: int) -> list[str]:
        # -ss before -i seeks the input directly; -t is then relative to the seek point.
        cfg = self.transcode
        return [
            self.tools.ffmpeg_bin,
            "-ss",
            start,
            "-i",
            str(source),
            "-t",
            seconds_to_time(duration_seconds),
            "-c:v",
            cfg.video_codec,
            "-preset",
            cfg.preset,
            "-crf",
            str(cfg.crf),
            "-c:a",
            cfg.audio_codec,
            "-b:a",
            cfg.audio_bitrate,
            "-movflags",
            "+faststart",
            "-y",
            str(output),
        ]

    async def clip(
        self,
        video_id: str,
        source: Path,
        start: str,
        end: str,
        on_progress: ProgressCallback,
    ) -> ClipResult:
        output = self.clip_path(video_id, start, end)
        if output.is_file():
            logger.info("Clip already exists: %s", output)
            on_progress(PROGRESS_DONE)
            return ClipResult(path=output, cached=True)

        output.parent.mkdir(parents=True, exist_ok=True)
        duration_seconds = time_to_seconds(end) - time_to_seconds(start)
        extractor = TranscodeProgress(duration_seconds)

        def _on_line(line: str) -> None:
            progress = extractor.feed(line)
            if progress is not None:
                on_progress(progress)

        cmd = self.build_command(source, output, start, duration_seconds)
        result = await self.runner.run(cmd, on_line=_on_line)
        if result.returncode != 0:
            raise ToolExitFailure("ffmpeg", result.returncode)
        if not output.is_file():
            raise ArtifactMissing("ffmpeg completed but clip file not found")

        logger.info("Clip created: %s", output)
        on_progress(PROGRESS_DONE)
        return ClipResult(path=output, cached=False)
