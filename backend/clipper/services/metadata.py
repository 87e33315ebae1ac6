"""Best-effort source metadata lookup with in-process and on-disk caching.

Lookup order: memo -> ``{videoId}.metadata.json`` beside the downloads ->
``yt-dlp --dump-json``. Any failure yields ``None``; metadata never blocks
or fails a job.
"""

from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from clipper.core.errors import SpawnFailure
from clipper.core.settings import ArtifactLayout
from clipper.schemas.config import ToolsConfig
from clipper.schemas.metadata import FormatOption, VideoMetadata
from clipper.services.process import ProcessRunner
from clipper.services.validation import extract_video_id

logger = logging.getLogger(__name__)


def metadata_cache_path(layout: ArtifactLayout, video_id: str) -> Path:
    return layout.downloads_dir / f"{video_id}.metadata.json"


def _size_of(fmt: dict[str, Any]) -> int:
    size = fmt.get("filesize") or fmt.get("filesize_approx") or 0
    try:
        return int(size)
    except (TypeError, ValueError):
        return 0


def _has(codec: object) -> bool:
    return bool(codec) and codec != "none"


def simplify_formats(raw_formats: object) -> list[FormatOption]:
    """Collapse yt-dlp's format list to one option per resolution.

    Per height the largest reported file wins; the largest audio-only format
    is offered on its own and muxed into video-only options.
    """
    if not isinstance(raw_formats, list):
        return []

    best_video: dict[int, dict[str, Any]] = {}
    best_audio: Optional[dict[str, Any]] = None

    for fmt in raw_formats:
        if not isinstance(fmt, dict) or not fmt.get("format_id"):
            continue
        has_video = _has(fmt.get("vcodec"))
        has_audio = _has(fmt.get("acodec"))
        if has_audio and not has_video:
            if best_audio is None or _size_of(fmt) > _size_of(best_audio):
                best_audio = fmt
            continue
        height = fmt.get("height")
        if not has_video or not isinstance(height, int) or height <= 0:
            continue
        current = best_video.get(height)
        if current is None or _size_of(fmt) > _size_of(current):
            best_video[height] = fmt

    options: list[FormatOption] = []
    for height in sorted(best_video, reverse=True):
        fmt = best_video[height]
        ext = str(fmt.get("ext") or "")
        needs_mux = not _has(fmt.get("acodec"))
        format_id = str(fmt["format_id"])
        if needs_mux and best_audio is not None:
            format_id = f"{format_id}+{best_audio['format_id']}"
        options.append(
            FormatOption(
                format_id=format_id,
                label=f"{height}p ({ext.upper()})" if ext else f"{height}p",
                ext=ext,
                filesize=_size_of(fmt) or None,
                height=height,
                needs_audio_mux=needs_mux,
            )
        )

    if best_audio is not None:
        ext = str(best_audio.get("ext") or "")
        options.append(
            FormatOption(
                format_id=str(best_audio["format_id"]),
                label=f"Audio only ({ext.upper()})" if ext else "Audio only",
                ext=ext,
                filesize=_size_of(best_audio) or None,
                is_audio_only=True,
            )
        )
    return options


def parse_dump(payload: dict[str, Any]) -> VideoMetadata:
    duration = payload.get("duration")
    return VideoMetadata(
        title=payload.get("title") or "Unknown",
        duration=float(duration) if isinstance(duration, (int, float)) else 0,
        thumbnail=payload.get("thumbnail") or "",
        uploader=payload.get("uploader") or payload.get("channel") or "Unknown",
        formats=simplify_formats(payload.get("formats")),
    )


class MetadataCache:
    def __init__(
        self,
        runner: ProcessRunner,
        layout: ArtifactLayout,
        tools: ToolsConfig,
        max_entries: int = 256,
        ttl_s: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.layout = layout
        self.tools = tools
        self.max_entries = max_entries
        self.ttl_s = ttl_s
        self._clock = clock
        self._memo: "OrderedDict[str, tuple[float, VideoMetadata]]" = OrderedDict()

    def cache_path(self, video_id: str) -> Path:
        return metadata_cache_path(self.layout, video_id)

    def _memo_get(self, video_id: str) -> Optional[VideoMetadata]:
        entry = self._memo.get(video_id)
        if entry is None:
            return None
        stored_at, metadata = entry
        if self._clock() - stored_at > self.ttl_s:
            del self._memo[video_id]
            return None
        self._memo.move_to_end(video_id)
        return metadata

    def _memo_put(self, video_id: str, metadata: VideoMetadata) -> None:
        self._memo[video_id] = (self._clock(), metadata)
        self._memo.move_to_end(video_id)
        while len(self._memo) > self.max_entries:
            self._memo.popitem(last=False)

    def _read_cache_file(self, video_id: str) -> Optional[VideoMetadata]:
        path = self.cache_path(video_id)
        if not path.exists():
            return None
        try:
            return VideoMetadata.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError):
            logger.warning("Error reading cached metadata: %s", path, exc_info=True)
            return None

    def _write_cache_file(self, video_id: str, metadata: VideoMetadata) -> None:
        path = self.cache_path(video_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(metadata.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
        except OSError:
            logger.warning("Error caching metadata: %s", path, exc_info=True)

    async def _dump(self, url: str) -> Optional[VideoMetadata]:
        cmd = [self.tools.yt_dlp_bin, "--dump-json", "--skip-download", url]
        try:
            result = await self.runner.run(cmd, collect_stdout=True)
        except SpawnFailure:
            logger.warning("yt-dlp unavailable for metadata lookup of %s", url)
            return None
        if result.returncode != 0 or not result.stdout.strip():
            logger.warning("yt-dlp metadata lookup failed for %s (code %s)", url, result.returncode)
            return None
        try:
            payload = json.loads(result.stdout)
        except ValueError:
            logger.warning("Error parsing metadata JSON for %s", url)
            return None
        if not isinstance(payload, dict):
            return None
        return parse_dump(payload)

    async def fetch(self, url: str) -> Optional[VideoMetadata]:
        video_id = extract_video_id(url)
        if not video_id:
            return None

        cached = self._memo_get(video_id)
        if cached is not None:
            return cached

        cached = self._read_cache_file(video_id)
        if cached is not None:
            logger.info("Using cached metadata for %s", video_id)
            self._memo_put(video_id, cached)
            return cached

        metadata = await self._dump(url)
        if metadata is None:
            return None
        self._memo_put(video_id, metadata)
        self._write_cache_file(video_id, metadata)
        return metadata

    def invalidate(self, video_id: str) -> None:
        self._memo.pop(video_id, None)
        self.cache_path(video_id).unlink(missing_ok=True)
