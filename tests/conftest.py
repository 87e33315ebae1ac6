from __future__ import annotations

import os
import tempfile

# Keep runtime files of the module-level PATHS out of the source tree.
os.environ.setdefault("CLIPPER_RUNTIME_ROOT", tempfile.mkdtemp(prefix="clipper-tests-"))

import asyncio  # noqa: E402
import json  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Optional, Sequence  # noqa: E402

import pytest  # noqa: E402

from clipper.core.errors import SpawnFailure  # noqa: E402
from clipper.core.settings import AppPaths, build_paths  # noqa: E402
from clipper.schemas.config import AppConfig  # noqa: E402
from clipper.services.engine import JobEngine  # noqa: E402
from clipper.services.job_store import JobStore  # noqa: E402
from clipper.services.process import LineCallback, ProcessResult, ProcessRunner, tool_name  # noqa: E402

SAMPLE_DUMP = {
    "id": "ABCDEFGHIJK",
    "title": "Sample video",
    "duration": 212,
    "thumbnail": "https://i.ytimg.com/vi/ABCDEFGHIJK/maxresdefault.jpg",
    "uploader": "Sample Channel",
    "formats": [
        {"format_id": "18", "ext": "mp4", "height": 360, "vcodec": "avc1", "acodec": "mp4a", "filesize": 1000},
        {"format_id": "137", "ext": "mp4", "height": 1080, "vcodec": "avc1", "acodec": "none", "filesize": 9000},
        {"format_id": "140", "ext": "m4a", "vcodec": "none", "acodec": "mp4a", "filesize": 300},
    ],
}


class FakeRunner(ProcessRunner):
    """Scripted stand-in for yt-dlp and ffmpeg."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.missing: set[str] = set()
        self.exit_codes: dict[str, int] = {}
        self.metadata: Optional[dict] = dict(SAMPLE_DUMP)
        self.write_outputs = True
        self.announce_output = True
        self.download_gate: Optional[asyncio.Event] = None

    def downloads(self) -> list[list[str]]:
        return [c for c in self.calls if tool_name(c) == "yt-dlp" and len(c) > 2 and "--dump-json" not in c]

    def transcodes(self) -> list[list[str]]:
        return [c for c in self.calls if tool_name(c) == "ffmpeg" and len(c) > 2]

    async def run(
        self,
        argv: Sequence[str],
        on_line: Optional[LineCallback] = None,
        collect_stdout: bool = False,
    ) -> ProcessResult:
        argv = list(argv)
        self.calls.append(argv)
        name = tool_name(argv)
        if name in self.missing:
            raise SpawnFailure(name, "No such file or directory")
        emit = on_line or (lambda line: None)

        if len(argv) == 2:
            return ProcessResult(returncode=0)

        if name == "yt-dlp" and "--dump-json" in argv:
            if self.metadata is None:
                return ProcessResult(returncode=1)
            return ProcessResult(returncode=0, stdout=json.dumps(self.metadata))

        if name == "yt-dlp":
            if self.download_gate is not None:
                await self.download_gate.wait()
            template = argv[argv.index("-o") + 1]
            video_part = Path(template.replace("%(ext)s", "f137.mp4"))
            merged = Path(template.replace("%(ext)s", "mkv"))
            if self.announce_output:
                emit(f"[download] Destination: {video_part}")
            for percent in ("0.0", "12.5", "48.0", "100.0"):
                emit(f"[download]  {percent}% of 10.00MiB at 2.00MiB/s ETA 00:03")
            code = self.exit_codes.get("yt-dlp", 0)
            if code == 0 and self.write_outputs:
                merged.parent.mkdir(parents=True, exist_ok=True)
                merged.write_bytes(b"video")
                if self.announce_output:
                    emit(f'[Merger] Merging formats into "{merged}"')
            return ProcessResult(returncode=code)

        if name == "ffmpeg":
            output = Path(argv[-1])
            for stamp in ("00:00:02", "00:00:10", "00:00:20"):
                emit(f"frame=  50 fps=25 q=28.0 size=  256kB time={stamp}.00 bitrate=800kbits/s speed=1x")
            code = self.exit_codes.get("ffmpeg", 0)
            if code == 0 and self.write_outputs:
                output.parent.mkdir(parents=True, exist_ok=True)
                output.write_bytes(b"clip")
            return ProcessResult(returncode=code)

        return ProcessResult(returncode=0)


@pytest.fixture
def paths(tmp_path: Path) -> AppPaths:
    return build_paths(tmp_path / "runtime")


@pytest.fixture
def store(paths: AppPaths) -> JobStore:
    return JobStore(paths.jobs_root)


@pytest.fixture
def sample_dump() -> dict:
    return json.loads(json.dumps(SAMPLE_DUMP))


@pytest.fixture
def runner_factory() -> type[FakeRunner]:
    return FakeRunner


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config() -> AppConfig:
    cfg = AppConfig()
    cfg.retention.completed_cleanup_delay_s = 60
    cfg.retention.failed_cleanup_delay_s = 60
    return cfg


@pytest.fixture
def engine(store: JobStore, paths: AppPaths, config: AppConfig, fake_runner: FakeRunner) -> JobEngine:
    return JobEngine(store, paths, config, runner=fake_runner, simulated_runner=fake_runner)
