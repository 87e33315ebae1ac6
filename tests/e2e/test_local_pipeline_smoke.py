import asyncio
import os

import pytest

from clipper.core.constants import JobStatus
from clipper.core.settings import build_paths
from clipper.schemas.config import AppConfig
from clipper.schemas.job import ClipRequest
from clipper.services.engine import JobEngine
from clipper.services.job_store import JobStore


@pytest.mark.skipif(
    os.environ.get("RUN_E2E") != "1",
    reason="Set RUN_E2E=1 with yt-dlp, ffmpeg and network access to run e2e.",
)
def test_real_tools_clip_smoke(tmp_path) -> None:
    paths = build_paths(tmp_path / "runtime")
    config = AppConfig()
    config.transcode.preset = "ultrafast"
    engine = JobEngine(JobStore(paths.jobs_root), paths, config)
    url = os.environ.get("E2E_VIDEO_URL", "https://www.youtube.com/watch?v=jNQXAC9IVRw")

    async def scenario():
        deps = await engine.check_dependencies()
        assert deps == {"yt_dlp": True, "ffmpeg": True}
        job, _ = await engine.submit(ClipRequest(url=url, start="00:00:02", end="00:00:06"))
        await engine.join()
        final = engine.get_status(job.id)
        await engine.shutdown()
        return final

    final = asyncio.run(scenario())

    assert final.status == JobStatus.COMPLETED, final.error_message
    assert paths.artifacts.resolve(final.clipped_artifact).stat().st_size > 0
