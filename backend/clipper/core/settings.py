"""Runtime paths and static app settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class ArtifactLayout:
    """Where fetched downloads and produced clips live for one backend."""

    public_root: Path
    downloads_dir: Path
    clips_dir: Path

    @classmethod
    def under(cls, public_root: Path) -> "ArtifactLayout":
        return cls(
            public_root=public_root,
            downloads_dir=public_root / "downloads",
            clips_dir=public_root / "clips",
        )

    def ensure(self) -> None:
        self.downloads_dir.mkdir(parents=True, exist_ok=True)
        self.clips_dir.mkdir(parents=True, exist_ok=True)

    def ref_for(self, path: Path) -> str:
        """Public reference (``/downloads/x.mp4``) stored on job records."""
        return "/" + Path(path).resolve().relative_to(self.public_root.resolve()).as_posix()

    def resolve(self, ref: str) -> Path:
        return self.public_root / ref.lstrip("/")


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    backend_root: Path
    runtime_root: Path
    jobs_root: Path
    config_path: Path
    queue_path: Path
    artifacts: ArtifactLayout
    simulated_artifacts: ArtifactLayout

    def layout(self, simulated: bool) -> ArtifactLayout:
        return self.simulated_artifacts if simulated else self.artifacts

    def ensure(self) -> None:
        self.runtime_root.mkdir(parents=True, exist_ok=True)
        self.jobs_root.mkdir(parents=True, exist_ok=True)
        self.artifacts.ensure()
        self.simulated_artifacts.ensure()


def build_paths(runtime_root: Optional[Path] = None) -> AppPaths:
    backend_root = Path(__file__).resolve().parents[2]
    project_root = backend_root.parent
    if runtime_root is None:
        env_root = os.environ.get("CLIPPER_RUNTIME_ROOT", "").strip()
        runtime_root = Path(env_root) if env_root else project_root / "runtime"
    runtime_root = Path(runtime_root)

    paths = AppPaths(
        project_root=project_root,
        backend_root=backend_root,
        runtime_root=runtime_root,
        jobs_root=runtime_root / "jobs",
        config_path=runtime_root / "config.json",
        queue_path=runtime_root / "queue.sqlite",
        artifacts=ArtifactLayout.under(runtime_root / "public"),
        simulated_artifacts=ArtifactLayout.under(runtime_root / "simulated"),
    )
    paths.ensure()
    return paths


APP_VERSION = "0.1.0"
PATHS = build_paths()
