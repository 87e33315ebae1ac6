"""Error taxonomy shared by the engine, orchestrators and routes."""

from __future__ import annotations

from typing import Optional


class ClipperError(RuntimeError):
    pass


class DependencyMissing(ClipperError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"{tool} is not installed. Please install it first.")
        self.tool = tool


class SpawnFailure(ClipperError):
    def __init__(self, tool: str, reason: str) -> None:
        super().__init__(f"Failed to spawn {tool}: {reason}")
        self.tool = tool


class ToolExitFailure(ClipperError):
    def __init__(self, tool: str, exit_code: Optional[int]) -> None:
        super().__init__(f"{tool} exited with code {exit_code}")
        self.tool = tool
        self.exit_code = exit_code


class ArtifactMissing(ClipperError):
    pass


class JobNotFound(ClipperError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransition(ClipperError):
    pass


class InvalidArtifactPath(ClipperError):
    pass
