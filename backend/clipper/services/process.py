"""Async subprocess runner for the external media tools.

stdout and stderr are drained concurrently and split into lines on both
``\\n`` and ``\\r``: ffmpeg and yt-dlp redraw their progress line in place.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from clipper.core.errors import SpawnFailure

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass
class ProcessResult:
    returncode: int
    stdout: str = ""


def tool_name(argv: Sequence[str]) -> str:
    return Path(argv[0]).name


class ProcessRunner:
    """Spawns real processes. Subclasses may script the tools instead."""

    async def run(
        self,
        argv: Sequence[str],
        on_line: Optional[LineCallback] = None,
        collect_stdout: bool = False,
    ) -> ProcessResult:
        name = tool_name(argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SpawnFailure(name, str(exc)) from exc

        collected: list[str] = []

        def _emit(line: str, from_stdout: bool) -> None:
            if not line.strip():
                return
            logger.debug("%s: %s", name, line)
            if from_stdout and collect_stdout:
                collected.append(line)
            if on_line is not None:
                on_line(line)

        try:
            await asyncio.gather(
                _pump(proc.stdout, lambda line: _emit(line, True)),
                _pump(proc.stderr, lambda line: _emit(line, False)),
            )
            returncode = await proc.wait()
        except asyncio.CancelledError:
            # Only raised on engine shutdown; job cancellation leaves tools running.
            if proc.returncode is None:
                proc.kill()
            raise
        return ProcessResult(returncode=returncode, stdout="\n".join(collected))

    async def available(self, binary: str, version_flag: str = "--version") -> bool:
        try:
            result = await self.run([binary, version_flag])
        except SpawnFailure:
            return False
        return result.returncode == 0


async def _pump(stream: Optional[asyncio.StreamReader], emit: LineCallback) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        buffer += decoder.decode(chunk)
        *lines, buffer = _LINE_BREAK.split(buffer)
        for line in lines:
            emit(line)
    buffer += decoder.decode(b"", final=True)
    if buffer:
        emit(buffer)
