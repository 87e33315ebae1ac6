"""Listing and manual removal of cached downloads and clips."""

from __future__ import annotations

from pathlib import Path

from clipper.core.errors import ArtifactMissing, InvalidArtifactPath
from clipper.core.settings import ArtifactLayout
from clipper.schemas.job import ArtifactOut


def _kind_of(directory: str, path: Path) -> str:
    if path.name.endswith(".metadata.json"):
        return "metadata"
    return "download" if directory == "downloads" else "clip"


def list_artifacts(layout: ArtifactLayout) -> list[ArtifactOut]:
    items: list[ArtifactOut] = []
    for directory in (layout.downloads_dir, layout.clips_dir):
        if not directory.exists():
            continue
        for path in directory.iterdir():
            if not path.is_file() or path.name.startswith("."):
                continue
            stat = path.stat()
            items.append(
                ArtifactOut(
                    name=path.name,
                    path=layout.ref_for(path),
                    size=stat.st_size,
                    created_at=int(stat.st_mtime * 1000),
                    type=_kind_of(directory.name, path),
                    extension=path.suffix,
                )
            )
    items.sort(key=lambda item: item.created_at, reverse=True)
    return items


def delete_artifact(layout: ArtifactLayout, ref: str) -> Path:
    target = layout.resolve(ref).resolve()
    allowed = (layout.downloads_dir.resolve(), layout.clips_dir.resolve())
    if target.parent not in allowed:
        raise InvalidArtifactPath(f"Invalid file path: {ref}")
    if not target.is_file():
        raise ArtifactMissing(f"File not found: {ref}")
    target.unlink()
    return target
