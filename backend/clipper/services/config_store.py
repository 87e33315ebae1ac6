"""Read/write persisted local configuration."""

from __future__ import annotations

import json
from pathlib import Path

from clipper.core.settings import PATHS
from clipper.schemas.config import AppConfig


def load_config(path: Path = PATHS.config_path) -> AppConfig:
    if not path.exists():
        return AppConfig()
    data = json.loads(path.read_text(encoding="utf-8"))
    return AppConfig.model_validate(data)


def save_config(config: AppConfig, path: Path = PATHS.config_path) -> AppConfig:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(config.model_dump(), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return config
