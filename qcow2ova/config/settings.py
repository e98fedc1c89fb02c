"""Settings storage for conversion defaults."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "QCOW2OVA_SETTINGS_PATH",
        Path.home() / ".config" / "qcow2ova" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_IMAGE_SIZE_GIB = 11
DEFAULT_TARGET_DISK_SIZE_GIB = 120
DEFAULT_FETCH_TIMEOUT_SECONDS = 30 * 60
DEFAULT_DISK_SPACE_BUFFER_GIB = 50
DEFAULT_WRITE_TO_DIR = "/root"

DEFAULT_SETTINGS: dict[str, Any] = {
    "temp_dir": tempfile.gettempdir(),
    "image_size_gib": DEFAULT_IMAGE_SIZE_GIB,
    "target_disk_size_gib": DEFAULT_TARGET_DISK_SIZE_GIB,
    "fetch_timeout_seconds": DEFAULT_FETCH_TIMEOUT_SECONDS,
    "disk_space_buffer_gib": DEFAULT_DISK_SPACE_BUFFER_GIB,
    "write_to_dir": DEFAULT_WRITE_TO_DIR,
    "nameserver": "9.9.9.9",
    "supported_os": "linux",
    "supported_arch": "ppc64le",
    "require_btrfs": False,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Path | None = None) -> None:
    path = path or SETTINGS_PATH
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_int(key: str, default: int = 0) -> int:
    value = get_setting(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


load_settings()
