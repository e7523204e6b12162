"""config.py
Optional YAML configuration for the recorder.

Lives at ``~/.rspi_recorder/config.yaml`` (the directory can be moved with
``RSPI_RECORDER_HOME``).  Everything has a default, so the file is only
needed to pick a non-default microphone or output directory:

    audio:
      device: "USB PnP Sound Device"
    paths:
      output_dir: /home/pi/recordings

``AUDIO_DEV`` in the environment overrides ``audio.device``.
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml

__all__ = [
    "CONFIG_DIR",
    "ConfigError",
    "DEFAULT_CONFIG",
    "get_audio_device",
    "get_output_dir",
    "load_config",
    "save_config",
]

CONFIG_DIR = Path(os.environ.get("RSPI_RECORDER_HOME", Path.home() / ".rspi_recorder"))
CONFIG_FILE = "config.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "audio": {
        "device": None,
    },
    "paths": {
        "output_dir": ".",
    },
}


class ConfigError(ValueError):
    """Raised for a config file that exists but cannot be used."""


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    """Return the config file merged over :data:`DEFAULT_CONFIG`."""
    path = Path(path) if path is not None else CONFIG_DIR / CONFIG_FILE
    if not path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return _merge(DEFAULT_CONFIG, data)


def save_config(config: dict, path: Optional[Union[str, Path]] = None) -> Path:
    path = Path(path) if path is not None else CONFIG_DIR / CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(config, handle, default_flow_style=False, sort_keys=False)
    return path


def get_audio_device(config: dict) -> Union[int, str, None]:
    device = os.environ.get("AUDIO_DEV") or config.get("audio", {}).get("device")
    if isinstance(device, str):
        device = device.strip()
        if not device:
            return None
        if device.isdigit():
            return int(device)
    return device


def get_output_dir(config: dict) -> Path:
    raw = config.get("paths", {}).get("output_dir") or "."
    return Path(os.path.expanduser(str(raw)))
