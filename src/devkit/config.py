from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ConfigFileError(RuntimeError):
    """Raised when a json config file cannot be read or written."""


def parse_duration(value: str | float | int) -> float:
    """Parse ``"200ms"``, ``"1h30m"`` style durations (or plain seconds) into seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    if not text:
        raise ValueError("duration must not be empty")
    try:
        return float(text)
    except ValueError:
        pass
    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration '{value}', expected values like 200ms, 1s, 30m, 1h")
    return total


def format_duration(seconds: float) -> str:
    """Render seconds in the largest whole unit ``parse_duration`` reads back."""
    for unit, size in (("h", 3600.0), ("m", 60.0), ("s", 1.0), ("ms", 1e-3)):
        count = seconds / size
        if count >= 1 and abs(count - round(count)) < 1e-9:
            return f"{round(count)}{unit}"
    return f"{seconds:.9f}".rstrip("0").rstrip(".") + "s"


def read_json_config(path: str | Path) -> dict[str, Any]:
    file = Path(path)
    if not file.exists():
        return {}
    try:
        payload = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigFileError(f"failed to read config file {file}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigFileError(f"config file {file} must contain a json object")
    return payload


def write_json_config(path: str | Path, values: dict[str, Any]) -> None:
    file = Path(path)
    try:
        file.parent.mkdir(parents=True, exist_ok=True)
        file.write_text(json.dumps(values, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"failed to write config file {file}: {exc}") from exc
