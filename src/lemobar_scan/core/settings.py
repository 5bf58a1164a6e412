from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from devkit.config import ConfigFileError, format_duration, parse_duration, read_json_config, write_json_config
from pydantic import ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lemobar_scan.core.exceptions import ConfigError
from lemobar_scan.core.models import ScanBudget, ScanOptions

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_INTERVAL_SECONDS = 0.2
DEFAULT_DURATION_SECONDS = 30 * 60.0
DEFAULT_MAX_BLOCKS = 5000
DEFAULT_OUTPUT_DB = "lemobar_scan.db"
DEFAULT_OUTPUT_EXPORT = "lemobar_export.csv"

_MASK_VISIBLE_CHARS = 20


class ScanSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEMOBAR_", extra="ignore")

    authorization: str = ""
    interval: float = DEFAULT_INTERVAL_SECONDS
    duration: float = DEFAULT_DURATION_SECONDS
    max_blocks: int = DEFAULT_MAX_BLOCKS
    output_db: str = DEFAULT_OUTPUT_DB
    output_export: str = DEFAULT_OUTPUT_EXPORT

    @field_validator("interval", "duration", mode="before")
    @classmethod
    def _parse_duration_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("interval", "duration", "max_blocks")
    @classmethod
    def _positive_or_default(cls, value: float, info: ValidationInfo) -> float:
        if value <= 0:
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("output_db", "output_export")
    @classmethod
    def _path_or_default(cls, value: str, info: ValidationInfo) -> str:
        if not value.strip():
            return cls.model_fields[info.field_name].default
        return value

    def require_authorization(self) -> str:
        token = self.authorization.strip()
        if not token:
            raise ConfigError("authorization is not set, configure it before starting a scan")
        return token

    def masked_authorization(self) -> str:
        if not self.authorization:
            return "<unset>"
        if len(self.authorization) > _MASK_VISIBLE_CHARS:
            return self.authorization[:_MASK_VISIBLE_CHARS] + "..."
        return self.authorization

    def to_scan_options(self) -> ScanOptions:
        return ScanOptions(
            budget=ScanBudget(max_points=self.max_blocks, max_duration_seconds=self.duration),
            interval_seconds=self.interval,
        )


# Keys written by the first release of the tool, durations there are integer nanoseconds.
LEGACY_KEYS: dict[str, str] = {
    "maxBlocks": "max_blocks",
    "outputDB": "output_db",
    "outputExcel": "output_export",
}
_DURATION_FIELDS = ("interval", "duration")
_NANOSECONDS_PER_SECOND = 1_000_000_000


def read_config_file(config_file: str | Path = DEFAULT_CONFIG_FILE) -> dict[str, Any]:
    """Return the values stored in ``config_file`` under the current field names, durations in seconds."""
    try:
        raw = read_json_config(config_file)
    except ConfigFileError as exc:
        raise ConfigError(str(exc)) from exc
    values: dict[str, Any] = {}
    for key, value in raw.items():
        name = LEGACY_KEYS.get(key, key)
        if name in values and key != name:
            continue
        values[name] = value
    for name in _DURATION_FIELDS:
        value = values.get(name)
        if isinstance(value, int) and not isinstance(value, bool):
            values[name] = value / _NANOSECONDS_PER_SECOND
    return values


def load_settings(config_file: str | Path = DEFAULT_CONFIG_FILE) -> ScanSettings:
    """Build settings from environment variables, overridden by the values stored in ``config_file``."""
    values = read_config_file(config_file)
    try:
        settings = ScanSettings(**values)
    except ValidationError as exc:
        raise ConfigError(f"invalid config file {config_file}: {exc}") from exc
    logger.debug("settings_loaded", extra={"config_file": str(config_file), "from_file": sorted(values)})
    return settings


def save_settings(values: Mapping[str, Any], config_file: str | Path = DEFAULT_CONFIG_FILE) -> None:
    """Write ``values`` (as returned by ``read_config_file``) with durations as text like ``200ms``."""
    payload = dict(values)
    for name in _DURATION_FIELDS:
        value = payload.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            payload[name] = format_duration(value)
    try:
        write_json_config(config_file, payload)
    except ConfigFileError as exc:
        raise ConfigError(str(exc)) from exc


def parse_setting_value(key: str, raw_value: str) -> Any:
    """Validate a value given on the command line, rejecting what the loader would silently replace."""
    value = raw_value.strip()
    if key not in ScanSettings.model_fields:
        supported = ", ".join(ScanSettings.model_fields)
        raise ConfigError(f"unknown setting '{key}', supported: {supported}")
    if not value:
        raise ConfigError(f"{key} must not be empty")
    if key in _DURATION_FIELDS:
        try:
            seconds = parse_duration(value)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if seconds <= 0:
            raise ConfigError(f"{key} must be > 0")
        return seconds
    if key == "max_blocks":
        try:
            blocks = int(value)
        except ValueError as exc:
            raise ConfigError("max_blocks must be a positive integer") from exc
        if blocks <= 0:
            raise ConfigError("max_blocks must be a positive integer")
        return blocks
    return value


def store_setting(config_file: str | Path, key: str, raw_value: str) -> ScanSettings:
    """Persist one setting to ``config_file`` and reload.

    Only the values already in the file plus ``key`` are written, so values
    coming from ``LEMOBAR_*`` variables never end up on disk.
    """
    value = parse_setting_value(key, raw_value)
    values = read_config_file(config_file)
    values[key] = value
    save_settings(values, config_file)
    return load_settings(config_file)
