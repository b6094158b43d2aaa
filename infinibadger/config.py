"""Configuration models and loading.

Settings come from an optional YAML file and are overridden by command line
flags. Example file:

```yaml
listen_address: ":8080"
download_interval: 15m
state_file: /var/lib/infinibadger/state.json
source:
  instance: my-postgres
  region: eu-west-1
analysis:
  outdir: /srv/pgbadger
  retention_weeks: 4
  prefix: "%t:%r:%u@%d:[%p]:"
```
"""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from infinibadger.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "%t:%r:%u@%d:[%p]:"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float]) -> float:
    """Parse a duration such as ``"15m"``, ``"1h30m"``, ``"90s"`` or ``900``.

    Bare numbers are seconds.

    Raises:
        ConfigValidationError: If the value is not a positive duration
    """
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigValidationError(f"Invalid duration: {value!r}", key="download_interval")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
                pos = match.end()
            if not text or pos != len(text):
                raise ConfigValidationError(f"Invalid duration: {value!r}", key="download_interval")
    if seconds <= 0:
        raise ConfigValidationError(f"Duration must be positive: {value!r}", key="download_interval")
    return seconds


class SourceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    instance: str = ""
    region: str = "us-east-1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    retry_attempts: int = 1

    @field_validator("retry_attempts")
    def _validate_retry_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("retry_attempts must be >= 1")
        return value


class AnalysisConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    outdir: str = "outdir"
    retention_weeks: int = 4
    prefix: str = DEFAULT_PREFIX
    anonymize: bool = True
    start_monday: bool = True
    executable: str = "pgbadger"

    @field_validator("retention_weeks")
    def _validate_retention(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retention_weeks must be >= 0")
        return value


class BadgerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    listen_address: str = ":8080"
    download_interval: float = 900.0
    state_file: Optional[str] = None
    source: SourceConfig = Field(default_factory=SourceConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)

    @field_validator("download_interval", mode="before")
    def _validate_interval(cls, value: Any) -> float:
        try:
            return parse_duration(value)
        except ConfigValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("listen_address")
    def _validate_listen_address(cls, value: str) -> str:
        _, sep, port = value.rpartition(":")
        if not sep or not port.isdigit():
            raise ValueError(f"listen_address must look like host:port, got '{value}'")
        return value


def _validation_error(e: ValidationError, config_path: Optional[str] = None) -> ConfigValidationError:
    first = e.errors()[0]
    key = ".".join(str(part) for part in first.get("loc", ()))
    return ConfigValidationError(
        f"Invalid configuration: {first.get('msg')}",
        config_path=config_path,
        key=key or None,
    )


def _read_yaml(path: str) -> Dict[str, Any]:
    logger.info(f"Loading config from {path}")

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(f"Config file not found: {path}", config_path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in config file: {e}", config_path=path)

    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigValidationError("Config must be a YAML dictionary/object", config_path=path)

    return cfg


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> BadgerConfig:
    """Load configuration from YAML (optional) and apply overrides.

    Args:
        path: YAML config file, or None for defaults
        overrides: Nested mapping (e.g. from CLI flags); ``None`` values are ignored

    Raises:
        ConfigValidationError: If the file cannot be read or a value is invalid
    """
    data = _read_yaml(path) if path else {}
    merged = _merge(data, overrides or {})
    try:
        return BadgerConfig.model_validate(merged)
    except ValidationError as e:
        raise _validation_error(e, path) from e


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        elif isinstance(value, dict):
            result[key] = _merge({}, value)
        else:
            result[key] = value
    return result


def validate_for_run(cfg: BadgerConfig) -> None:
    """Check settings required to start the download loop."""
    if not cfg.source.instance:
        raise ConfigValidationError("An RDS instance identifier is required", key="source.instance")
    if bool(cfg.source.access_key) != bool(cfg.source.secret_key):
        raise ConfigValidationError(
            "Both the access key and the secret key must be given", key="source.access_key"
        )
