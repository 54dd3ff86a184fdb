from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, PositiveInt, ValidationError, field_validator

OPTIONS_PATH = Path(os.getenv("GIT_STATUSLINE_OPTIONS_FILE", "/etc/git-statusline/options.json"))
LOCAL_DEV_OPTIONS = Path("./dev/options.json")
DEFAULT_HTTP_PORT = 7998
MIN_FETCH_INTERVAL_MS = 1000


class ConfigError(RuntimeError):
    """Raised when the options file cannot be turned into valid options."""


class Options(BaseModel):
    auto_fetch_interval: int | Literal[False] = 30000
    status_timeout: PositiveInt = 1000
    status_cooldown: int = Field(default=1000, ge=0)
    debug_logging: bool = False
    git_executable: str = "git"
    working_directory: str | None = None
    log_level: str = Field(default="info", pattern=r"^(debug|info|warning|error)$")
    http_host: str = "127.0.0.1"
    http_api_port: int = Field(default=DEFAULT_HTTP_PORT, ge=0, le=65535)

    @field_validator("auto_fetch_interval", mode="before")
    @classmethod
    def _reject_true(cls, value: Any) -> Any:
        # bool is an int subclass; only False has a meaning here
        if value is True:
            raise ValueError("auto_fetch_interval must be milliseconds or false")
        return value

    def fetch_interval_seconds(self) -> float | None:
        """Effective auto-fetch period, or None when auto fetch is disabled."""
        interval = self.auto_fetch_interval
        if interval is False or interval <= 0:
            return None
        return max(interval, MIN_FETCH_INTERVAL_MS) / 1000

    def cwd(self) -> Path:
        return Path(self.working_directory or os.getcwd())


def merge_options(base: Options, overrides: dict[str, Any] | None) -> Options:
    """Return a validated copy of ``base`` with ``overrides`` applied on top."""
    data = base.model_dump()
    data.update(overrides or {})
    try:
        return Options(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid options: {exc}") from exc


def _load_raw_options() -> dict[str, Any]:
    candidates = [OPTIONS_PATH, LOCAL_DEV_OPTIONS]
    for candidate in candidates:
        if candidate.exists():
            try:
                with candidate.open("r", encoding="utf-8") as handle:
                    return json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Malformed options file {candidate}: {exc}") from exc
    return {}


def load_options(overrides: dict[str, Any] | None = None) -> Options:
    raw = _load_raw_options()
    if not isinstance(raw, dict):
        raise ConfigError("Options file must contain a JSON object")
    return merge_options(Options(), {**raw, **(overrides or {})})
