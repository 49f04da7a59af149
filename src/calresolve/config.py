"""Engine configuration loading and validation.

Reads ``calresolve.toml`` from a config directory, resolves ``${VAR}``
environment references, and returns a validated ``EngineConfig`` dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from calresolve.timeutil import ensure_valid_timezone

CONFIG_FILENAME = "calresolve.toml"

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when engine configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [engine.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class SlotConfig:
    """Alternative-slot search settings from [engine.slots].

    Candidate starts are scanned every ``granularity_minutes`` between
    ``day_start_hour`` and ``day_end_hour`` local time; a slot must end by
    ``day_end_hour``.
    """

    day_start_hour: int = 8
    day_end_hour: int = 22
    granularity_minutes: int = 60
    max_same_day: int = 2
    max_suggestions: int = 4
    next_day_first_free: bool = False


@dataclass
class GoogleConfig:
    """Google Calendar gateway settings from [engine.google].

    ``access_token`` is a bearer token obtained outside the engine, usually
    injected as ``${CALRESOLVE_GOOGLE_ACCESS_TOKEN}``.
    """

    access_token: str | None = None
    request_timeout_s: float = 30.0


@dataclass
class EngineConfig:
    timezone: str = "UTC"
    fetch_timeout_s: float = 10.0
    authorized_calendars: tuple[str, ...] = ()
    slots: SlotConfig = field(default_factory=SlotConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(f"Unresolved environment variable(s) in config value: {vars_str}")

    return result


def _section(parent: dict[str, Any], key: str, dotted: str) -> dict[str, Any]:
    section = parent.get(key, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{dotted}] must be a table")
    return section


def _positive_int(section: dict[str, Any], key: str, default: int, dotted: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
        raise ConfigError(f"Invalid {dotted}.{key}: {raw!r}. Must be a positive integer.")
    return raw


def _positive_float(section: dict[str, Any], key: str, default: float, dotted: str) -> float:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, int | float) or raw <= 0:
        raise ConfigError(f"Invalid {dotted}.{key}: {raw!r}. Must be a positive number.")
    return float(raw)


def _parse_slots(engine_section: dict[str, Any]) -> SlotConfig:
    section = _section(engine_section, "slots", "engine.slots")
    defaults = SlotConfig()

    day_start_hour = section.get("day_start_hour", defaults.day_start_hour)
    day_end_hour = section.get("day_end_hour", defaults.day_end_hour)
    for key, value in (("day_start_hour", day_start_hour), ("day_end_hour", day_end_hour)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 24:
            raise ConfigError(f"Invalid engine.slots.{key}: {value!r}. Must be between 0 and 24.")
    if day_end_hour <= day_start_hour:
        raise ConfigError("engine.slots.day_end_hour must be after engine.slots.day_start_hour")

    next_day_first_free = section.get("next_day_first_free", defaults.next_day_first_free)
    if not isinstance(next_day_first_free, bool):
        raise ConfigError("engine.slots.next_day_first_free must be a boolean")

    return SlotConfig(
        day_start_hour=day_start_hour,
        day_end_hour=day_end_hour,
        granularity_minutes=_positive_int(
            section, "granularity_minutes", defaults.granularity_minutes, "engine.slots"
        ),
        max_same_day=_positive_int(section, "max_same_day", defaults.max_same_day, "engine.slots"),
        max_suggestions=_positive_int(
            section, "max_suggestions", defaults.max_suggestions, "engine.slots"
        ),
        next_day_first_free=next_day_first_free,
    )


def _parse_logging(engine_section: dict[str, Any]) -> LoggingConfig:
    section = _section(engine_section, "logging", "engine.logging")
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid engine.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def _parse_google(engine_section: dict[str, Any]) -> GoogleConfig:
    section = _section(engine_section, "google", "engine.google")
    access_token = section.get("access_token")
    if access_token is not None and not isinstance(access_token, str):
        raise ConfigError("engine.google.access_token must be a string when set")
    return GoogleConfig(
        access_token=access_token.strip() if access_token else None,
        request_timeout_s=_positive_float(section, "request_timeout_s", 30.0, "engine.google"),
    )


def parse_config(data: dict[str, Any]) -> EngineConfig:
    """Validate an already-decoded config mapping."""
    data = resolve_env_vars(data)
    engine_section = _section(data, "engine", "engine")

    timezone = str(engine_section.get("timezone", "UTC")).strip()
    try:
        ensure_valid_timezone(timezone)
    except ValueError as exc:
        raise ConfigError(f"Invalid engine.timezone: {timezone!r}") from exc

    raw_authorized = engine_section.get("authorized_calendars", [])
    if not isinstance(raw_authorized, list) or not all(
        isinstance(item, str) for item in raw_authorized
    ):
        raise ConfigError("engine.authorized_calendars must be a list of strings")
    authorized_calendars = tuple(item.strip() for item in raw_authorized if item.strip())

    return EngineConfig(
        timezone=timezone,
        fetch_timeout_s=_positive_float(engine_section, "fetch_timeout_s", 10.0, "engine"),
        authorized_calendars=authorized_calendars,
        slots=_parse_slots(engine_section),
        logging=_parse_logging(engine_section),
        google=_parse_google(engine_section),
    )


def load_config(config_dir: Path) -> EngineConfig:
    """Load and validate ``calresolve.toml`` from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = config_dir / CONFIG_FILENAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
