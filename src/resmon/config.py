"""Configuration for resmon.

Settings come from three layers, later ones winning: built-in defaults, an
optional JSON file, and ``RESMON_*`` environment variables. The command line
entry points apply their flags on top.
"""

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from typing import Any

from resmon.errors import ConfigError
from resmon.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PORT = 3000
SAMPLE_PERIOD = 1.0  # seconds between pushes to a viewer
WINDOW_CAPACITY = 60  # one minute of history at SAMPLE_PERIOD
TRACKING_DURATION = 5 * 60.0  # seconds
TOP_PROCESS_LIMIT = 10
COMMAND_WIDTH = 50
REPORT_DIR = "reports"

ENV_PREFIX = "RESMON_"


@dataclass(slots=True, frozen=True)
class Settings:
    """Process-wide settings shared by the server and the dashboard."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    server_url: str = f"http://localhost:{DEFAULT_PORT}"
    sample_period: float = SAMPLE_PERIOD
    window_capacity: int = WINDOW_CAPACITY
    tracking_duration: float = TRACKING_DURATION
    process_limit: int = TOP_PROCESS_LIMIT
    command_width: int = COMMAND_WIDTH
    report_dir: str = REPORT_DIR
    static_dir: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def load(
        cls,
        path: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "Settings":
        """
        Build settings from defaults, a JSON file and the environment.

        Args:
            path: Optional JSON file holding an object of setting names.
            env: Environment mapping; defaults to ``os.environ``.

        Raises:
            ConfigError: If the file is unreadable or a value is invalid.
        """
        values: dict[str, Any] = {}
        if path is not None:
            values.update(_read_json(path))
        values.update(_read_env(os.environ if env is None else env))
        settings = cls().with_overrides(**values)
        logger.debug("Loaded settings: %s", settings)
        return settings

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the given non-None values applied and validated."""
        known = {f.name: f for f in fields(self)}
        unknown = sorted(set(overrides) - set(known))
        if unknown:
            raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")

        coerced = {
            name: _coerce(name, known[name].type, value)
            for name, value in overrides.items()
            if value is not None
        }
        settings = replace(self, **coerced)
        settings.validate()
        return settings

    def validate(self) -> None:
        """Check value ranges."""
        if not 0 < self.port < 65536:
            raise ConfigError(f"Invalid port {self.port}: must be 1-65535")
        if self.sample_period <= 0:
            raise ConfigError("sample_period must be positive")
        if self.window_capacity <= 0:
            raise ConfigError("window_capacity must be positive")
        if self.tracking_duration <= 0:
            raise ConfigError("tracking_duration must be positive")
        if self.process_limit <= 0:
            raise ConfigError("process_limit must be positive")
        if self.command_width < 0:
            raise ConfigError("command_width must not be negative")


def _read_json(path: str) -> dict[str, Any]:
    if not os.path.exists(path):
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a JSON object")
    return data


def _read_env(env: Mapping[str, str]) -> dict[str, str]:
    names = {f.name for f in fields(Settings)}
    values = {}
    for key, value in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in names:
            values[name] = value
    return values


def _coerce(name: str, declared: Any, value: Any) -> Any:
    """Coerce a raw JSON/env value to the declared field type."""
    try:
        if declared is int:
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise ValueError(value)
            return int(value)
        if declared is float:
            if isinstance(value, bool):
                raise ValueError(value)
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {value!r}") from e
    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for {name}: {value!r} (expected a string)")
    return value
