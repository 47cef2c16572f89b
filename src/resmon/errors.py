"""Error types for resmon."""


class MonitorError(Exception):
    """Base class for resmon errors."""


class SensorError(MonitorError):
    """A sensor query failed; the snapshot for this tick is unavailable."""


class TransportError(MonitorError):
    """A viewer's push channel is gone or refused a message."""


class RenderError(MonitorError):
    """A report section or chart surface could not be drawn."""


class ConfigError(MonitorError, ValueError):
    """Invalid configuration value or file."""
