"""Human-readable formatting shared by the dashboard and the report."""

UNITS = ["B", "KB", "MB", "GB", "TB"]
SHORT_UNITS = ["B", "K", "M", "G", "T"]


def format_bytes(size: float, short: bool = False) -> str:
    """Format a byte count, e.g. ``1.5 KB`` (or ``1.5 K`` when short)."""
    if not size or size < 0:
        return "0" if short else "0 B"
    units = SHORT_UNITS if short else UNITS
    for unit in units[:-1]:
        if size < 1024:
            return f"{size:.1f} {unit}" if unit != units[0] else f"{size:.0f} {unit}"
        size = size / 1024
    return f"{size:.1f} {units[-1]}"


def format_rate(bytes_per_sec: float) -> str:
    return f"{format_bytes(bytes_per_sec)}/s"


def format_percent(value: float) -> str:
    return f"{value:5.1f}%"


def format_countdown(seconds: float) -> str:
    """Format remaining seconds as MM:SS."""
    whole = max(0, int(seconds))
    return f"{whole // 60:02d}:{whole % 60:02d}"
