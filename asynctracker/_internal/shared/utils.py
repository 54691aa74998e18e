import math
import os

from asynctracker.types import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}


def format_duration(seconds: float | None) -> str:
    """Format duration for display."""
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


def resolve_bool_flag(explicit: bool | None, env_var: str) -> bool:
    """Resolve a boolean flag from explicit value or environment variable."""
    if explicit is not None:
        return explicit

    raw = os.getenv(env_var)
    if raw is None:
        return False

    return raw.strip().lower() in _TRUE_VALUES


def resolve_delay(explicit: float | None, env_var: str) -> float | None:
    """Resolve a debounce delay in seconds from explicit value or environment.

    Returns None (no fixed delay) when neither is set.

    Raises:
        ConfigurationError: If the delay is negative, infinite or not a number.
    """
    value: float | None = explicit
    if value is None:
        raw = os.getenv(env_var)
        if raw is None or not raw.strip():
            return None
        try:
            value = float(raw)
        except ValueError:
            raise ConfigurationError(
                f"{env_var} must be a number of seconds, got {raw!r}"
            ) from None

    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(
            f"debounce delay must be a finite number >= 0, got {value}"
        )
    return float(value)
