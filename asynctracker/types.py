from collections.abc import Callable
from typing import Any


Listener = Callable[[], Any]


class TrackerError(Exception):
    """Base class for errors raised by asynctracker."""

    pass


class TrackerClosedError(TrackerError, RuntimeError):
    """Raised when a listener is added to a tracker that has been closed."""

    pass


class ConfigurationError(TrackerError, ValueError):
    """Raised when a tracker is configured with an invalid value."""

    pass
