from .tracker import AsyncTracker
from .stream import Subscription
from .types import (
    ConfigurationError,
    Listener,
    TrackerClosedError,
    TrackerError,
)

__all__ = [
    "AsyncTracker",
    "Subscription",
    "Listener",
    "TrackerError",
    "TrackerClosedError",
    "ConfigurationError",
]
