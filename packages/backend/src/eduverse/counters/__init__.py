"""Live counters — counts kept fresh by the change feed."""

from eduverse.counters.live import CounterPhase, CounterSource, CounterState, LiveCounter
from eduverse.counters.sources import (
    COUNTER_SOURCES,
    PendingSubmissions,
    UnreadAdminMessages,
    UnreadNotifications,
    UnreadParentMessages,
    get_counter_source,
)

__all__ = [
    "COUNTER_SOURCES",
    "CounterPhase",
    "CounterSource",
    "CounterState",
    "LiveCounter",
    "PendingSubmissions",
    "UnreadAdminMessages",
    "UnreadNotifications",
    "UnreadParentMessages",
    "get_counter_source",
]
