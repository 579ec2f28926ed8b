"""Realtime subscription adapter — one managed change-feed registration.

Learn: A RealtimeSubscription owns at most one FeedHandle at a time.
Callers describe what they want with a SubscriptionDescriptor and call
update() whenever their inputs change; the adapter works out the
transition explicitly:

    same descriptor          → nothing happens
    anything else            → release the old registration first,
                               then register again if enabled
    close()                  → release, and refuse further updates

Every registration gets a generation number. The handler wrapper checks
it before forwarding, so a message that was already in flight when the
registration was released is dropped instead of reaching the caller.

Registration failures are not retried. They are logged, recorded on
`last_error`, reported to the optional `on_error` callback, and the
adapter sits in ERRORED until the next update().
"""

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional

import structlog

from eduverse.realtime.feed import ChangeFeed, ChangeFilter, ChangeHandler, FeedHandle
from eduverse.realtime.filters import RowFilter

logger = structlog.get_logger()


class SubscriptionState(str, enum.Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    ERRORED = "errored"
    CLOSED = "closed"


@dataclass(frozen=True)
class SubscriptionDescriptor:
    """What to register on the change feed; equal descriptors are a no-op update."""

    channel_name: str
    table_name: str
    schema_name: str = "public"
    row_filter: Optional[str] = None
    enabled: bool = True

    def __post_init__(self):
        if not self.channel_name:
            raise ValueError("channel_name must not be empty")
        if not self.table_name:
            raise ValueError("table_name must not be empty")
        if not self.schema_name:
            raise ValueError("schema_name must not be empty")
        if self.row_filter:
            RowFilter.parse(self.row_filter)

    @classmethod
    def disabled(cls, channel_name: str, table_name: str, **kwargs: Any) -> "SubscriptionDescriptor":
        return cls(channel_name=channel_name, table_name=table_name, enabled=False, **kwargs)

    def change_filter(self) -> ChangeFilter:
        return ChangeFilter(
            schema=self.schema_name,
            table=self.table_name,
            event="*",
            filter=self.row_filter or None,
        )


class RealtimeSubscription:
    """Keeps one change-feed registration in line with a descriptor."""

    def __init__(
        self,
        feed: ChangeFeed,
        handler: ChangeHandler,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.feed = feed
        self.handler = handler
        self.on_error = on_error
        self.state = SubscriptionState.IDLE
        self.descriptor: Optional[SubscriptionDescriptor] = None
        self.last_error: Optional[Exception] = None
        self._handle: Optional[FeedHandle] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self.state == SubscriptionState.ACTIVE

    async def update(self, descriptor: Optional[SubscriptionDescriptor]) -> None:
        """Move to the registration described by `descriptor`.

        None is treated like a disabled descriptor: release and go idle.
        """
        async with self._lock:
            if self.state == SubscriptionState.CLOSED:
                raise RuntimeError("Subscription is closed")
            if descriptor == self.descriptor and self.state != SubscriptionState.ERRORED:
                return

            await self._release()
            self.descriptor = descriptor
            if descriptor is None or not descriptor.enabled:
                self.state = SubscriptionState.IDLE
                return
            await self._register(descriptor)

    async def close(self) -> None:
        """Release the registration for good. Safe to call repeatedly."""
        async with self._lock:
            if self.state == SubscriptionState.CLOSED:
                return
            await self._release()
            self.state = SubscriptionState.CLOSED

    async def _register(self, descriptor: SubscriptionDescriptor) -> None:
        self._generation += 1
        generation = self._generation
        self.state = SubscriptionState.SUBSCRIBING
        self.last_error = None

        def forward(payload: dict[str, Any]) -> None:
            if generation != self._generation:
                return
            self.handler(payload)

        try:
            self._handle = await self.feed.subscribe(
                descriptor.channel_name,
                descriptor.change_filter(),
                forward,
            )
        except Exception as e:
            self._generation += 1
            self.state = SubscriptionState.ERRORED
            self.last_error = e
            logger.error(
                "eduverse.realtime.subscribe_failed",
                channel=descriptor.channel_name,
                table=descriptor.table_name,
                error=str(e),
            )
            if self.on_error is not None:
                self.on_error(e)
            return

        self.state = SubscriptionState.ACTIVE

    async def _release(self) -> None:
        # Bump first so anything already in flight is dropped
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.feed.unsubscribe(handle)
        except Exception:
            logger.exception("eduverse.realtime.release_failed", channel=handle.channel_name)
