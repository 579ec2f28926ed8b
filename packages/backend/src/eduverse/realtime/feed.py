"""Change feed — row-change notifications pushed to subscribers.

Learn: The backend publishes one JSON message per row change on a Redis
channel named `{prefix}:{schema}:{table}`:

    {"schema": "public", "table": "admin_message_recipients",
     "type": "UPDATE", "record": {...}, "old_record": {...},
     "commit_timestamp": "2026-01-01T00:00:00Z"}

Redis pub/sub is fire-and-forget: if nobody listens, the message is lost.
That is fine here — consumers treat a change only as a trigger to re-query,
never as the data itself.

Each subscription gets its own pubsub connection and listener task, so
messages for one registration are delivered strictly in publish order.
Registrations are tracked per handle, not per channel name: two dashboards
open for the same user and school each hold their own handle, and only the
owner of a handle can release it.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
import structlog

from eduverse.realtime.filters import RowFilter

logger = structlog.get_logger()

ChangeHandler = Callable[[dict[str, Any]], None]

EVENT_TYPES = ("*", "INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True)
class ChangeFilter:
    """Which changes a registration wants: schema/table, event, row filter."""

    schema: str
    table: str
    event: str = "*"
    filter: Optional[str] = None

    def __post_init__(self):
        if self.event not in EVENT_TYPES:
            raise ValueError(f"Unknown change event {self.event!r}")

    @property
    def row_filter(self) -> Optional[RowFilter]:
        return RowFilter.parse(self.filter) if self.filter else None

    def matches(self, payload: dict[str, Any]) -> bool:
        if payload.get("schema") != self.schema or payload.get("table") != self.table:
            return False
        change_type = payload.get("type")
        if self.event != "*" and change_type != self.event:
            return False

        row_filter = self.row_filter
        if row_filter is None:
            return True
        # Deleted rows only carry the old image
        row = payload.get("record") or {}
        if change_type == "DELETE" or not row:
            row = payload.get("old_record") or {}
        return row_filter.matches(row)


@dataclass(eq=False)
class FeedHandle:
    """One live registration. Owned by whoever called subscribe()."""

    channel_name: str
    change_filter: ChangeFilter
    released: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)
    pubsub: Any = field(default=None, repr=False)


class ChangeFeed(ABC):
    """Backend change-feed service: subscribe / unsubscribe."""

    @abstractmethod
    async def subscribe(
        self,
        channel_name: str,
        change_filter: ChangeFilter,
        handler: ChangeHandler,
    ) -> FeedHandle:
        """Register a handler; it is called once per matching change.

        Every call returns a new handle, even for a channel name that is
        already in use.
        """

    @abstractmethod
    async def unsubscribe(self, handle: FeedHandle) -> None:
        """Release a registration. Safe to call more than once."""

    async def close(self) -> None:
        """Release everything this feed holds."""

    async def ping(self) -> bool:
        return True


def redis_channel(prefix: str, schema: str, table: str) -> str:
    return f"{prefix}:{schema}:{table}"


class RedisChangeFeed(ChangeFeed):
    """Change feed backed by Redis pub/sub."""

    def __init__(self, redis: aioredis.Redis, prefix: str = "eduverse:changes"):
        self.redis = redis
        self.prefix = prefix
        self._active: list[FeedHandle] = []

    @classmethod
    def from_url(cls, url: str, prefix: str = "eduverse:changes") -> "RedisChangeFeed":
        redis = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(redis, prefix=prefix)

    @property
    def active_channels(self) -> list[str]:
        return [handle.channel_name for handle in self._active]

    async def subscribe(
        self,
        channel_name: str,
        change_filter: ChangeFilter,
        handler: ChangeHandler,
    ) -> FeedHandle:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(
                redis_channel(self.prefix, change_filter.schema, change_filter.table)
            )
        except BaseException:
            await pubsub.aclose()
            raise

        handle = FeedHandle(
            channel_name=channel_name,
            change_filter=change_filter,
            pubsub=pubsub,
        )
        handle.task = asyncio.create_task(self._listen(handle, handler))
        self._active.append(handle)

        logger.info(
            "eduverse.realtime.subscribed",
            channel=channel_name,
            schema=change_filter.schema,
            table=change_filter.table,
            filter=change_filter.filter,
        )
        return handle

    async def _listen(self, handle: FeedHandle, handler: ChangeHandler) -> None:
        try:
            async for message in handle.pubsub.listen():
                if message["type"] != "message":
                    continue
                self.deliver(handle, message["data"], handler)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("eduverse.realtime.listener_failed", channel=handle.channel_name)

    def deliver(self, handle: FeedHandle, raw: str, handler: ChangeHandler) -> bool:
        """Forward one raw message to the handler. Returns True if delivered."""
        if handle.released:
            return False
        try:
            payload = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning("eduverse.realtime.bad_payload", channel=handle.channel_name)
            return False
        if not isinstance(payload, dict) or not handle.change_filter.matches(payload):
            return False

        try:
            handler(payload)
        except Exception:
            logger.exception("eduverse.realtime.handler_failed", channel=handle.channel_name)
        return True

    async def unsubscribe(self, handle: FeedHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if handle in self._active:
            self._active.remove(handle)

        if handle.task is not None:
            handle.task.cancel()
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
        if handle.pubsub is not None:
            try:
                await handle.pubsub.unsubscribe()
            finally:
                await handle.pubsub.aclose()

        logger.info("eduverse.realtime.unsubscribed", channel=handle.channel_name)

    async def close(self) -> None:
        for handle in list(self._active):
            await self.unsubscribe(handle)
        await self.redis.aclose()

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except Exception:
            return False
