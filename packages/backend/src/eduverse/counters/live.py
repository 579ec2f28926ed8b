"""Live counter — a count that stays fresh via the change feed.

Learn: A LiveCounter answers "how many rows match X for this school right
now?" and keeps answering as rows change:

    IDLE ──set_scope(id)──▶ LOADING ──count resolves──▶ READY
      ▲                                                   │
      └──────────── set_scope(None) / close() ◀───────────┘

On every change event it re-runs the full count instead of adjusting
the number in place — a missed or reordered event can never leave the
value drifting.

Recounts are not serialized. If two events arrive back to back, two
queries run and whichever finishes last sets the value. Every async path
carries the generation number it started under; when the scope changes or
the counter closes the generation moves on and late results are dropped.
"""

import asyncio
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

import structlog

from eduverse.backend.auth import AuthResult
from eduverse.backend.client import BackendClient
from eduverse.backend.query import QueryResult
from eduverse.realtime.subscription import RealtimeSubscription, SubscriptionDescriptor

logger = structlog.get_logger()


class CounterPhase(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class CounterState:
    value: int = 0
    is_loading: bool = False
    phase: CounterPhase = CounterPhase.IDLE


class CounterSource(ABC):
    """What to count, and which table changes should trigger a recount."""

    name: str
    table: str

    @abstractmethod
    async def count(self, client: BackendClient, scope_id: str, user_id: str) -> QueryResult:
        """Run the count query for one scope and user."""

    @abstractmethod
    def subscription(self, scope_id: str, user_id: str) -> SubscriptionDescriptor:
        """Describe the change-feed registration that keeps the count fresh."""


class LiveCounter:
    """Derived count for one scope, refreshed on every relevant change."""

    def __init__(
        self,
        client: BackendClient,
        source: CounterSource,
        on_state: Optional[Callable[[CounterState], None]] = None,
    ):
        self.client = client
        self.source = source
        self.on_state = on_state
        self.state = CounterState()
        self.scope_id: Optional[str] = None
        self.user_id: Optional[str] = None
        self.subscription = RealtimeSubscription(client.feed, self._on_change)
        self._generation = 0
        self._closed = False
        self._recounts: set[asyncio.Task] = set()

    # ─── Scope lifecycle ────────────────────────────────

    async def set_scope(self, scope_id: Optional[str]) -> None:
        """Point the counter at a new scope (None means no scope selected)."""
        if self._closed:
            raise RuntimeError("Counter is closed")
        if scope_id == self.scope_id and self.state.phase != CounterPhase.IDLE:
            return

        self._generation += 1
        generation = self._generation
        self.scope_id = scope_id
        self.user_id = None

        if scope_id is None:
            self._set_state(CounterState())
            await self.subscription.update(None)
            return

        self._set_state(CounterState(value=0, is_loading=True, phase=CounterPhase.LOADING))

        # Nothing is subscribed until we know who is asking
        try:
            identity = await self.client.auth.get_user()
        except Exception:
            logger.exception("eduverse.counter.identity_crashed", counter=self.source.name, scope=scope_id)
            identity = AuthResult(user=None)
        if self._superseded(generation):
            return
        if identity.user is None:
            logger.warning(
                "eduverse.counter.no_identity",
                counter=self.source.name,
                scope=scope_id,
                error=identity.error.message if identity.error else None,
            )
            await self.subscription.update(None)
            if not self._superseded(generation):
                self._set_state(CounterState())
            return

        self.user_id = identity.user.id
        await self.subscription.update(self.source.subscription(scope_id, self.user_id))
        if self._superseded(generation):
            return
        await self._recount(generation)

    async def refresh(self) -> None:
        """Recount now and wait for the result."""
        if self.scope_id is None or self.user_id is None:
            return
        await self._recount(self._generation)

    async def close(self) -> None:
        """Release the registration and drop pending results. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        await self.subscription.close()
        for task in list(self._recounts):
            task.cancel()
        if self._recounts:
            await asyncio.gather(*self._recounts, return_exceptions=True)

    # ─── Internals ──────────────────────────────────────

    def _superseded(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    def _on_change(self, payload: dict[str, Any]) -> None:
        if self.scope_id is None or self.user_id is None:
            return
        task = asyncio.create_task(self._recount(self._generation))
        self._recounts.add(task)
        task.add_done_callback(self._recounts.discard)

    async def _recount(self, generation: int) -> None:
        scope_id, user_id = self.scope_id, self.user_id
        if scope_id is None or user_id is None:
            return
        try:
            result = await self.source.count(self.client, scope_id, user_id)
        except Exception:
            logger.exception("eduverse.counter.count_crashed", counter=self.source.name, scope=scope_id)
            if not self._superseded(generation):
                self._set_state(replace(self.state, is_loading=False))
            return

        if self._superseded(generation):
            logger.debug("eduverse.counter.stale_result", counter=self.source.name, scope=scope_id)
            return

        if result.error is not None:
            logger.warning(
                "eduverse.counter.count_failed",
                counter=self.source.name,
                scope=scope_id,
                error=result.error.message,
            )
            self._set_state(replace(self.state, is_loading=False))
            return

        self._set_state(
            CounterState(value=max(result.count or 0, 0), is_loading=False, phase=CounterPhase.READY)
        )

    def _set_state(self, state: CounterState) -> None:
        if state == self.state:
            return
        self.state = state
        if self.on_state is not None:
            self.on_state(state)
