"""Counter service — one-shot counts and live counters for the API layer."""

from typing import Callable, Optional

from eduverse.backend.client import BackendClient
from eduverse.counters.live import CounterState, LiveCounter
from eduverse.counters.sources import get_counter_source
from eduverse.schemas.counter import CounterRead


class CounterNotFoundError(Exception):
    pass


class CounterUnauthorizedError(Exception):
    pass


class CounterService:
    def __init__(self, client: BackendClient):
        self.client = client

    def _source(self, name: str):
        try:
            return get_counter_source(name)
        except KeyError as e:
            raise CounterNotFoundError(str(e)) from None

    async def snapshot(self, name: str, school_id: str) -> CounterRead:
        """Count once, without subscribing.

        Raises CounterNotFoundError, CounterUnauthorizedError or
        BackendError so the route can pick the status code.
        """
        source = self._source(name)
        identity = await self.client.auth.get_user()
        if identity.error is not None and identity.error.status not in (401, 403):
            raise identity.error
        if identity.user is None:
            raise CounterUnauthorizedError("Not signed in.")

        result = await source.count(self.client, school_id, identity.user.id)
        if result.error is not None:
            raise result.error
        return CounterRead(name=name, school_id=school_id, value=result.count or 0)

    def live(
        self,
        name: str,
        on_state: Optional[Callable[[CounterState], None]] = None,
    ) -> LiveCounter:
        return LiveCounter(self.client, self._source(name), on_state=on_state)

