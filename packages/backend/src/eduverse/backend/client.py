"""Backend client — the one object every service and counter talks through.

Learn: Instead of a module-level client imported everywhere, one
BackendClient is built at process start (see main.lifespan) and passed
explicitly. Per-request identities come from `with_token()`, which shares
the HTTP connection pool and the change feed but sends the caller's bearer
token so row-level security is evaluated for that user.
"""

from typing import Any, Optional

import httpx
import structlog

from eduverse.backend.auth import AuthClient
from eduverse.backend.errors import BackendError
from eduverse.backend.query import QueryBuilder, QueryResult
from eduverse.config import Settings
from eduverse.realtime.feed import ChangeFeed

logger = structlog.get_logger()


class BackendClient:
    """Query, RPC, auth and change-feed access for one identity."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        feed: ChangeFeed,
        anon_key: str,
        access_token: Optional[str] = None,
        default_schema: str = "public",
        owns_resources: bool = True,
    ):
        self.http = http
        self.feed = feed
        self.anon_key = anon_key
        self.access_token = access_token
        self.default_schema = default_schema
        self._owns_resources = owns_resources
        self.auth = AuthClient(http, self.headers, access_token)

    @classmethod
    def from_settings(cls, settings: Settings, feed: ChangeFeed) -> "BackendClient":
        http = httpx.AsyncClient(
            base_url=settings.backend_url.rstrip("/"),
            timeout=settings.http_timeout_seconds,
        )
        return cls(
            http=http,
            feed=feed,
            anon_key=settings.backend_anon_key,
            default_schema=settings.default_schema,
        )

    @property
    def headers(self) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
        }

    def with_token(self, access_token: Optional[str]) -> "BackendClient":
        """A view acting as the given user; never closes shared resources."""
        return BackendClient(
            http=self.http,
            feed=self.feed,
            anon_key=self.anon_key,
            access_token=access_token,
            default_schema=self.default_schema,
            owns_resources=False,
        )

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(http=self.http, headers=self.headers, table=name)

    async def rpc(self, name: str, params: Optional[dict[str, Any]] = None) -> QueryResult:
        """Call a remote procedure: POST /rest/v1/rpc/{name}."""
        try:
            response = await self.http.post(
                f"/rest/v1/rpc/{name}",
                json=params or {},
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            logger.warning("eduverse.backend.rpc_failed", rpc=name, error=str(e))
            return QueryResult(error=BackendError.from_transport(e))

        if response.status_code >= 400:
            return QueryResult(error=BackendError.from_response(response))
        try:
            data = response.json() if response.content else None
        except ValueError:
            logger.warning("eduverse.backend.rpc_unreadable", rpc=name, status=response.status_code)
            return QueryResult(error=BackendError.from_invalid_body(response))
        return QueryResult(data=data)

    async def ping(self) -> bool:
        """True when the REST endpoint answers at all."""
        try:
            response = await self.http.get("/rest/v1/", headers=self.headers)
        except httpx.HTTPError:
            return False
        return response.status_code < 500

    async def aclose(self) -> None:
        if not self._owns_resources:
            return
        await self.feed.close()
        await self.http.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
