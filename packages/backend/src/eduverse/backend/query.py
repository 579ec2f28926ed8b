"""REST query builder for the hosted backend.

Learn: The backend exposes every table at /rest/v1/{table}. Filters are
query parameters in `column=op.value` form, the column list goes in
`select=`, and an exact row count is requested with the
`Prefer: count=exact` header and read back from `Content-Range`
(e.g. `0-24/57` or `*/57` for HEAD requests).

Row-level security is applied by the backend based on the bearer token —
the builder never filters rows on its own.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import httpx
import structlog

from eduverse.backend.errors import BackendError
from eduverse.realtime.filters import format_filter_value

logger = structlog.get_logger()


@dataclass
class QueryResult:
    """Outcome of a query or RPC: (rows | count, error)."""

    data: Any = None
    count: Optional[int] = None
    error: Optional[BackendError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Extract the total from a Content-Range header, if present."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


@dataclass
class QueryBuilder:
    """Fluent builder for one SELECT against a table."""

    http: httpx.AsyncClient
    headers: dict[str, str]
    table: str
    columns: str = "*"
    count: Optional[str] = None
    head: bool = False
    single: bool = False
    filters: list[tuple[str, str]] = field(default_factory=list)
    modifiers: list[tuple[str, str]] = field(default_factory=list)

    def select(
        self,
        columns: str = "*",
        *,
        count: Optional[str] = None,
        head: bool = False,
    ) -> "QueryBuilder":
        if count not in (None, "exact", "planned", "estimated"):
            raise ValueError(f"Unknown count mode: {count!r}")
        self.columns = "".join(columns.split())  # backend rejects whitespace
        self.count = count
        self.head = head
        return self

    # ─── Filters ────────────────────────────────────────

    def filter(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.filters.append((column, f"{operator}.{format_filter_value(value)}"))
        return self

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "neq", value)

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "gt", value)

    def gte(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "gte", value)

    def lt(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "lt", value)

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        return self.filter(column, "lte", value)

    def is_(self, column: str, value: Optional[bool]) -> "QueryBuilder":
        return self.filter(column, "is", value)

    def in_(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        rendered = ",".join(format_filter_value(v) for v in values)
        self.filters.append((column, f"in.({rendered})"))
        return self

    # ─── Modifiers ──────────────────────────────────────

    def order(self, column: str, *, ascending: bool = True) -> "QueryBuilder":
        direction = "asc" if ascending else "desc"
        self.modifiers.append(("order", f"{column}.{direction}"))
        return self

    def limit(self, n: int) -> "QueryBuilder":
        self.modifiers.append(("limit", str(n)))
        return self

    def maybe_single(self) -> "QueryBuilder":
        """Return one row or None instead of a list; >1 row is an error."""
        self.single = True
        return self

    # ─── Execution ──────────────────────────────────────

    def build_params(self) -> list[tuple[str, str]]:
        return [("select", self.columns), *self.filters, *self.modifiers]

    async def execute(self) -> QueryResult:
        headers = dict(self.headers)
        if self.count:
            headers["Prefer"] = f"count={self.count}"
        method = "HEAD" if self.head else "GET"

        try:
            response = await self.http.request(
                method,
                f"/rest/v1/{self.table}",
                params=self.build_params(),
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning("eduverse.backend.query_failed", table=self.table, error=str(e))
            return QueryResult(error=BackendError.from_transport(e))

        if response.status_code >= 400:
            error = BackendError.from_response(response)
            logger.warning(
                "eduverse.backend.query_rejected",
                table=self.table,
                status=response.status_code,
                error=error.message,
            )
            return QueryResult(error=error)

        count = parse_content_range(response.headers.get("content-range")) if self.count else None
        if self.head:
            return QueryResult(count=count)

        try:
            rows = response.json() if response.content else []
        except ValueError:
            logger.warning("eduverse.backend.query_unreadable", table=self.table, status=response.status_code)
            return QueryResult(count=count, error=BackendError.from_invalid_body(response))
        if not self.single:
            return QueryResult(data=rows, count=count)

        if len(rows) > 1:
            return QueryResult(
                count=count,
                error=BackendError(
                    "JSON object requested, multiple (or no) rows returned",
                    code="PGRST116",
                    status=406,
                ),
            )
        return QueryResult(data=rows[0] if rows else None, count=count)
