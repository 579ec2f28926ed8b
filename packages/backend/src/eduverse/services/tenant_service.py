"""Tenant service — resolve a school from its public URL slug.

Learn: Unauthenticated pages (login, landing) must be able to find their
school, but the schools table has no public SELECT policy. The backend
exposes a narrow RPC, get_school_public_by_slug, that returns only
id/slug/name — this service wraps it.
"""

import re

import structlog

from eduverse.backend.client import BackendClient
from eduverse.schemas.tenant import School, TenantState

logger = structlog.get_logger()

_SLUG_STRIP = re.compile(r"[^a-z0-9-]")


def normalize_slug(slug: str | None) -> str:
    return _SLUG_STRIP.sub("", (slug or "").strip().lower())


class TenantService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def resolve(self, slug: str | None) -> TenantState:
        normalized = normalize_slug(slug)
        if not normalized:
            return TenantState(status="idle", slug=normalized)

        result = await self.client.rpc("get_school_public_by_slug", {"_slug": normalized})
        if result.error is not None:
            logger.warning("eduverse.tenant.lookup_failed", slug=normalized, error=result.error.message)
            return TenantState(status="error", slug=normalized, error=result.error.message)

        # Set-returning RPCs answer with a list
        row = result.data
        if isinstance(row, list):
            row = row[0] if row else None
        if not row:
            return TenantState(status="error", slug=normalized, error="School not found.")

        school = School(id=str(row["id"]), slug=row["slug"], name=row["name"])
        return TenantState(status="ready", slug=normalized, school=school)
