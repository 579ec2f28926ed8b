"""Health check endpoint.

Reports the server version plus reachability of the hosted backend and of
the change feed. Always 200 — "degraded" tells the caller what is down.
"""

from fastapi import APIRouter, Depends

from eduverse import __version__
from eduverse.api.deps import get_backend
from eduverse.backend.client import BackendClient

router = APIRouter()


@router.get("/health")
async def health_check(backend: BackendClient = Depends(get_backend)):
    checks = {"server": "ok", "version": __version__}
    checks["backend"] = "ok" if await backend.ping() else "error: unreachable"
    checks["change_feed"] = "ok" if await backend.feed.ping() else "error: unreachable"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k != "version"
    ) else "degraded"

    return {"status": status, **checks}
