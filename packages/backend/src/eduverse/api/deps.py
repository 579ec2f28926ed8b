"""FastAPI dependencies — the backend client and the caller's identity.

Learn: The process-wide BackendClient lives on app.state (built in the
lifespan). Routes never import it; they ask for it via Depends(), which is
also the seam tests use to swap in a client backed by httpx.MockTransport.

Protected routes get a per-request view of the client that carries the
caller's bearer token, so row-level security applies to them, not to us.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.requests import HTTPConnection

from eduverse.backend.client import BackendClient


def get_backend(conn: HTTPConnection) -> BackendClient:
    backend = getattr(conn.app.state, "backend", None)
    if backend is None:
        raise HTTPException(status_code=503, detail="Backend client not initialized")
    return backend


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        return token or None
    return None


async def get_user_backend(
    authorization: Optional[str] = Header(None),
    backend: BackendClient = Depends(get_backend),
) -> BackendClient:
    """Backend client acting as the caller (401 without a Bearer token)."""
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return backend.with_token(token)
