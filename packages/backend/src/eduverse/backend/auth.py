"""Identity lookups against the backend's auth endpoint.

Tokens are issued by the auth provider elsewhere; this module only asks
"who does this token belong to?" via GET /auth/v1/user.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from eduverse.backend.errors import BackendError

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    app_metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(payload["id"]),
            email=payload.get("email"),
            app_metadata=payload.get("app_metadata") or {},
        )


@dataclass
class AuthResult:
    user: Optional[AuthUser] = None
    error: Optional[BackendError] = None


class AuthClient:
    """Resolves the current user for one bearer token."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        headers: dict[str, str],
        access_token: Optional[str],
    ):
        self.http = http
        self.headers = headers
        self.access_token = access_token

    async def get_user(self) -> AuthResult:
        """Return the authenticated user, or an empty result.

        No token means no request — an anonymous caller has no identity.
        """
        if not self.access_token:
            return AuthResult()

        try:
            response = await self.http.get("/auth/v1/user", headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning("eduverse.auth.lookup_failed", error=str(e))
            return AuthResult(error=BackendError.from_transport(e))

        if response.status_code >= 400:
            return AuthResult(error=BackendError.from_response(response))

        try:
            payload = response.json()
        except ValueError:
            return AuthResult(error=BackendError.from_invalid_body(response))
        if not isinstance(payload, dict) or not payload.get("id"):
            return AuthResult()
        return AuthResult(user=AuthUser.from_payload(payload))
