"""Backend error types.

Query, RPC and auth calls never raise for backend or network failures —
they return a result object whose `error` field carries a BackendError.
Callers turn that into a message for the user.
"""

from typing import Optional

import httpx


class BackendError(Exception):
    """A failed query, RPC or auth call against the hosted backend."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    def __repr__(self) -> str:
        return f"BackendError({self.message!r}, code={self.code!r}, status={self.status!r})"

    @classmethod
    def from_response(cls, response: httpx.Response) -> "BackendError":
        """Build an error from a non-2xx backend response.

        The REST layer answers with {"message", "code", ...}; the auth layer
        uses {"msg"} or {"error_description"}. Anything else falls back to
        the status line.
        """
        message = f"HTTP {response.status_code}"
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = (
                body.get("message")
                or body.get("msg")
                or body.get("error_description")
                or body.get("error")
                or message
            )
            code = body.get("code") or body.get("error_code")
            if code is not None:
                code = str(code)
        return cls(message, code=code, status=response.status_code)

    @classmethod
    def from_transport(cls, exc: httpx.HTTPError) -> "BackendError":
        """Build an error from a connection/timeout failure."""
        return cls(f"Backend unreachable: {exc}", code="network")

    @classmethod
    def from_invalid_body(cls, response: httpx.Response) -> "BackendError":
        """Build an error for a 2xx response whose body is not JSON."""
        return cls(
            f"Backend returned a non-JSON body (HTTP {response.status_code})",
            code="invalid_response",
            status=response.status_code,
        )
