"""Hosted backend access — REST queries, RPCs, auth and the change feed."""

from eduverse.backend.auth import AuthResult, AuthUser
from eduverse.backend.client import BackendClient
from eduverse.backend.errors import BackendError
from eduverse.backend.query import QueryBuilder, QueryResult

__all__ = [
    "AuthResult",
    "AuthUser",
    "BackendClient",
    "BackendError",
    "QueryBuilder",
    "QueryResult",
]
