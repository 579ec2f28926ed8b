"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health, roles and tenant lookup are open — the login screen needs
them before anyone has a token. School-scoped routes take the caller's
Bearer token per route (see api.deps.get_user_backend) because they
forward it to the backend rather than verifying it themselves.
"""

from fastapi import APIRouter

from eduverse.api.health import router as health_router
from eduverse.api.roles import router as roles_router
from eduverse.api.schools import router as schools_router
from eduverse.api.tenants import router as tenants_router

api_router = APIRouter(prefix="/api/v1")

# Open routes
api_router.include_router(health_router, tags=["health"])
api_router.include_router(roles_router, tags=["roles"])
api_router.include_router(tenants_router, tags=["tenants"])

# Caller-scoped routes
api_router.include_router(schools_router, tags=["schools", "authz", "counters"])
