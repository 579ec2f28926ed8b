"""School-scoped routes — authorization, permissions, roles and counters.

Learn: Denials are not HTTP errors here. The dashboard renders
{"state": "denied", "message": ...} as a friendly screen, so authz and
permission routes answer 200 with the result object. Only backend
failures in the one-shot counter surface as 5xx.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from eduverse.api.deps import get_user_backend
from eduverse.backend.client import BackendClient
from eduverse.backend.errors import BackendError
from eduverse.roles import EduverseRole
from eduverse.schemas.authz import AuthzResult, SchoolPermissions, UserRoles
from eduverse.schemas.counter import CounterRead
from eduverse.services.authz_service import AuthzService
from eduverse.services.counter_service import (
    CounterNotFoundError,
    CounterService,
    CounterUnauthorizedError,
)

router = APIRouter()


async def _current_user_id(backend: BackendClient) -> Optional[str]:
    identity = await backend.auth.get_user()
    return identity.user.id if identity.user else None


@router.get("/schools/{school_id}/authz", response_model=AuthzResult)
async def check_authz(
    school_id: str,
    role: Optional[EduverseRole] = None,
    required_roles: Optional[list[EduverseRole]] = Query(None),
    backend: BackendClient = Depends(get_user_backend),
):
    user_id = await _current_user_id(backend)
    return await AuthzService(backend).check(
        school_id,
        user_id,
        role=role,
        required_roles=required_roles or None,
    )


@router.get("/schools/{school_id}/permissions", response_model=SchoolPermissions)
async def school_permissions(
    school_id: str,
    backend: BackendClient = Depends(get_user_backend),
):
    return await AuthzService(backend).school_permissions(school_id)


@router.get("/schools/{school_id}/roles/me", response_model=UserRoles)
async def my_roles(
    school_id: str,
    backend: BackendClient = Depends(get_user_backend),
):
    user_id = await _current_user_id(backend)
    return await AuthzService(backend).user_roles(school_id, user_id)


@router.get("/schools/{school_id}/counters/{name}", response_model=CounterRead)
async def read_counter(
    school_id: str,
    name: str,
    backend: BackendClient = Depends(get_user_backend),
):
    try:
        return await CounterService(backend).snapshot(name, school_id)
    except CounterNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown counter: {name}")
    except CounterUnauthorizedError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except BackendError as e:
        raise HTTPException(status_code=502, detail=e.message)
