"""Tenant lookup route — used before sign-in, so it runs with the anon key."""

from fastapi import APIRouter, Depends, HTTPException

from eduverse.api.deps import get_backend
from eduverse.backend.client import BackendClient
from eduverse.schemas.tenant import School
from eduverse.services.tenant_service import TenantService

router = APIRouter()


@router.get("/tenants/{slug}", response_model=School)
async def resolve_tenant(slug: str, backend: BackendClient = Depends(get_backend)):
    state = await TenantService(backend).resolve(slug)
    if state.status == "idle":
        raise HTTPException(status_code=404, detail="School not found.")
    if state.status == "error":
        code = 404 if state.error == "School not found." else 502
        raise HTTPException(status_code=code, detail=state.error)
    return state.school
