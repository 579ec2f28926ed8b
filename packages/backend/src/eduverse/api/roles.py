"""Role registry route — open, no auth required."""

from fastapi import APIRouter

from eduverse.roles import EduverseRole
from eduverse.schemas.authz import RoleList

router = APIRouter()


@router.get("/roles", response_model=RoleList)
async def list_roles():
    return RoleList(roles=list(EduverseRole))
