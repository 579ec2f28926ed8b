"""Pydantic schemas for authorization, permissions and roles.

Learn: These double as service results and API responses. A denial is a
normal result with state="denied" and a user-facing message; a backend
failure is state="error" — the two are never conflated.
"""

from typing import Literal, Optional

from pydantic import BaseModel

from eduverse.roles import EduverseRole


class AuthzResult(BaseModel):
    state: Literal["checking", "ok", "denied", "error"]
    message: Optional[str] = None
    is_platform_admin: bool = False
    is_member: bool = False
    has_role: bool = False

    @classmethod
    def denied(cls, message: str, **flags: bool) -> "AuthzResult":
        return cls(state="denied", message=message, **flags)

    @classmethod
    def failed(cls, message: str) -> "AuthzResult":
        return cls(state="error", message=message)


class PlatformAuthz(BaseModel):
    allowed: bool = False
    message: Optional[str] = None
    error: Optional[str] = None


class SchoolPermissions(BaseModel):
    error: Optional[str] = None
    is_platform_super_admin: bool = False
    can_manage_staff: bool = False
    can_manage_students: bool = False
    can_work_crm: bool = False


class UserRoles(BaseModel):
    roles: list[EduverseRole] = []
    primary_role: Optional[EduverseRole] = None
    is_student: bool = False
    is_teacher: bool = False
    is_staff: bool = False
    error: Optional[str] = None


class RoleList(BaseModel):
    roles: list[EduverseRole]
