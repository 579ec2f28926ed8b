"""Authorization service — who may see which school dashboard.

Learn: Every check relies on row-level security. The backend only returns
rows the caller is allowed to see, so "a row came back" means "granted":

- platform_super_admins: a user can read only their own row
- school_memberships:    present when the user belongs to the school
- user_roles:            one row per role held in a school

Permission flags that need server-side logic are RPCs
(can_manage_staff, can_manage_students, can_work_crm).

Absent rows become denial messages; backend failures become errors.
Nothing here raises for a failed call.
"""

import asyncio
from typing import Optional, Sequence

import structlog

from eduverse.backend.client import BackendClient
from eduverse.backend.query import QueryResult
from eduverse.roles import EduverseRole, STAFF_ROLES, parse_roles, primary_role
from eduverse.schemas.authz import AuthzResult, PlatformAuthz, SchoolPermissions, UserRoles

logger = structlog.get_logger()

NOT_AUTHENTICATED = "Not authenticated"
NOT_SIGNED_IN = "Not signed in."
NOT_A_MEMBER = "You are not a member of this school."
MISSING_ROLE = "You do not have the required role in this school."
PLATFORM_ONLY = "Access denied. Platform Super Admin only."


async def _skipped() -> QueryResult:
    return QueryResult()


class AuthzService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def _platform_admin_row(self, user_id: str) -> QueryResult:
        return await (
            self.client.table("platform_super_admins")
            .select("user_id")
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )

    async def check(
        self,
        school_id: Optional[str],
        user_id: Optional[str],
        role: Optional[EduverseRole] = None,
        required_roles: Optional[Sequence[EduverseRole]] = None,
    ) -> AuthzResult:
        """Platform admin, membership and role checks, run concurrently."""
        if not user_id:
            return AuthzResult.denied(NOT_AUTHENTICATED)

        wanted = list(required_roles or ([role] if role else []))

        if school_id:
            membership_query = (
                self.client.table("school_memberships")
                .select("id")
                .eq("school_id", school_id)
                .eq("user_id", user_id)
                .maybe_single()
                .execute()
            )
        else:
            membership_query = _skipped()

        if school_id and wanted:
            role_query = (
                self.client.table("user_roles")
                .select("role")
                .eq("school_id", school_id)
                .eq("user_id", user_id)
                .in_("role", [r.value for r in wanted])
                .execute()
            )
        else:
            role_query = _skipped()

        psa, membership, roles = await asyncio.gather(
            self._platform_admin_row(user_id),
            membership_query,
            role_query,
        )

        for result in (psa, membership, roles):
            if result.error is not None:
                logger.warning("eduverse.authz.check_failed", school=school_id, error=result.error.message)
                return AuthzResult.failed(result.error.message)

        if psa.data and psa.data.get("user_id"):
            return AuthzResult(state="ok", is_platform_admin=True, is_member=True, has_role=True)

        is_member = bool(membership.data and membership.data.get("id"))
        has_role = bool(roles.data)

        if school_id and not is_member:
            return AuthzResult.denied(NOT_A_MEMBER)
        if wanted and not has_role:
            return AuthzResult.denied(MISSING_ROLE, is_member=is_member)
        return AuthzResult(state="ok", is_member=is_member, has_role=has_role)

    async def platform_super_admin(self, user_id: Optional[str]) -> PlatformAuthz:
        if not user_id:
            return PlatformAuthz(message=NOT_SIGNED_IN)

        result = await self._platform_admin_row(user_id)
        if result.error is not None:
            return PlatformAuthz(message=result.error.message, error=result.error.message)

        allowed = bool(result.data and result.data.get("user_id"))
        return PlatformAuthz(allowed=allowed, message=None if allowed else PLATFORM_ONLY)

    async def school_permissions(self, school_id: str) -> SchoolPermissions:
        """Capability flags for the signed-in user in one school."""
        identity = await self.client.auth.get_user()
        if identity.user is None:
            return SchoolPermissions(error=NOT_SIGNED_IN)

        psa = await self._platform_admin_row(identity.user.id)
        if psa.error is not None:
            return SchoolPermissions(error=psa.error.message)
        if psa.data and psa.data.get("user_id"):
            return SchoolPermissions(
                is_platform_super_admin=True,
                can_manage_staff=True,
                can_manage_students=True,
                can_work_crm=True,
            )

        params = {"_school_id": school_id}
        staff, students, crm = await asyncio.gather(
            self.client.rpc("can_manage_staff", params),
            self.client.rpc("can_manage_students", params),
            self.client.rpc("can_work_crm", params),
        )
        error = staff.error or students.error or crm.error
        if error is not None:
            return SchoolPermissions(error=error.message)

        return SchoolPermissions(
            can_manage_staff=bool(staff.data),
            can_manage_students=bool(students.data),
            can_work_crm=bool(crm.data),
        )

    async def user_roles(self, school_id: Optional[str], user_id: Optional[str]) -> UserRoles:
        if not school_id or not user_id:
            return UserRoles()

        result = await (
            self.client.table("user_roles")
            .select("role")
            .eq("school_id", school_id)
            .eq("user_id", user_id)
            .execute()
        )
        if result.error is not None:
            return UserRoles(error=result.error.message)

        roles = parse_roles(row.get("role") for row in result.data or [])
        return UserRoles(
            roles=roles,
            primary_role=primary_role(roles),
            is_student=roles == [EduverseRole.STUDENT],
            is_teacher=EduverseRole.TEACHER in roles,
            is_staff=any(r in STAFF_ROLES for r in roles),
        )
