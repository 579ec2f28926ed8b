"""Role registry — the closed set of school roles.

Centralizing the identifiers prevents typos and gives one place to ask
"is this a role we know?". Display labels belong to the frontend.
"""

import enum
from typing import Iterable, Optional


class EduverseRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    SCHOOL_OWNER = "school_owner"
    PRINCIPAL = "principal"
    VICE_PRINCIPAL = "vice_principal"
    ACADEMIC_COORDINATOR = "academic_coordinator"
    TEACHER = "teacher"
    ACCOUNTANT = "accountant"
    HR_MANAGER = "hr_manager"
    COUNSELOR = "counselor"
    STUDENT = "student"
    PARENT = "parent"
    MARKETING_STAFF = "marketing_staff"


EDUVERSE_ROLES: tuple[str, ...] = tuple(role.value for role in EduverseRole)

# Highest first — used to pick the home dashboard for multi-role users
ROLE_HIERARCHY: tuple[EduverseRole, ...] = (
    EduverseRole.SUPER_ADMIN,
    EduverseRole.SCHOOL_OWNER,
    EduverseRole.PRINCIPAL,
    EduverseRole.VICE_PRINCIPAL,
    EduverseRole.ACADEMIC_COORDINATOR,
    EduverseRole.TEACHER,
    EduverseRole.ACCOUNTANT,
    EduverseRole.HR_MANAGER,
    EduverseRole.COUNSELOR,
    EduverseRole.MARKETING_STAFF,
    EduverseRole.PARENT,
    EduverseRole.STUDENT,
)

STAFF_ROLES: frozenset[EduverseRole] = frozenset(
    set(EduverseRole) - {EduverseRole.STUDENT, EduverseRole.PARENT}
)


def is_eduverse_role(value: Optional[str]) -> bool:
    return bool(value) and value in EDUVERSE_ROLES


def parse_roles(values: Iterable[Optional[str]]) -> list[EduverseRole]:
    """Keep the known roles, in order, dropping anything unrecognised."""
    return [EduverseRole(v) for v in values if is_eduverse_role(v)]


def primary_role(roles: Iterable[EduverseRole]) -> Optional[EduverseRole]:
    held = list(roles)
    for role in ROLE_HIERARCHY:
        if role in held:
            return role
    return held[0] if held else None
