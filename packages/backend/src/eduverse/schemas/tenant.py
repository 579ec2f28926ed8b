"""Pydantic schemas for tenant (school) resolution."""

from typing import Literal, Optional

from pydantic import BaseModel


class School(BaseModel):
    id: str
    slug: str
    name: str


class TenantState(BaseModel):
    status: Literal["idle", "ready", "error"]
    slug: str
    school: Optional[School] = None
    error: Optional[str] = None

    @property
    def school_id(self) -> Optional[str]:
        return self.school.id if self.school else None
