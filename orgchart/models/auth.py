"""Authentication models for Azure AD JWT tokens."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel

ADMIN_ROLE = "OrgChart_Admin"


class AccessLevel(str, Enum):
    READ = "read"
    WRITE = "write"


class UserInfo(BaseModel):
    id: str | None = None
    name: str | None = None
    email: str | None = None
    roles: list[str] = []

    @property
    def can_write(self) -> bool:
        return ADMIN_ROLE in self.roles

    def has_access(self, level: AccessLevel) -> bool:
        if level is AccessLevel.WRITE:
            return self.can_write
        return True
