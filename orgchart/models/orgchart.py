"""Org chart document models (positions, employees, organization)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Employee(CamelModel):
    """A person attached to exactly one position."""

    id: str = ""
    name: str = ""
    email: str = ""
    start_date: str = ""
    is_primary: bool = False
    url: str | None = None


class Position(CamelModel):
    """A node in the hierarchy; at most one parent position."""

    id: str = ""
    title: str = ""
    description: str = ""
    department: str = ""
    parent_position_id: str | None = None
    level: int | None = None
    url: str | None = None
    employees: list[Employee] = Field(default_factory=list)


class OrganizationData(CamelModel):
    name: str = ""
    positions: list[Position] = Field(default_factory=list)


class OrgChartDocument(CamelModel):
    """The persisted root document."""

    organization: OrganizationData = Field(default_factory=OrganizationData)


class UserPermissions(CamelModel):
    can_edit: bool = False


class OrgChartResponse(OrgChartDocument):
    permissions: UserPermissions = Field(default_factory=UserPermissions)


class CreatePositionRequest(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    department: str = ""
    parent_position_id: str | None = None
    level: int | None = None
    url: str | None = None


class UpdatePositionRequest(CreatePositionRequest):
    pass


class CreateEmployeeRequest(CamelModel):
    position_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    email: str = ""
    start_date: str = ""
    is_primary: bool = False
    url: str | None = None


class UpdateEmployeeRequest(CreateEmployeeRequest):
    pass


class MoveEmployeeRequest(CamelModel):
    target_position_id: str = Field(..., min_length=1)
