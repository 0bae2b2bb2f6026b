from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from orgchart.api.v1.errors import to_http_exception
from orgchart.core.dependencies import require_read, require_write
from orgchart.models.auth import UserInfo
from orgchart.models.orgchart import (
    CreateEmployeeRequest,
    CreatePositionRequest,
    Employee,
    MoveEmployeeRequest,
    OrgChartResponse,
    Position,
    UpdateEmployeeRequest,
    UpdatePositionRequest,
    UserPermissions,
)
from orgchart.services.exceptions import OrgChartError
from orgchart.services.orgchart_repository import orgchart_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgchart", tags=["orgchart"])


def _employee_from(request: CreateEmployeeRequest, employee_id: str = "") -> Employee:
    return Employee(
        id=employee_id,
        name=request.name,
        email=request.email,
        start_date=request.start_date,
        is_primary=request.is_primary,
        url=request.url,
    )


@router.get("", response_model=OrgChartResponse)
async def get_organization_structure(user: UserInfo = Depends(require_read)):  # noqa: B008
    try:
        document = await orgchart_repository.get_document()
    except OrgChartError as err:
        logger.exception("Error fetching organizational structure")
        raise to_http_exception(err) from err

    positions = document.organization.positions
    logger.info(
        "Loaded organizational structure: %d positions, %d employees",
        len(positions),
        sum(len(p.employees) for p in positions),
    )
    can_edit = user.can_write and orgchart_repository.any_mutation_enabled
    return OrgChartResponse(organization=document.organization, permissions=UserPermissions(can_edit=can_edit))


@router.post("/positions", response_model=Position, status_code=status.HTTP_201_CREATED)
async def create_position(
    request: CreatePositionRequest,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    position = Position(**request.model_dump())
    try:
        return await orgchart_repository.create_position(position)
    except OrgChartError as err:
        logger.warning("Error creating position %s: %s", request.title, err)
        raise to_http_exception(err) from err


@router.put("/positions/{position_id}", response_model=Position)
async def update_position(
    position_id: str,
    request: UpdatePositionRequest,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    position = Position(id=position_id, **request.model_dump())
    try:
        return await orgchart_repository.update_position(position)
    except OrgChartError as err:
        logger.warning("Error updating position %s: %s", position_id, err)
        raise to_http_exception(err) from err


@router.delete("/positions/{position_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_position(
    position_id: str,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    try:
        await orgchart_repository.delete_position(position_id)
    except OrgChartError as err:
        logger.warning("Error deleting position %s: %s", position_id, err)
        raise to_http_exception(err) from err
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/employees", response_model=Employee, status_code=status.HTTP_201_CREATED)
async def create_employee(
    request: CreateEmployeeRequest,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    try:
        return await orgchart_repository.create_employee(request.position_id, _employee_from(request))
    except OrgChartError as err:
        logger.warning("Error creating employee %s: %s", request.name, err)
        raise to_http_exception(err) from err


@router.put("/employees/{employee_id}", response_model=Employee)
async def update_employee(
    employee_id: str,
    request: UpdateEmployeeRequest,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    try:
        return await orgchart_repository.update_employee(request.position_id, _employee_from(request, employee_id))
    except OrgChartError as err:
        logger.warning("Error updating employee %s: %s", employee_id, err)
        raise to_http_exception(err) from err


@router.post("/employees/{employee_id}/move", response_model=Employee)
async def move_employee(
    employee_id: str,
    request: MoveEmployeeRequest,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    try:
        return await orgchart_repository.move_employee(employee_id, request.target_position_id)
    except OrgChartError as err:
        logger.warning("Error moving employee %s: %s", employee_id, err)
        raise to_http_exception(err) from err


@router.delete("/employees/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_employee(
    employee_id: str,
    user: UserInfo = Depends(require_write),  # noqa: B008
):
    try:
        await orgchart_repository.delete_employee_by_id(employee_id)
    except OrgChartError as err:
        logger.warning("Error deleting employee %s: %s", employee_id, err)
        raise to_http_exception(err) from err
    return Response(status_code=status.HTTP_204_NO_CONTENT)
