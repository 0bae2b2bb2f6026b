"""Org chart repository over a single shared JSON document.

Every mutation is a read-modify-write of the whole document. The store has no
locking of its own, so mutations on one repository instance are serialized
through ``_lane``; reads skip the lane and see either the old or the new
document.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from orgchart.core.config import Settings
from orgchart.models.orgchart import Employee, OrgChartDocument, Position
from orgchart.services import hierarchy_validator as validator
from orgchart.services.document_store import DocumentNotFoundError, DocumentStore, build_document_store
from orgchart.services.exceptions import NotFoundError, OperationDisabledError, StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RepositoryPermissions(BaseModel):
    insert_enabled: bool = False
    update_enabled: bool = False
    delete_enabled: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> RepositoryPermissions:
        return cls(
            insert_enabled=settings.ORGCHART_INSERT_ENABLED,
            update_enabled=settings.ORGCHART_UPDATE_ENABLED,
            delete_enabled=settings.ORGCHART_DELETE_ENABLED,
        )


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_position(document: OrgChartDocument, position_id: str) -> Position:
    position = validator.find_position(position_id, document.organization.positions)
    if position is None:
        raise NotFoundError(f"Position with ID '{position_id}' not found")
    return position


def _require_employee(position: Position, employee_id: str) -> Employee:
    for employee in position.employees:
        if employee.id == employee_id:
            return employee
    raise NotFoundError(f"Employee with ID '{employee_id}' not found in position '{position.id}'")


class OrgChartRepository:
    def __init__(
        self,
        store: DocumentStore | None = None,
        permissions: RepositoryPermissions | None = None,
        document_key: str = "orgchart.json",
    ) -> None:
        self.store = store
        self.permissions = permissions or RepositoryPermissions()
        self.document_key = document_key
        self.initialized = store is not None
        self._lane = asyncio.Lock()

    async def initialize(self, settings: Settings) -> None:
        if self.initialized:
            return

        self.store = build_document_store(settings)
        self.permissions = RepositoryPermissions.from_settings(settings)
        self.document_key = settings.ORGCHART_DOCUMENT_KEY
        self.initialized = True
        logger.info(
            "OrgChartRepository initialized (store=%s, key=%s, insert=%s, update=%s, delete=%s)",
            type(self.store).__name__,
            self.document_key,
            self.permissions.insert_enabled,
            self.permissions.update_enabled,
            self.permissions.delete_enabled,
        )

    async def close(self) -> None:
        if self.store:
            await self.store.close()
            self.store = None
            self.initialized = False

    @property
    def read_only(self) -> bool:
        return self.store is None or self.store.read_only

    @property
    def insert_enabled(self) -> bool:
        return self.permissions.insert_enabled and not self.read_only

    @property
    def update_enabled(self) -> bool:
        return self.permissions.update_enabled and not self.read_only

    @property
    def delete_enabled(self) -> bool:
        return self.permissions.delete_enabled and not self.read_only

    @property
    def any_mutation_enabled(self) -> bool:
        return self.insert_enabled or self.update_enabled or self.delete_enabled

    async def check_connection(self) -> bool:
        if not self.store:
            return False
        return await self.store.check_connection()

    async def get_document(self) -> OrgChartDocument:
        if not self.store:
            raise StorageUnavailableError("OrgChartRepository not initialized")

        try:
            raw = await self.store.get(self.document_key)
        except DocumentNotFoundError:
            logger.info("Document %s does not exist, returning empty organization", self.document_key)
            return OrgChartDocument()

        try:
            return OrgChartDocument.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Stored org chart document %s is malformed: %s", self.document_key, e)
            raise StorageUnavailableError(f"Stored org chart document is malformed: {e}") from e

    async def _save(self, document: OrgChartDocument) -> None:
        assert self.store is not None
        data = document.model_dump_json(by_alias=True, indent=2).encode("utf-8")
        await self.store.put(self.document_key, data)
        logger.debug("Saved org chart document %s", self.document_key)

    async def _mutate(self, enabled: bool, operation: str, change: Callable[[OrgChartDocument], T]) -> T:
        """Run ``change`` against a fresh snapshot inside the lane and persist the result.

        ``change`` validates and modifies the snapshot in place; if it raises,
        nothing is written.
        """
        if not enabled:
            logger.warning("Rejected %s: operation is disabled", operation)
            raise OperationDisabledError(operation)

        async with self._lane:
            document = await self.get_document()
            result = change(document)
            await self._save(document)
            return result

    async def create_position(self, position: Position) -> Position:
        def change(document: OrgChartDocument) -> Position:
            positions = document.organization.positions
            new_position = position.model_copy(deep=True)
            if not new_position.id:
                new_position.id = _new_id()
            validator.ensure_id_is_unique(new_position.id, positions)
            validator.ensure_parent_exists(new_position.parent_position_id, positions)
            positions.append(new_position)
            return new_position

        created = await self._mutate(self.insert_enabled, "insert", change)
        logger.info("Created position %s with title %s", created.id, created.title)
        return created

    async def update_position(self, position: Position) -> Position:
        def change(document: OrgChartDocument) -> Position:
            positions = document.organization.positions
            existing = _require_position(document, position.id)
            new_parent = position.parent_position_id or None

            if new_parent != (existing.parent_position_id or None):
                validator.ensure_parent_exists(new_parent, positions)
                validator.ensure_no_cycle(position.id, new_parent, positions)

            existing.title = position.title
            existing.description = position.description
            existing.department = position.department
            existing.level = position.level
            existing.parent_position_id = new_parent
            existing.url = position.url
            return existing.model_copy(deep=True)

        updated = await self._mutate(self.update_enabled, "update", change)
        logger.info("Updated position %s with title %s", updated.id, updated.title)
        return updated

    async def delete_position(self, position_id: str) -> None:
        def change(document: OrgChartDocument) -> None:
            positions = document.organization.positions
            position = _require_position(document, position_id)
            validator.ensure_has_no_children(position_id, positions)
            positions.remove(position)

        await self._mutate(self.delete_enabled, "delete", change)
        logger.info("Deleted position %s", position_id)

    async def create_employee(self, position_id: str, employee: Employee) -> Employee:
        def change(document: OrgChartDocument) -> Employee:
            position = _require_position(document, position_id)
            new_employee = employee.model_copy(deep=True)
            if not new_employee.id:
                new_employee.id = _new_id()
            validator.ensure_employee_id_is_unique(new_employee.id, document.organization.positions)
            position.employees.append(new_employee)
            return new_employee

        created = await self._mutate(self.insert_enabled, "insert", change)
        logger.info("Created employee %s with name %s in position %s", created.id, created.name, position_id)
        return created

    async def update_employee(self, position_id: str, employee: Employee) -> Employee:
        def change(document: OrgChartDocument) -> Employee:
            position = _require_position(document, position_id)
            existing = _require_employee(position, employee.id)
            existing.name = employee.name
            existing.email = employee.email
            existing.start_date = employee.start_date
            existing.is_primary = employee.is_primary
            existing.url = employee.url
            return existing.model_copy(deep=True)

        updated = await self._mutate(self.update_enabled, "update", change)
        logger.info("Updated employee %s with name %s in position %s", updated.id, updated.name, position_id)
        return updated

    async def delete_employee(self, position_id: str, employee_id: str) -> None:
        def change(document: OrgChartDocument) -> None:
            position = _require_position(document, position_id)
            position.employees.remove(_require_employee(position, employee_id))

        await self._mutate(self.delete_enabled, "delete", change)
        logger.info("Deleted employee %s from position %s", employee_id, position_id)

    async def delete_employee_by_id(self, employee_id: str) -> str:
        """Remove an employee from whichever position holds it and return that position's id."""

        def change(document: OrgChartDocument) -> str:
            for position in document.organization.positions:
                for employee in position.employees:
                    if employee.id == employee_id:
                        position.employees.remove(employee)
                        return position.id
            raise NotFoundError(f"Employee with ID '{employee_id}' not found in any position")

        position_id = await self._mutate(self.delete_enabled, "delete", change)
        logger.info("Deleted employee %s from position %s", employee_id, position_id)
        return position_id

    async def move_employee(self, employee_id: str, target_position_id: str) -> Employee:
        def change(document: OrgChartDocument) -> Employee:
            target = _require_position(document, target_position_id)
            for position in document.organization.positions:
                for employee in position.employees:
                    if employee.id == employee_id:
                        if position is not target:
                            position.employees.remove(employee)
                            target.employees.append(employee)
                        return employee.model_copy(deep=True)
            raise NotFoundError(f"Employee with ID '{employee_id}' not found in any position")

        moved = await self._mutate(self.update_enabled, "update", change)
        logger.info("Moved employee %s to position %s", employee_id, target_position_id)
        return moved

    async def find_position_for_employee(self, employee_id: str) -> str:
        document = await self.get_document()
        for position in document.organization.positions:
            if any(e.id == employee_id for e in position.employees):
                return position.id
        raise NotFoundError(f"Employee with ID '{employee_id}' not found in any position")

    async def list_employee_emails(self) -> list[str]:
        document = await self.get_document()
        seen: set[str] = set()
        emails: list[str] = []
        for position in document.organization.positions:
            for employee in position.employees:
                email = employee.email.strip()
                if email and email.lower() not in seen:
                    seen.add(email.lower())
                    emails.append(email)
        return emails


orgchart_repository = OrgChartRepository()
