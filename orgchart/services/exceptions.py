"""Errors raised by the org chart repository, document stores and directory."""

from __future__ import annotations


class OrgChartError(Exception):
    pass


class NotFoundError(OrgChartError):
    pass


class DuplicateIdError(OrgChartError):
    pass


class InvalidParentError(OrgChartError):
    pass


class CircularReferenceError(OrgChartError):
    pass


class HasChildrenError(OrgChartError):
    def __init__(self, position_id: str, child_ids: list[str]) -> None:
        self.position_id = position_id
        self.child_ids = list(child_ids)
        super().__init__(
            f"Cannot delete position '{position_id}' because it has child positions: {', '.join(self.child_ids)}"
        )


class OperationDisabledError(OrgChartError):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation.capitalize()} operations are not enabled for this repository")


class StorageUnavailableError(OrgChartError):
    pass


class DirectoryUnavailableError(OrgChartError):
    pass
