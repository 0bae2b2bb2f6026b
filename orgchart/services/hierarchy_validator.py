"""Pure checks for the position hierarchy.

Every function takes a snapshot of the position list and either returns or
raises one of the repository errors. Nothing here mutates its input or does I/O.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from orgchart.models.orgchart import OrgChartDocument, Position
from orgchart.services.exceptions import (
    CircularReferenceError,
    DuplicateIdError,
    HasChildrenError,
    InvalidParentError,
)


def find_position(position_id: str, positions: Sequence[Position]) -> Position | None:
    for position in positions:
        if position.id == position_id:
            return position
    return None


def find_child_ids(position_id: str, positions: Sequence[Position]) -> list[str]:
    return [p.id for p in positions if p.parent_position_id == position_id]


def would_create_cycle(candidate_id: str, new_parent_id: str | None, positions: Sequence[Position]) -> bool:
    """Walk the parent chain upwards from ``new_parent_id`` looking for ``candidate_id``.

    The walk stops at a root (no parent), at an unknown id, or when an id
    repeats, so it terminates even if the stored document already has a loop.
    """
    parents = {p.id: p.parent_position_id for p in positions}
    visited: set[str] = set()
    current = new_parent_id

    while current and current not in visited:
        if current == candidate_id:
            return True
        visited.add(current)
        current = parents.get(current)

    return False


def ensure_id_is_unique(position_id: str, positions: Sequence[Position]) -> None:
    if find_position(position_id, positions) is not None:
        raise DuplicateIdError(f"Position with ID '{position_id}' already exists")


def ensure_employee_id_is_unique(employee_id: str, positions: Sequence[Position]) -> None:
    for position in positions:
        if any(e.id == employee_id for e in position.employees):
            raise DuplicateIdError(f"Employee with ID '{employee_id}' already exists in position '{position.id}'")


def ensure_parent_exists(parent_id: str | None, positions: Sequence[Position]) -> None:
    if parent_id and find_position(parent_id, positions) is None:
        raise InvalidParentError(f"Parent position with ID '{parent_id}' does not exist")


def ensure_no_cycle(candidate_id: str, new_parent_id: str | None, positions: Sequence[Position]) -> None:
    if would_create_cycle(candidate_id, new_parent_id, positions):
        raise CircularReferenceError(
            f"Setting parent of '{candidate_id}' to '{new_parent_id}' would create a circular reference"
        )


def ensure_has_no_children(position_id: str, positions: Sequence[Position]) -> None:
    child_ids = find_child_ids(position_id, positions)
    if child_ids:
        raise HasChildrenError(position_id, child_ids)


def validate_document(document: OrgChartDocument) -> list[str]:
    """Return every integrity problem in ``document``; an empty list means it is valid."""
    positions = document.organization.positions
    problems: list[str] = []

    position_counts = Counter(p.id for p in positions)
    for position_id, count in position_counts.items():
        if not position_id:
            problems.append(f"{count} position(s) have an empty ID")
        elif count > 1:
            problems.append(f"Position ID '{position_id}' is used {count} times")

    employee_counts = Counter(e.id for p in positions for e in p.employees)
    for employee_id, count in employee_counts.items():
        if not employee_id:
            problems.append(f"{count} employee(s) have an empty ID")
        elif count > 1:
            problems.append(f"Employee ID '{employee_id}' is used {count} times")

    known_ids = set(position_counts)
    for position in positions:
        parent_id = position.parent_position_id
        if not parent_id:
            continue
        if parent_id not in known_ids:
            problems.append(f"Position '{position.id}' references missing parent '{parent_id}'")
        elif would_create_cycle(position.id, parent_id, positions):
            problems.append(f"Position '{position.id}' is part of a circular reference")

    return problems
