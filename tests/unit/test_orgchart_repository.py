from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from orgchart.core.config import Settings
from orgchart.models.orgchart import Employee, OrgChartDocument, Position
from orgchart.services.document_store import InMemoryDocumentStore
from orgchart.services.exceptions import (
    CircularReferenceError,
    DuplicateIdError,
    HasChildrenError,
    InvalidParentError,
    NotFoundError,
    OperationDisabledError,
    StorageUnavailableError,
)
from orgchart.services.hierarchy_validator import validate_document
from orgchart.services.orgchart_repository import OrgChartRepository, RepositoryPermissions
from tests.conftest import DOCUMENT_KEY, sample_bytes

ALL_ENABLED = RepositoryPermissions(insert_enabled=True, update_enabled=True, delete_enabled=True)


def _repository(store: InMemoryDocumentStore | None = None, permissions: RepositoryPermissions = ALL_ENABLED):
    store = store or InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    return OrgChartRepository(store=store, permissions=permissions, document_key=DOCUMENT_KEY)


async def _stored(store: InMemoryDocumentStore) -> OrgChartDocument:
    return OrgChartDocument.model_validate_json(await store.get(DOCUMENT_KEY))


class BlockingStore(InMemoryDocumentStore):
    """Pauses inside ``put`` until released, so a mutation can be caught mid-save."""

    def __init__(self, documents: dict[str, bytes]) -> None:
        super().__init__(documents)
        self.block = False
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def put(self, key: str, data: bytes) -> None:
        if self.block:
            self.entered.set()
            await self.release.wait()
        await super().put(key, data)


class YieldingStore(InMemoryDocumentStore):
    """Gives up the event loop on every read and write, like a networked store."""

    async def get(self, key: str) -> bytes:
        await asyncio.sleep(0)
        return await super().get(key)

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.sleep(0)
        await super().put(key, data)


@pytest.mark.anyio
async def test_get_document_returns_empty_organization_when_absent():
    repository = _repository(InMemoryDocumentStore())
    document = await repository.get_document()
    assert document.organization.positions == []


@pytest.mark.anyio
async def test_get_document_rejects_malformed_document():
    repository = _repository(InMemoryDocumentStore({DOCUMENT_KEY: b"{not json"}))
    with pytest.raises(StorageUnavailableError, match="malformed"):
        await repository.get_document()


@pytest.mark.anyio
async def test_get_document_without_store_raises():
    with pytest.raises(StorageUnavailableError, match="not initialized"):
        await OrgChartRepository().get_document()


@pytest.mark.anyio
async def test_initialize_builds_memory_store_from_settings():
    repository = OrgChartRepository()
    settings = Settings(DOCUMENT_STORE_TYPE="memory", ORGCHART_INSERT_ENABLED=True, ORGCHART_DOCUMENT_KEY="chart.json")

    await repository.initialize(settings)

    assert repository.initialized is True
    assert isinstance(repository.store, InMemoryDocumentStore)
    assert repository.document_key == "chart.json"
    assert repository.insert_enabled is True
    assert repository.update_enabled is False
    assert repository.delete_enabled is False

    await repository.close()
    assert repository.initialized is False
    assert repository.store is None


@pytest.mark.anyio
async def test_create_position_assigns_id_and_persists_camel_case():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    created = await repository.create_position(Position(title="QA Lead", parent_position_id="cto"))

    assert created.id
    raw = json.loads(await store.get(DOCUMENT_KEY))
    stored = next(p for p in raw["organization"]["positions"] if p["id"] == created.id)
    assert stored["parentPositionId"] == "cto"
    assert stored["title"] == "QA Lead"


@pytest.mark.anyio
async def test_create_position_keeps_supplied_id():
    repository = _repository()
    created = await repository.create_position(Position(id="qa", title="QA Lead"))
    assert created.id == "qa"


@pytest.mark.anyio
async def test_create_position_duplicate_id_leaves_document_unchanged():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)
    before = await store.get(DOCUMENT_KEY)

    with pytest.raises(DuplicateIdError):
        await repository.create_position(Position(id="cto", title="Another CTO"))

    assert await store.get(DOCUMENT_KEY) == before


@pytest.mark.anyio
async def test_create_position_with_missing_parent_raises():
    repository = _repository()
    with pytest.raises(InvalidParentError):
        await repository.create_position(Position(id="x", title="X", parent_position_id="ghost"))


@pytest.mark.anyio
async def test_update_position_rejects_cycle():
    repository = _repository(InMemoryDocumentStore())
    await repository.create_position(Position(id="a", title="A"))
    await repository.create_position(Position(id="b", title="B", parent_position_id="a"))
    await repository.create_position(Position(id="c", title="C", parent_position_id="b"))

    with pytest.raises(CircularReferenceError):
        await repository.update_position(Position(id="a", title="A", parent_position_id="c"))

    document = await repository.get_document()
    assert document.organization.positions[0].parent_position_id is None


@pytest.mark.anyio
async def test_update_position_rejects_self_parent():
    repository = _repository()
    with pytest.raises(CircularReferenceError):
        await repository.update_position(Position(id="dev", title="Developer", parent_position_id="dev"))


@pytest.mark.anyio
async def test_update_position_rejects_missing_parent():
    repository = _repository()
    with pytest.raises(InvalidParentError):
        await repository.update_position(Position(id="dev", title="Developer", parent_position_id="ghost"))


@pytest.mark.anyio
async def test_update_position_keeps_employees():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    updated = await repository.update_position(
        Position(id="dev", title="Senior Developer", department="IT", parent_position_id="cfo")
    )

    assert updated.title == "Senior Developer"
    assert updated.parent_position_id == "cfo"
    assert [e.id for e in updated.employees] == ["e-carol", "e-alice-2", "e-eve"]
    stored = await _stored(store)
    assert next(p for p in stored.organization.positions if p.id == "dev").title == "Senior Developer"


@pytest.mark.anyio
async def test_update_missing_position_raises_not_found():
    repository = _repository()
    with pytest.raises(NotFoundError):
        await repository.update_position(Position(id="ghost", title="Ghost"))


@pytest.mark.anyio
async def test_delete_position_with_children_raises():
    repository = _repository()
    with pytest.raises(HasChildrenError) as exc_info:
        await repository.delete_position("ceo")
    assert exc_info.value.child_ids == ["cto", "cfo"]


@pytest.mark.anyio
async def test_delete_leaf_position():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    await repository.delete_position("cfo")

    stored = await _stored(store)
    assert [p.id for p in stored.organization.positions] == ["ceo", "cto", "dev"]


@pytest.mark.anyio
async def test_concurrent_create_child_and_delete_parent_never_orphans():
    store = YieldingStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    results = await asyncio.gather(
        repository.create_position(Position(id="analyst", title="Analyst", parent_position_id="cfo")),
        repository.delete_position("cfo"),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], (HasChildrenError, InvalidParentError))
    assert validate_document(await _stored(store)) == []


@pytest.mark.anyio
async def test_concurrent_create_employee_keeps_every_write():
    store = YieldingStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    await asyncio.gather(
        *(repository.create_employee("cfo", Employee(id=f"e-{i}", name=f"Employee {i}")) for i in range(20))
    )

    stored = await _stored(store)
    cfo = next(p for p in stored.organization.positions if p.id == "cfo")
    assert sorted(e.id for e in cfo.employees) == sorted(f"e-{i}" for i in range(20))


@pytest.mark.anyio
async def test_disabled_operation_does_not_touch_store():
    store = AsyncMock()
    store.read_only = False
    repository = OrgChartRepository(store=store, permissions=RepositoryPermissions())

    with pytest.raises(OperationDisabledError, match="Insert operations are not enabled"):
        await repository.create_position(Position(id="x", title="X"))
    with pytest.raises(OperationDisabledError, match="Update operations"):
        await repository.move_employee("e-bob", "cfo")
    with pytest.raises(OperationDisabledError, match="Delete operations"):
        await repository.delete_employee("cto", "e-bob")

    store.get.assert_not_awaited()
    store.put.assert_not_awaited()


@pytest.mark.anyio
async def test_read_only_store_disables_all_mutations():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    store.read_only = True
    repository = _repository(store)

    assert repository.any_mutation_enabled is False
    with pytest.raises(OperationDisabledError):
        await repository.create_employee("cfo", Employee(name="Nobody"))


@pytest.mark.anyio
async def test_cancelled_mutation_releases_lane():
    store = BlockingStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    store.block = True
    task = asyncio.create_task(repository.create_position(Position(id="stuck", title="Stuck")))
    await store.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    store.block = False
    created = await asyncio.wait_for(repository.create_position(Position(id="next", title="Next")), timeout=1)

    assert created.id == "next"
    stored = await _stored(store)
    ids = [p.id for p in stored.organization.positions]
    assert "next" in ids
    assert "stuck" not in ids


@pytest.mark.anyio
async def test_reads_do_not_wait_for_lane():
    store = BlockingStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    store.block = True
    task = asyncio.create_task(repository.delete_position("cfo"))
    await store.entered.wait()

    document = await asyncio.wait_for(repository.get_document(), timeout=1)
    assert "cfo" in [p.id for p in document.organization.positions]

    store.release.set()
    await task


@pytest.mark.anyio
async def test_create_employee_assigns_id_and_rejects_duplicates():
    repository = _repository()

    created = await repository.create_employee("cfo", Employee(name="Frank Example", email="frank@example.com"))
    assert created.id

    with pytest.raises(DuplicateIdError):
        await repository.create_employee("cfo", Employee(id="e-bob", name="Bob Again"))
    with pytest.raises(NotFoundError):
        await repository.create_employee("ghost", Employee(name="Nobody"))


@pytest.mark.anyio
async def test_update_employee():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    updated = await repository.update_employee(
        "cto", Employee(id="e-bob", name="Robert Example", email="robert@example.com", is_primary=True)
    )

    assert updated.name == "Robert Example"
    stored = await _stored(store)
    cto = next(p for p in stored.organization.positions if p.id == "cto")
    assert cto.employees[0].email == "robert@example.com"

    with pytest.raises(NotFoundError):
        await repository.update_employee("cfo", Employee(id="e-bob", name="Wrong Position"))


@pytest.mark.anyio
async def test_delete_employee():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    await repository.delete_employee("dev", "e-eve")

    stored = await _stored(store)
    dev = next(p for p in stored.organization.positions if p.id == "dev")
    assert [e.id for e in dev.employees] == ["e-carol", "e-alice-2"]

    with pytest.raises(NotFoundError):
        await repository.delete_employee("dev", "e-eve")


@pytest.mark.anyio
async def test_delete_employee_by_id_returns_position():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    assert await repository.delete_employee_by_id("e-eve") == "dev"

    stored = await _stored(store)
    assert all("e-eve" not in [e.id for e in p.employees] for p in stored.organization.positions)
    with pytest.raises(NotFoundError):
        await repository.delete_employee_by_id("e-eve")


@pytest.mark.anyio
async def test_delete_employee_by_id_disabled_does_not_read_store():
    store = AsyncMock()
    store.read_only = False
    repository = OrgChartRepository(store=store, permissions=RepositoryPermissions(insert_enabled=True))

    with pytest.raises(OperationDisabledError, match="Delete operations"):
        await repository.delete_employee_by_id("e-eve")
    store.get.assert_not_awaited()
    store.put.assert_not_awaited()


@pytest.mark.anyio
async def test_delete_employee_by_id_racing_move_still_deletes():
    store = YieldingStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    moved, deleted_from = await asyncio.gather(
        repository.move_employee("e-carol", "cfo"),
        repository.delete_employee_by_id("e-carol"),
    )

    assert moved.id == "e-carol"
    assert deleted_from == "cfo"
    stored = await _stored(store)
    assert all("e-carol" not in [e.id for e in p.employees] for p in stored.organization.positions)
    assert validate_document(stored) == []


@pytest.mark.anyio
async def test_move_employee_between_positions():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)

    moved = await repository.move_employee("e-carol", "cfo")

    assert moved.id == "e-carol"
    assert await repository.find_position_for_employee("e-carol") == "cfo"
    stored = await _stored(store)
    dev = next(p for p in stored.organization.positions if p.id == "dev")
    assert "e-carol" not in [e.id for e in dev.employees]


@pytest.mark.anyio
async def test_move_employee_to_current_position_is_noop():
    repository = _repository()
    await repository.move_employee("e-bob", "cto")
    assert await repository.find_position_for_employee("e-bob") == "cto"


@pytest.mark.anyio
async def test_move_employee_errors():
    repository = _repository()
    with pytest.raises(NotFoundError):
        await repository.move_employee("e-bob", "ghost")
    with pytest.raises(NotFoundError):
        await repository.move_employee("ghost", "cfo")


@pytest.mark.anyio
async def test_find_position_for_unknown_employee_raises():
    repository = _repository()
    with pytest.raises(NotFoundError):
        await repository.find_position_for_employee("ghost")


@pytest.mark.anyio
async def test_list_employee_emails_is_distinct_and_skips_blank():
    repository = _repository()
    assert await repository.list_employee_emails() == [
        "alice@example.com",
        "bob@example.com",
        "carol@example.com",
    ]


@pytest.mark.anyio
async def test_concurrent_create_employee_across_positions():
    store = YieldingStore()
    repository = _repository(store)
    position_ids = [f"p-{i}" for i in range(10)]
    for position_id in position_ids:
        await repository.create_position(Position(id=position_id, title=position_id))

    created = await asyncio.gather(
        *(repository.create_employee(pid, Employee(name=f"Employee of {pid}")) for pid in position_ids)
    )

    stored = await _stored(store)
    assert len(created) == 10
    assert sum(len(p.employees) for p in stored.organization.positions) == 10
    assert all(len(p.employees) == 1 for p in stored.organization.positions)


@pytest.mark.anyio
async def test_rejected_mutations_leave_document_unchanged():
    store = InMemoryDocumentStore({DOCUMENT_KEY: sample_bytes()})
    repository = _repository(store)
    before = await store.get(DOCUMENT_KEY)

    with pytest.raises(DuplicateIdError):
        await repository.create_employee("cfo", Employee(id="e-carol", name="Carol Again"))
    with pytest.raises(InvalidParentError):
        await repository.create_position(Position(id="x", title="X", parent_position_id="ghost"))
    with pytest.raises(InvalidParentError):
        await repository.update_position(Position(id="dev", title="Developer", parent_position_id="ghost"))

    assert await store.get(DOCUMENT_KEY) == before


@pytest.mark.anyio
async def test_build_and_tear_down_small_hierarchy():
    repository = _repository(InMemoryDocumentStore())

    ceo = await repository.create_position(Position(title="CEO", department="Exec"))
    assert ceo.id
    assert ceo.parent_position_id is None

    cto = await repository.create_position(Position(title="CTO", department="Tech", parent_position_id=ceo.id))

    with pytest.raises(HasChildrenError) as exc_info:
        await repository.delete_position(ceo.id)
    assert exc_info.value.child_ids == [cto.id]

    await repository.delete_position(cto.id)
    await repository.delete_position(ceo.id)

    assert (await repository.get_document()).organization.positions == []
