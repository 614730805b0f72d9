"""
Tier-1 tests for role_directory_service.py.

End-to-end pipeline over InMemoryRowStore.
"""

import asyncio
import logging
from dataclasses import replace

import pytest

from role_hierarchy.core.logging import LogContext
from role_hierarchy.domain.errors import (
    MultipleRootsError,
    RoleNotFoundError,
    ValidationError,
)
from role_hierarchy.domain.models import DEFAULT_ROLE_ID, RoleNode
from role_hierarchy.domain.services.role_directory_service import (
    RoleDirectoryService,
    default_role,
)
from role_hierarchy.persistence.row_store import InMemoryRowStore, StorageUnavailableError


B, Y = "b1", 2025


def node(role_id, *children, name=None, rd=True):
    return RoleNode(
        id=role_id,
        name=name or role_id.title(),
        participates_in_rd=rd,
        children=list(children),
    )


@pytest.fixture
def service(store, settings):
    return RoleDirectoryService(store, settings)


# =============================================================================
# load
# =============================================================================

class TestLoad:

    @pytest.mark.asyncio
    async def test_empty_scope_offers_default_role(self, service, store):
        roots = await service.load(B, Y)

        assert roots == [default_role()]
        assert roots[0].id == DEFAULT_ROLE_ID
        assert roots[0].color == "#1976d2"
        assert await store.fetch(B, Y) == []

    @pytest.mark.asyncio
    async def test_empty_scope_without_seeding(self, store, settings):
        service = RoleDirectoryService(store, replace(settings, seed_default_role=False))
        assert await service.load(B, Y) == []

    @pytest.mark.asyncio
    async def test_load_returns_stored_tree(self, service):
        tree = node("leader", node("eng"), node("qa"))
        await service.reconcile(B, Y, tree)

        assert await service.load(B, Y) == [tree]

    @pytest.mark.asyncio
    async def test_scopes_are_independent(self, service):
        await service.reconcile(B, Y, node("leader"))
        await service.reconcile(B, 2026, node("ops"))

        assert [n.id for n in await service.load(B, Y)] == ["leader"]
        assert [n.id for n in await service.load(B, 2026)] == ["ops"]


# =============================================================================
# reconcile
# =============================================================================

class TestReconcile:

    @pytest.mark.asyncio
    async def test_first_save(self, service, store):
        tree = node("leader", node("eng"))

        result = await service.reconcile(B, Y, tree)

        assert result.applied_tree == [tree]
        assert result.plan_summary.summary == {"inserts": 2, "updates": 0, "deletes": 0}
        assert [(r.role_id, r.parent_role_id) for r in await store.fetch(B, Y)] == [
            ("eng", "leader"),
            ("leader", None),
        ]

    @pytest.mark.asyncio
    async def test_resubmitting_same_tree_is_noop(self, service):
        tree = node("leader", node("eng"), node("qa"))
        await service.reconcile(B, Y, tree)

        result = await service.reconcile(B, Y, tree)

        assert result.plan_summary.is_empty
        assert result.applied_tree == [tree]

    @pytest.mark.asyncio
    async def test_rename_and_add_root(self, service):
        await service.reconcile(B, Y, node("leader", node("eng")))
        desired = [node("leader", node("eng", name="software engineer")), node("ops")]

        result = await service.reconcile(B, Y, desired)

        assert result.plan_summary.summary == {"inserts": 1, "updates": 1, "deletes": 0}
        assert result.applied_tree == desired

    @pytest.mark.asyncio
    async def test_move_child_and_drop_old_parent(self, service):
        await service.reconcile(B, Y, node("leader", node("eng")))
        desired = node("ops", node("eng"))

        result = await service.reconcile(B, Y, desired)

        assert result.applied_tree == [desired]
        assert result.applied.deleted == ["leader"]

    @pytest.mark.asyncio
    async def test_invalid_tree_writes_nothing(self, service, store):
        await service.reconcile(B, Y, node("leader"))
        before = await store.fetch(B, Y)

        with pytest.raises(ValidationError):
            await service.reconcile(B, Y, node("leader", node("dup"), node("dup")))

        assert await store.fetch(B, Y) == before

    @pytest.mark.asyncio
    async def test_forest_rejected_when_single_root_required(self, store, settings):
        service = RoleDirectoryService(store, replace(settings, allow_multiple_roots=False))

        with pytest.raises(MultipleRootsError):
            await service.reconcile(B, Y, [node("leader"), node("ops")])

        assert await store.fetch(B, Y) == []

    @pytest.mark.asyncio
    async def test_unavailable_store_propagates(self, service, store):
        store.available = False

        with pytest.raises(StorageUnavailableError):
            await service.reconcile(B, Y, node("leader"))


# =============================================================================
# Single-role operations
# =============================================================================

class TestSingleRoleOperations:

    @pytest.mark.asyncio
    async def test_get_role(self, service):
        await service.reconcile(B, Y, node("leader", node("eng")))

        eng = await service.get_role(B, Y, "eng")

        assert eng.parent_role_id == "leader"
        assert await service.get_role(B, Y, "missing") is None

    @pytest.mark.asyncio
    async def test_has_roles(self, service):
        assert await service.has_roles(B, Y) is False
        await service.reconcile(B, Y, node("leader"))
        assert await service.has_roles(B, Y) is True

    @pytest.mark.asyncio
    async def test_update_role_content(self, service):
        await service.reconcile(B, Y, node("leader", node("eng")))
        before = await service.get_role(B, Y, "eng")

        updated = await service.update_role(B, Y, "eng", name="Engineer", participates_in_rd=False)

        assert updated.name == "Engineer"
        assert updated.participates_in_rd is False
        assert updated.created_at == before.created_at
        assert (await service.get_role(B, Y, "eng")).name == "Engineer"

    @pytest.mark.asyncio
    async def test_update_role_without_change_returns_stored_row(self, service):
        await service.reconcile(B, Y, node("leader"))

        row = await service.update_role(B, Y, "leader", name="Leader")

        assert row.name == "Leader"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field, value", [
        ("business_id", "b2"),
        ("year", 2030),
        ("role_id", "boss"),
        ("created_at", None),
    ])
    async def test_update_role_rejects_identity_fields(self, service, store, field, value):
        await service.reconcile(B, Y, node("leader"))
        before = await store.fetch(B, Y)

        with pytest.raises(ValueError, match=field):
            await service.update_role(B, Y, "leader", **{field: value})

        assert await store.fetch(B, Y) == before

    @pytest.mark.asyncio
    async def test_update_missing_role(self, service):
        with pytest.raises(RoleNotFoundError):
            await service.update_role(B, Y, "ghost", name="Ghost")

    @pytest.mark.asyncio
    async def test_update_role_to_unknown_parent_rejected(self, service):
        await service.reconcile(B, Y, node("leader", node("eng")))

        with pytest.raises(ValidationError):
            await service.update_role(B, Y, "eng", parent_role_id="ghost")

    @pytest.mark.asyncio
    async def test_delete_role_removes_subtree(self, service):
        await service.reconcile(B, Y, [node("leader", node("eng", node("intern")), node("qa"))])

        deleted = await service.delete_role(B, Y, "eng")

        assert deleted == ["intern", "eng"]
        assert await service.load(B, Y) == [node("leader", node("qa"))]

    @pytest.mark.asyncio
    async def test_delete_missing_role(self, service):
        with pytest.raises(RoleNotFoundError):
            await service.delete_role(B, Y, "ghost")


    @pytest.mark.asyncio
    async def test_update_role_into_cycle_writes_nothing(self, service, store):
        await service.reconcile(B, Y, node("leader", node("eng")))
        before = await store.fetch(B, Y)

        with pytest.raises(ValidationError) as exc_info:
            await service.update_role(B, Y, "leader", parent_role_id="eng")

        assert sorted(exc_info.value.role_ids) == ["eng", "leader"]
        assert await store.fetch(B, Y) == before


# =============================================================================
# Concurrent scopes
# =============================================================================

class YieldingRowStore(InMemoryRowStore):
    """Gives other tasks a turn before every fetch."""

    async def fetch(self, business_id, year):
        await asyncio.sleep(0)
        return await super().fetch(business_id, year)


class ContextCapture(logging.Handler):
    """Records each message with the log context active when it was emitted."""

    def __init__(self):
        super().__init__(level=logging.INFO)
        self.records = []

    def emit(self, record):
        self.records.append((record.getMessage(), LogContext.current()))


@pytest.fixture
def captured_context():
    service_logger = logging.getLogger("role_hierarchy.domain.services.role_directory_service")
    handler = ContextCapture()
    level = service_logger.level
    service_logger.addHandler(handler)
    service_logger.setLevel(logging.INFO)
    yield handler
    service_logger.removeHandler(handler)
    service_logger.setLevel(level)


class TestConcurrentScopes:

    @pytest.mark.asyncio
    async def test_log_context_stays_with_its_scope(self, settings, captured_context):
        service = RoleDirectoryService(YieldingRowStore(), settings)
        await service.reconcile(B, Y, node("leader", node("eng")))
        captured_context.records.clear()

        await asyncio.gather(
            service.load("b2", 2030),
            service.delete_role(B, Y, "eng"),
        )

        contexts = dict(captured_context.records)
        assert contexts["No roles stored; offering default role"] == {
            "business_id": "b2",
            "year": 2030,
        }
        assert contexts["Deleted role subtree of 1 roles"] == {
            "business_id": B,
            "year": Y,
            "role_id": "eng",
        }
        assert LogContext.current() == {}
