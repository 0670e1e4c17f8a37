"""
Role scope resolution tests.

Verifies:
- The capability table per role (stores, product visibility, inventory rights)
- Empty assignments yield nothing actionable, never an exception
- Role parsing rejects unknown roles
"""

import pytest

from stockflow.services.scope_service import (
    ActorScope,
    ProductVisibility,
    Role,
    resolve_scope,
)


ALL_STORES = {1, 2, 3}


def scope(role, assigned=()):
    return resolve_scope(ActorScope(actor_id=7, role=role, assigned_store_ids=assigned), ALL_STORES)


class TestStoreAccess:

    def test_admin_acts_on_every_store(self):
        s = scope(Role.ADMIN)
        assert all(s.can_act_on_store(store_id) for store_id in ALL_STORES)
        assert s.can_act_on_store(99)
        assert s.visible_store_ids() == frozenset(ALL_STORES)

    @pytest.mark.parametrize("role", [Role.MANAGER, Role.SELLER])
    def test_assigned_stores_only(self, role):
        s = scope(role, {1})
        assert s.can_act_on_store(1)
        assert not s.can_act_on_store(2)
        assert s.visible_store_ids() == frozenset({1})

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.MANAGER, Role.SELLER])
    def test_missing_store_id_is_never_actionable(self, role):
        s = scope(role, {1})
        assert not s.can_act_on_store(None)
        assert not s.can_act_on_store("")

    def test_empty_assignment_yields_empty_visible_set(self):
        s = scope(Role.SELLER, set())
        assert s.visible_store_ids() == frozenset()
        assert not s.can_act_on_store(1)


class TestCapabilities:

    def test_product_visibility_per_role(self):
        assert scope(Role.ADMIN).product_visibility is ProductVisibility.ALL
        assert scope(Role.MANAGER, {1}).product_visibility is ProductVisibility.ALL_WITH_STORE_STOCK
        assert scope(Role.SELLER, {1}).product_visibility is ProductVisibility.IN_STOCK_ONLY

    def test_inventory_rights(self):
        assert scope(Role.ADMIN).can_manage_inventory
        assert scope(Role.MANAGER, {1}).can_manage_inventory
        assert not scope(Role.SELLER, {1}).can_manage_inventory

    def test_reports(self):
        assert scope(Role.MANAGER, {1}).can_view_reports
        assert not scope(Role.SELLER, {1}).can_view_reports


class TestActorScope:

    def test_role_string_is_parsed(self):
        actor = ActorScope(actor_id=1, role="Manager", assigned_store_ids=[2, 2, 3])
        assert actor.role is Role.MANAGER
        assert actor.assigned_store_ids == frozenset({2, 3})

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            ActorScope(actor_id=1, role="cashier")

    def test_is_immutable(self):
        actor = ActorScope(actor_id=1, role=Role.SELLER, assigned_store_ids={1})
        with pytest.raises(Exception):
            actor.role = Role.ADMIN
