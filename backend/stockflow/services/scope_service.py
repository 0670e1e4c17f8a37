# Overview: Role-scoped visibility; derives which stores and products an actor may act on.

"""
Role scope resolution.

All role checks go through resolve_scope(). Services receive the resulting
StoreScope (or the ActorScope it came from) as an argument; nothing here reads
the request, the session or the database.

Capability table:

    role     stores visible / actionable   products visible
    admin    every store                   all products
    manager  assigned stores               all products, with per-store stock
    seller   assigned stores               products with stock > 0 in an assigned store

An empty assignment yields an empty visible set, which callers treat as
"nothing actionable".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable


class Role(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SELLER = "seller"

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown role: {value!r}") from None


class ProductVisibility(str, enum.Enum):
    ALL = "all"
    ALL_WITH_STORE_STOCK = "all_with_store_stock"
    IN_STOCK_ONLY = "in_stock_only"


@dataclass(frozen=True)
class RoleCapabilities:
    all_stores: bool
    product_visibility: ProductVisibility
    can_manage_inventory: bool
    can_view_reports: bool


CAPABILITIES: dict[Role, RoleCapabilities] = {
    Role.ADMIN: RoleCapabilities(
        all_stores=True,
        product_visibility=ProductVisibility.ALL,
        can_manage_inventory=True,
        can_view_reports=True,
    ),
    Role.MANAGER: RoleCapabilities(
        all_stores=False,
        product_visibility=ProductVisibility.ALL_WITH_STORE_STOCK,
        can_manage_inventory=True,
        can_view_reports=True,
    ),
    Role.SELLER: RoleCapabilities(
        all_stores=False,
        product_visibility=ProductVisibility.IN_STOCK_ONLY,
        can_manage_inventory=False,
        can_view_reports=False,
    ),
}


@dataclass(frozen=True)
class ActorScope:
    """Role and store assignment of the acting user, supplied per call."""
    actor_id: int
    role: Role
    assigned_store_ids: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "role", Role.parse(self.role))
        object.__setattr__(self, "assigned_store_ids", frozenset(self.assigned_store_ids))


@dataclass(frozen=True)
class StoreScope:
    actor: ActorScope
    capabilities: RoleCapabilities
    _visible: frozenset[int]

    @property
    def actor_id(self) -> int:
        return self.actor.actor_id

    @property
    def role(self) -> Role:
        return self.actor.role

    @property
    def product_visibility(self) -> ProductVisibility:
        return self.capabilities.product_visibility

    @property
    def can_manage_inventory(self) -> bool:
        return self.capabilities.can_manage_inventory

    @property
    def can_view_reports(self) -> bool:
        return self.capabilities.can_view_reports

    def can_act_on_store(self, store_id) -> bool:
        if store_id is None or store_id == "":
            return False
        if self.capabilities.all_stores:
            return True
        return store_id in self.actor.assigned_store_ids

    def visible_store_ids(self) -> frozenset[int]:
        return self._visible


def resolve_scope(actor: ActorScope, all_store_ids: Iterable[int]) -> StoreScope:
    """
    Build the capability object for an actor.

    all_store_ids is the full store set; only admins see it, everyone else
    sees their assignment.
    """
    capabilities = CAPABILITIES[actor.role]
    if capabilities.all_stores:
        visible = frozenset(all_store_ids)
    else:
        visible = actor.assigned_store_ids
    return StoreScope(actor=actor, capabilities=capabilities, _visible=visible)
