from __future__ import annotations

from stockflow.extensions import db
from stockflow.models import Store
from stockflow.services.concurrency import run_with_retry
from stockflow.services.scope_service import ActorScope, StoreScope, resolve_scope


class StoreError(Exception):
    """Raised when store operations fail."""
    pass


def create_store(name: str, code: str | None = None, tax_rate_bps: int | None = None) -> Store:
    def _op():
        if not name:
            raise StoreError("Store name is required")

        if tax_rate_bps is not None and not (0 <= tax_rate_bps <= 10000):
            raise StoreError("tax_rate_bps must be between 0 and 10000")

        existing = db.session.query(Store).filter_by(name=name).first()
        if existing:
            raise StoreError("Store name already exists")

        store = Store(name=name, code=code, tax_rate_bps=tax_rate_bps)

        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def all_store_ids(*, active_only: bool = True) -> set[int]:
    query = db.session.query(Store.id)
    if active_only:
        query = query.filter(Store.is_active.is_(True))
    return {row[0] for row in query.all()}


def scope_for(actor: ActorScope) -> StoreScope:
    """Resolve an actor's scope against the current store list."""
    return resolve_scope(actor, all_store_ids())

