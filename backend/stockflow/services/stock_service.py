# Overview: Service-layer operations for per-store stock; encapsulates business logic and database work.

# backend/stockflow/services/stock_service.py

from __future__ import annotations

import enum

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, PermissionDenied
from ..extensions import db
from ..models import Product, StockRecord, Store
from ..signals import TAG_STOCK, notify_invalidated
from stockflow.time_utils import utcnow
from .concurrency import open_write_transaction
from .scope_service import StoreScope
"""
Stock ledger invariants (authoritative)

- One StockRecord per (product, store); quantity >= 0 at all times.
- quantity is never written as "read, compute, assign". Every change is one
  guarded UPDATE evaluated by the database:
      decrement: SET quantity = quantity - :n WHERE ... AND quantity >= :n
      increment: SET quantity = quantity + :n WHERE ...
  rows-affected tells whether the change applied.
- An over-large decrement is rejected (InsufficientStock), never clamped.
- decrement() does not commit: it runs inside the caller's transaction so a
  sale and its stock changes commit or roll back together.
- No record for a pair means "not stocked here": quantity 0, not an error.
"""

MAX_DECREMENT_ATTEMPTS = 5


class StockLevel(str, enum.Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def classify(quantity: int, threshold: int) -> StockLevel:
    """
    Grade a quantity against its minimum threshold.

    0 -> OUT_OF_STOCK, (0, threshold] -> LOW, (threshold, 2*threshold] -> MEDIUM,
    above -> HIGH.
    """
    if quantity <= 0:
        return StockLevel.OUT_OF_STOCK
    if quantity <= threshold:
        return StockLevel.LOW
    if quantity <= threshold * 2:
        return StockLevel.MEDIUM
    return StockLevel.HIGH


def _validate_amount(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError("amount must be an integer")
    if amount <= 0:
        raise ValueError("amount must be positive")


def get_quantity(product_id: int, store_id: int) -> int:
    q = db.session.query(StockRecord.quantity).filter(
        StockRecord.product_id == product_id,
        StockRecord.store_id == store_id,
    )
    value = q.scalar()
    return int(value or 0)


def get_record(product_id: int, store_id: int) -> StockRecord | None:
    return (
        db.session.query(StockRecord)
        .filter_by(product_id=product_id, store_id=store_id)
        .first()
    )


def aggregate_quantity(product_id: int, store_ids) -> int:
    """Total on-hand quantity of a product across a set of stores."""
    store_ids = list(store_ids)
    if not store_ids:
        return 0
    q = db.session.query(
        func.coalesce(func.sum(StockRecord.quantity), 0)
    ).filter(
        StockRecord.product_id == product_id,
        StockRecord.store_id.in_(store_ids),
    )
    return int(q.scalar() or 0)


def decrement(product_id: int, store_id: int, amount: int, *, attempt_id: str | None = None) -> int:
    """
    Atomically remove `amount` units; returns the new quantity.

    Raises InsufficientStock when fewer than `amount` units are on hand
    (including when the pair was never stocked). Does not commit.
    """
    _validate_amount(amount)

    stmt = (
        update(StockRecord)
        .where(
            StockRecord.product_id == product_id,
            StockRecord.store_id == store_id,
            StockRecord.quantity >= amount,
        )
        .values(quantity=StockRecord.quantity - amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        available = get_quantity(product_id, store_id)
        raise InsufficientStock(
            product_id=product_id,
            store_id=store_id,
            requested=amount,
            available=available,
            attempt_id=attempt_id,
        )
    return get_quantity(product_id, store_id)


def decrement_available(product_id: int, store_id: int, amount: int) -> tuple[int, int]:
    """
    Remove up to `amount` units; returns (applied, new_quantity).

    Used by the backorder shortage policy. Each step is still a guarded
    decrement, so a concurrent writer can only make `applied` smaller.
    """
    _validate_amount(amount)

    for _ in range(MAX_DECREMENT_ATTEMPTS):
        on_hand = get_quantity(product_id, store_id)
        take = min(on_hand, amount)
        if take <= 0:
            return 0, on_hand
        try:
            return take, decrement(product_id, store_id, take)
        except InsufficientStock:
            continue
    return 0, get_quantity(product_id, store_id)


def _increment(product_id: int, store_id: int, amount: int) -> bool:
    stmt = (
        update(StockRecord)
        .where(
            StockRecord.product_id == product_id,
            StockRecord.store_id == store_id,
        )
        .values(quantity=StockRecord.quantity + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount == 1


def _validate_ids(product_id, store_id) -> None:
    for name, value in (("product_id", product_id), ("store_id", store_id)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"{name} is required")


def _require_inventory_rights(scope: StoreScope, store_id: int) -> None:
    if not scope.can_manage_inventory:
        raise PermissionDenied("Role cannot manage inventory", details={"role": scope.role.value})
    if not scope.can_act_on_store(store_id):
        raise PermissionDenied("Store is outside the actor's scope", details={"store_id": store_id})


def stock_product(
    scope: StoreScope,
    *,
    product_id: int,
    store_id: int,
    quantity: int,
    min_threshold: int | None = None,
) -> StockRecord:
    """
    Receive `quantity` units of a product into a store.

    First receipt creates the StockRecord; later receipts increment it with a
    single UPDATE. Commits and signals "stock" as stale.
    """
    _validate_ids(product_id, store_id)
    _require_inventory_rights(scope, store_id)
    _validate_amount(quantity)
    if min_threshold is not None and min_threshold < 0:
        raise ValueError("min_threshold must be >= 0")

    if db.session.query(Product.id).filter_by(id=product_id).first() is None:
        raise ValueError("product not found")
    if db.session.query(Store.id).filter_by(id=store_id).first() is None:
        raise ValueError("store not found")

    open_write_transaction(attempts=current_app.config.get("WRITE_LOCK_RETRY_ATTEMPTS", 3))
    try:
        if not _increment(product_id, store_id, quantity):
            record = StockRecord(
                product_id=product_id,
                store_id=store_id,
                quantity=quantity,
                min_threshold=(
                    min_threshold
                    if min_threshold is not None
                    else current_app.config.get("LOW_STOCK_THRESHOLD", 5)
                ),
                reserved_quantity=0,
                updated_at=utcnow(),
            )
            db.session.add(record)
            db.session.flush()
        elif min_threshold is not None:
            db.session.execute(
                update(StockRecord)
                .where(StockRecord.product_id == product_id, StockRecord.store_id == store_id)
                .values(min_threshold=min_threshold)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
    except IntegrityError:
        # Another writer created the record first; fall back to incrementing it.
        db.session.rollback()
        open_write_transaction()
        if not _increment(product_id, store_id, quantity):
            db.session.rollback()
            raise
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "stock received product_id=%s store_id=%s quantity=%s actor_id=%s",
        product_id, store_id, quantity, scope.actor_id,
    )
    notify_invalidated(stock_product, TAG_STOCK, store_id=store_id)

    return get_record(product_id, store_id)


def set_min_threshold(scope: StoreScope, *, product_id: int, store_id: int, min_threshold: int) -> StockRecord:
    _validate_ids(product_id, store_id)
    _require_inventory_rights(scope, store_id)
    if isinstance(min_threshold, bool) or not isinstance(min_threshold, int) or min_threshold < 0:
        raise ValueError("min_threshold must be a non-negative integer")

    record = get_record(product_id, store_id)
    if record is None:
        raise ValueError("product is not stocked in this store")

    record.min_threshold = min_threshold
    record.updated_at = utcnow()
    db.session.commit()

    notify_invalidated(set_min_threshold, TAG_STOCK, store_id=store_id)
    return record


def _visible_stock_query(scope: StoreScope, store_id: int | None = None):
    visible = scope.visible_store_ids()
    if store_id is not None:
        visible = visible & {store_id}
    if not visible:
        return None
    return db.session.query(StockRecord).filter(StockRecord.store_id.in_(visible))


def list_stock(scope: StoreScope, store_id: int | None = None) -> list[StockRecord]:
    """Stock rows in the actor's visible stores, most recently changed first."""
    q = _visible_stock_query(scope, store_id)
    if q is None:
        return []
    return q.order_by(StockRecord.updated_at.desc(), StockRecord.id.desc()).all()


def list_low_stock(scope: StoreScope, store_id: int | None = None) -> list[StockRecord]:
    q = _visible_stock_query(scope, store_id)
    if q is None:
        return []
    return (
        q.filter(StockRecord.quantity <= StockRecord.min_threshold)
        .order_by(StockRecord.quantity.asc(), StockRecord.id.asc())
        .all()
    )


def stock_value_cents(scope: StoreScope, store_id: int | None = None) -> int:
    """Sum of quantity * current price over visible stock (unpriced products count 0)."""
    visible = scope.visible_store_ids()
    if store_id is not None:
        visible = visible & {store_id}
    if not visible:
        return 0
    q = db.session.query(
        func.coalesce(
            func.sum(StockRecord.quantity * func.coalesce(Product.price_cents, 0)),
            0,
        )
    ).join(Product, Product.id == StockRecord.product_id).filter(
        StockRecord.store_id.in_(visible)
    )
    return int(q.scalar() or 0)


def stock_record_summary(record: StockRecord) -> dict:
    data = record.to_dict()
    data["level"] = classify(record.quantity, record.min_threshold).value
    return data
