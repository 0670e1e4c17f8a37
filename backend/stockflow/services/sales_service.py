"""
Sales Service - transactional sale recording

WHY: A sale is only real if its header, its lines and the matching stock
decrements are all durable. They are written in ONE database transaction:
any failure rolls every step back, so there is no state where a sale exists
without its stock movement (or the reverse).

Steps inside the transaction:
    begin   take the write lock (retried on contention; nothing written yet)
    header  insert Sale, obtain id
    items   insert SaleLine rows
    stock   guarded decrement per product, ascending product id
    commit

Failures are never retried once the header is written. They are logged with
the attempt id, the affected (product, store) pairs and the steps completed,
then raised as typed errors carrying the same attempt id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..errors import (
    BusinessRuleViolation,
    EmptyOrInvalidCart,
    InsufficientStock,
    PermissionDenied,
    PersistenceError,
    SaleError,
)
from ..extensions import db
from ..models import Product, Sale, SaleLine, Store
from ..signals import TAG_SALES, TAG_STOCK, notify_invalidated
from . import stock_service
from .concurrency import open_write_transaction
from .sale_builder import SaleDraft, SaleRequest, SaleRules, build_sale, new_attempt_id
from .scope_service import StoreScope

SHORTAGE_ABORT = "abort"
SHORTAGE_BACKORDER = "backorder"
SHORTAGE_POLICIES = (SHORTAGE_ABORT, SHORTAGE_BACKORDER)


@dataclass
class _AttemptTrace:
    """What a sale attempt has done so far; logged when it fails."""
    attempt_id: str
    store_id: int
    pairs: list[tuple[int, int]]
    sale_id: int | None = None
    step: str = "begin"
    completed: list[str] = field(default_factory=list)
    applied: dict[int, int] = field(default_factory=dict)

    def done(self, step: str, next_step: str | None = None) -> None:
        self.completed.append(step)
        if next_step:
            self.step = next_step

    def context(self) -> dict:
        return {
            "attempt_id": self.attempt_id,
            "sale_id": self.sale_id,
            "store_id": self.store_id,
            "pairs": [{"product_id": p, "store_id": s} for p, s in self.pairs],
            "failed_step": self.step,
            "completed_steps": list(self.completed),
            "applied_decrements": {str(p): n for p, n in self.applied.items()},
        }


def _log_failure(trace: _AttemptTrace, reason: str, *, level: str = "error") -> None:
    log = getattr(current_app.logger, level)
    log(
        "sale attempt %s rolled back at step %s (%s): sale_id=%s store_id=%s pairs=%s completed=%s applied=%s",
        trace.attempt_id,
        trace.step,
        reason,
        trace.sale_id,
        trace.store_id,
        trace.pairs,
        trace.completed,
        trace.applied,
    )


def _find_by_attempt(attempt_id: str) -> Sale | None:
    return db.session.query(Sale).filter_by(attempt_id=attempt_id).first()


def _replay(existing: Sale, draft: SaleDraft) -> Sale:
    if existing.store_id != draft.store_id or existing.seller_id != draft.seller_id:
        raise BusinessRuleViolation(
            "attempt_id was already used for a different sale",
            details={"sale_id": existing.id},
            attempt_id=draft.attempt_id,
        )
    current_app.logger.info(
        "sale attempt %s already committed as sale %s; returning it", draft.attempt_id, existing.id
    )
    return existing


def _insert_header(draft: SaleDraft) -> Sale:
    sale = Sale(
        store_id=draft.store_id,
        seller_id=draft.seller_id,
        sale_number=draft.sale_number,
        attempt_id=draft.attempt_id,
        subtotal_cents=draft.subtotal_cents,
        tax_rate_bps=draft.tax_rate_bps,
        tax_cents=draft.tax_cents,
        discount_cents=draft.discount_cents,
        total_cents=draft.total_cents,
        status=draft.status,
        payment_method=draft.payment_method,
        customer_name=draft.customer_name,
        customer_email=draft.customer_email,
        customer_phone=draft.customer_phone,
        notes=draft.notes,
        created_at=draft.created_at,
    )
    db.session.add(sale)
    db.session.flush()
    return sale


def _insert_lines(sale: Sale, draft: SaleDraft) -> list[SaleLine]:
    lines = [
        SaleLine(
            sale_id=sale.id,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_price_cents=line.total_price_cents,
            backordered_quantity=0,
        )
        for line in draft.lines
    ]
    db.session.add_all(lines)
    db.session.flush()
    return lines


def _apply_decrements(draft: SaleDraft, lines: list[SaleLine], policy: str, trace: _AttemptTrace) -> None:
    # Ascending product id keeps row-lock order identical across concurrent sales.
    for product_id in sorted(draft.quantities_by_product):
        requested = draft.quantities_by_product[product_id]
        if policy == SHORTAGE_BACKORDER:
            applied, _ = stock_service.decrement_available(product_id, draft.store_id, requested)
            shortfall = requested - applied
            if shortfall:
                _record_backorder(lines, product_id, shortfall)
                current_app.logger.warning(
                    "sale attempt %s backordered %s x product %s at store %s",
                    draft.attempt_id, shortfall, product_id, draft.store_id,
                )
        else:
            stock_service.decrement(product_id, draft.store_id, requested, attempt_id=draft.attempt_id)
            applied = requested
        trace.applied[product_id] = applied
    db.session.flush()


def _record_backorder(lines: list[SaleLine], product_id: int, shortfall: int) -> None:
    # Shortfall is charged to the last lines of the product first.
    for line in reversed(lines):
        if line.product_id != product_id or shortfall <= 0:
            continue
        take = min(line.quantity, shortfall)
        line.backordered_quantity = take
        shortfall -= take


def _check_products(draft: SaleDraft) -> None:
    wanted = set(draft.quantities_by_product)
    found = {
        row[0]
        for row in db.session.query(Product.id)
        .filter(Product.id.in_(wanted), Product.is_active.is_(True))
        .all()
    }
    missing = sorted(wanted - found)
    if missing:
        raise EmptyOrInvalidCart("Unknown or inactive product in cart", details={"product_ids": missing})


def _resolve_policy(shortage_policy: str | None) -> str:
    policy = (shortage_policy or current_app.config.get("STOCK_SHORTAGE_POLICY") or SHORTAGE_ABORT).lower()
    if policy not in SHORTAGE_POLICIES:
        raise ValueError(f"unknown stock shortage policy: {policy!r}")
    return policy


def _warn_low_stock(draft: SaleDraft) -> None:
    for product_id in sorted(draft.quantities_by_product):
        record = stock_service.get_record(product_id, draft.store_id)
        if record is None:
            continue
        level = stock_service.classify(record.quantity, record.min_threshold)
        if level in (stock_service.StockLevel.OUT_OF_STOCK, stock_service.StockLevel.LOW):
            current_app.logger.warning(
                "stock %s for product %s at store %s: quantity=%s threshold=%s",
                level.value, product_id, draft.store_id, record.quantity, record.min_threshold,
            )


def create_sale(scope: StoreScope, request: SaleRequest, *, shortage_policy: str | None = None) -> Sale:
    """
    Validate, persist and apply a sale as one atomic unit.

    Returns the committed Sale (or the previously committed Sale when the
    attempt id was already used for the same store and seller).

    Raises the sale builder's validation errors, PermissionDenied,
    InsufficientStock (abort policy) or PersistenceError; in every error case
    nothing has been written.
    """
    policy = _resolve_policy(shortage_policy)

    store = None
    if request.store_id not in (None, ""):
        store = db.session.query(Store).filter_by(id=request.store_id).first()

    if request.attempt_id is None:
        request = replace(request, attempt_id=new_attempt_id())

    try:
        draft = build_sale(scope, request, SaleRules.from_config(current_app.config, store))
        if store is None or not store.is_active:
            raise PermissionDenied("Store not found or inactive", details={"store_id": request.store_id})
        _check_products(draft)
    except SaleError as exc:
        exc.attempt_id = request.attempt_id
        current_app.logger.info("sale attempt %s rejected: %s %s", request.attempt_id, type(exc).__name__, exc)
        raise

    existing = _find_by_attempt(draft.attempt_id)
    if existing is not None:
        return _replay(existing, draft)

    trace = _AttemptTrace(
        attempt_id=draft.attempt_id,
        store_id=draft.store_id,
        pairs=[(product_id, draft.store_id) for product_id in sorted(draft.quantities_by_product)],
    )

    try:
        open_write_transaction(attempts=current_app.config.get("WRITE_LOCK_RETRY_ATTEMPTS", 3))
    except OperationalError as exc:
        _log_failure(trace, f"write lock unavailable: {exc}")
        raise PersistenceError("begin", details=trace.context(), attempt_id=draft.attempt_id) from exc

    trace.step = "header"
    try:
        sale = _insert_header(draft)
        trace.sale_id = sale.id
        trace.done("header", "items")

        lines = _insert_lines(sale, draft)
        trace.done("items", "stock")

        _apply_decrements(draft, lines, policy, trace)
        trace.done("stock", "commit")

        db.session.commit()
        trace.done("commit")
    except InsufficientStock as exc:
        db.session.rollback()
        exc.attempt_id = draft.attempt_id
        exc.details["sale_attempt"] = trace.context()
        _log_failure(trace, str(exc), level="warning")
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if trace.step == "header":
            existing = _find_by_attempt(draft.attempt_id)
            if existing is not None:
                return _replay(existing, draft)
        _log_failure(trace, f"integrity error: {exc.orig}")
        raise PersistenceError(trace.step, details=trace.context(), attempt_id=draft.attempt_id) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        _log_failure(trace, f"database error: {exc}")
        raise PersistenceError(trace.step, details=trace.context(), attempt_id=draft.attempt_id) from exc
    except BaseException as exc:
        # Cancellation or an unexpected bug: nothing is committed, say where we were.
        db.session.rollback()
        _log_failure(trace, f"interrupted: {type(exc).__name__}")
        raise

    current_app.logger.info(
        "sale %s committed: sale_number=%s attempt_id=%s store_id=%s seller_id=%s total_cents=%s",
        sale.id, sale.sale_number, sale.attempt_id, sale.store_id, sale.seller_id, sale.total_cents,
    )
    _warn_low_stock(draft)
    notify_invalidated(create_sale, TAG_SALES, TAG_STOCK, store_id=sale.store_id, sale_id=sale.id)
    return sale


def get_sale(scope: StoreScope, sale_id: int) -> Sale | None:
    """Load a sale the actor may see; None when it does not exist."""
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        return None
    # Admins also see sales of stores deactivated since.
    if not scope.capabilities.all_stores and sale.store_id not in scope.visible_store_ids():
        raise PermissionDenied("Sale belongs to a store outside the actor's scope", details={"sale_id": sale_id})
    return sale


def list_sales(scope: StoreScope, store_id: int | None = None, *, limit: int = 100, offset: int = 0) -> list[Sale]:
    query = db.session.query(Sale)
    if scope.capabilities.all_stores:
        if store_id is not None:
            query = query.filter(Sale.store_id == store_id)
    else:
        visible = scope.visible_store_ids()
        if store_id is not None:
            visible = visible & {store_id}
        if not visible:
            return []
        query = query.filter(Sale.store_id.in_(visible))

    limit = max(1, min(limit, 500))
    offset = max(0, offset)

    return (
        query
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def sale_with_lines(sale: Sale) -> dict:
    data = sale.to_dict()
    data["lines"] = [line.to_dict() for line in sale.lines]
    return data
