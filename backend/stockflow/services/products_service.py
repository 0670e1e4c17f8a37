# Overview: Product catalogue and role-scoped product visibility.

from __future__ import annotations

from ..extensions import db
from ..models import Product, StockRecord
from .concurrency import run_with_retry
from .scope_service import ProductVisibility, StoreScope


class ProductError(Exception):
    """Raised for product operation errors."""
    pass


def create_product(*, sku: str, name: str, price_cents: int | None = None) -> Product:
    def _op():
        if not sku or not sku.strip():
            raise ProductError("sku is required")
        if not name or not name.strip():
            raise ProductError("name is required")
        if price_cents is not None and price_cents < 0:
            raise ProductError("price_cents must be >= 0")

        if db.session.query(Product.id).filter_by(sku=sku.strip()).first():
            raise ProductError("SKU already exists")

        product = Product(sku=sku.strip(), name=name.strip(), price_cents=price_cents)
        db.session.add(product)
        db.session.commit()
        return product

    return run_with_retry(_op)


def _stock_by_product(product_ids: list[int], store_ids) -> dict[int, dict[int, int]]:
    if not product_ids or not store_ids:
        return {}
    rows = (
        db.session.query(StockRecord.product_id, StockRecord.store_id, StockRecord.quantity)
        .filter(
            StockRecord.product_id.in_(product_ids),
            StockRecord.store_id.in_(list(store_ids)),
        )
        .all()
    )
    result: dict[int, dict[int, int]] = {}
    for product_id, store_id, quantity in rows:
        result.setdefault(product_id, {})[store_id] = quantity
    return result


def list_visible_products(scope: StoreScope, *, active_only: bool = True) -> list[dict]:
    """
    Product list as the actor is allowed to see it.

    Every row carries `visible_stock` (sum over the actor's visible stores).
    Managers also get `stock_by_store`; sellers only see products with stock
    in one of their stores.
    """
    visible_stores = scope.visible_store_ids()
    mode = scope.product_visibility

    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))

    if mode is ProductVisibility.IN_STOCK_ONLY:
        if not visible_stores:
            return []
        in_stock = (
            db.session.query(StockRecord.product_id)
            .filter(
                StockRecord.store_id.in_(list(visible_stores)),
                StockRecord.quantity > 0,
            )
        )
        query = query.filter(Product.id.in_(in_stock))

    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    stock = _stock_by_product([p.id for p in products], visible_stores)

    rows = []
    for product in products:
        per_store = stock.get(product.id, {})
        row = product.to_dict()
        row["visible_stock"] = sum(per_store.values())
        if mode is ProductVisibility.ALL_WITH_STORE_STOCK:
            row["stock_by_store"] = [
                {"store_id": store_id, "quantity": per_store.get(store_id, 0)}
                for store_id in sorted(visible_stores)
            ]
        rows.append(row)
    return rows
