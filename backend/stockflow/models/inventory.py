from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    Products are global; per-store availability lives in StockRecord.
    Authoritative price storage is in cents (frontend may only format for display).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    price_cents = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockRecord(db.Model):
    """
    On-hand quantity of one product in one store.

    Created the first time a product is stocked into a store. The quantity
    column is only ever changed through guarded UPDATE statements in
    stock_service, never by loading the row and assigning to it.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_stock_records_product_store"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_stock_records_reserved_non_negative"),
        db.Index("ix_stock_records_store_product", "store_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_threshold = db.Column(db.Integer, nullable=False, default=5)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_records", lazy=True))
    store = db.relationship("Store", backref=db.backref("stock_records", lazy=True))

    def __repr__(self) -> str:
        return f"<StockRecord product_id={self.product_id} store_id={self.store_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "min_threshold": self.min_threshold,
            "reserved_quantity": self.reserved_quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
