from __future__ import annotations

from ..extensions import db
from stockflow.time_utils import to_utc_z


SALE_STATUSES = ("pending", "completed", "cancelled", "refunded")
PAYMENT_METHODS = ("cash", "card", "check", "transfer")


class Sale(db.Model):
    """
    Sale header: one completed transaction at one store.

    Created together with its lines and the matching stock decrements in a
    single database transaction (see sales_service.create_sale). Never edited
    afterwards by this application.

    attempt_id is the client's idempotency key and the correlation id quoted
    in error responses and logs.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        db.UniqueConstraint("attempt_id", name="uq_sales_attempt_id"),
        db.CheckConstraint("total_cents >= 0", name="ck_sales_total_non_negative"),
        db.Index("ix_sales_store_created", "store_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Human-readable number (e.g., "VTE-20261019-143012123456-9F2A")
    sale_number = db.Column(db.String(64), nullable=False)
    attempt_id = db.Column(db.String(64), nullable=False)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    seller = db.relationship("User", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "seller_id": self.seller_id,
            "sale_number": self.sale_number,
            "attempt_id": self.attempt_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "payment_method": self.payment_method,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_lines_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    # Units sold without stock on hand ("backorder" shortage policy only)
    backordered_quantity = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleLine.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "backordered_quantity": self.backordered_quantity,
        }
