# Overview: Typed errors raised by the sale and stock services.

"""
Error taxonomy for the sale transaction core.

- ValidationError family: rejected before any write, no side effects.
- PermissionDenied: actor may not act on the store, no side effects.
- InsufficientStock: a guarded decrement found less on hand than requested;
  the surrounding sale transaction is rolled back.
- PersistenceError: the database rejected a step; the transaction is rolled
  back, `step` names the step that failed.

Every error carries the attempt id of the sale attempt (when known) so that
support can correlate the response with the server log.
"""

from __future__ import annotations


class SaleError(Exception):
    """Base class for sale/stock errors."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None, attempt_id: str | None = None):
        super().__init__(message)
        self.details = details or {}
        self.attempt_id = attempt_id

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": type(self).__name__,
            "details": self.details,
            "attempt_id": self.attempt_id,
        }


class ValidationError(SaleError):
    """Input rejected by the sale builder."""


class EmptyOrInvalidCart(ValidationError):
    """No line items, or a line without product or positive quantity."""


class InvalidPrice(ValidationError):
    """A unit price below the minimum (1 cent)."""


class BusinessRuleViolation(ValidationError):
    """Discount, item count or payment method outside configured limits."""


class PermissionDenied(SaleError):
    """Actor scope does not allow acting on the store."""

    http_status = 403


class InsufficientStock(SaleError):
    """Requested quantity exceeds the quantity on hand."""

    http_status = 409

    def __init__(
        self,
        product_id: int,
        store_id: int,
        requested: int,
        available: int,
        attempt_id: str | None = None,
    ):
        super().__init__(
            f"Insufficient stock for product {product_id} in store {store_id}",
            details={
                "product_id": product_id,
                "store_id": store_id,
                "requested_quantity": requested,
                "available_quantity": available,
            },
            attempt_id=attempt_id,
        )
        self.product_id = product_id
        self.store_id = store_id
        self.requested = requested
        self.available = available


class PersistenceError(SaleError):
    """Database failure while persisting a sale; nothing was committed."""

    http_status = 500

    def __init__(self, step: str, message: str = "Sale could not be recorded", details: dict | None = None,
                 attempt_id: str | None = None):
        details = dict(details or {})
        details["step"] = step
        super().__init__(message, details=details, attempt_id=attempt_id)
        self.step = step
