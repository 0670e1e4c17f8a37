# Overview: Validates a cart against scope and business rules and computes sale totals (no I/O).

"""
Sale builder.

Turns a SaleRequest into an immutable SaleDraft, or raises one of the typed
validation errors. Checks run in a fixed order and stop at the first failure:

1. store present and actionable for the actor      -> PermissionDenied
2. at least one line with a product and a positive
   integer quantity (blank lines are dropped)      -> EmptyOrInvalidCart
3. every unit price >= 1 cent                      -> InvalidPrice
4. discount within MAX_DISCOUNT_RATE_BPS of the
   subtotal, line count within MAX_ITEMS_PER_SALE,
   known payment method                            -> BusinessRuleViolation

All money is integer cents; rates are basis points. Rounding is half-up to
the cent.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional

from ..errors import BusinessRuleViolation, EmptyOrInvalidCart, InvalidPrice, PermissionDenied
from ..models import PAYMENT_METHODS
from stockflow.time_utils import utcnow
from .scope_service import StoreScope

MIN_UNIT_PRICE_CENTS = 1
MAX_ATTEMPT_ID_LENGTH = 64
BPS_DENOMINATOR = 10000


@dataclass(frozen=True)
class CartLine:
    product_id: Optional[int]
    quantity: Optional[int]
    unit_price_cents: Optional[int]


@dataclass(frozen=True)
class SaleRequest:
    store_id: Optional[int]
    lines: tuple[CartLine, ...] = ()
    discount_cents: Optional[int] = None
    discount_percent: Optional[Decimal] = None
    payment_method: str = "cash"
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    attempt_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "lines", tuple(self.lines or ()))


@dataclass(frozen=True)
class SaleRules:
    tax_rate_bps: int = 2000
    max_discount_rate_bps: int = 5000
    max_items_per_sale: int = 100
    sale_number_prefix: str = "VTE"

    @classmethod
    def from_config(cls, config, store=None) -> "SaleRules":
        tax_rate_bps = config.get("TAX_RATE_BPS", cls.tax_rate_bps)
        if store is not None and store.tax_rate_bps is not None:
            tax_rate_bps = store.tax_rate_bps
        return cls(
            tax_rate_bps=tax_rate_bps,
            max_discount_rate_bps=config.get("MAX_DISCOUNT_RATE_BPS", cls.max_discount_rate_bps),
            max_items_per_sale=config.get("MAX_ITEMS_PER_SALE", cls.max_items_per_sale),
            sale_number_prefix=config.get("SALE_NUMBER_PREFIX", cls.sale_number_prefix),
        )


@dataclass(frozen=True)
class DraftLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int


@dataclass(frozen=True)
class SaleDraft:
    """A validated, fully computed sale that has not been written yet."""
    store_id: int
    seller_id: int
    attempt_id: str
    sale_number: str
    lines: tuple[DraftLine, ...]
    subtotal_cents: int
    tax_rate_bps: int
    tax_cents: int
    discount_cents: int
    total_cents: int
    payment_method: str
    created_at: datetime
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    status: str = "completed"
    quantities_by_product: dict = field(default_factory=dict, compare=False)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def money_to_cents(value) -> int:
    """
    Convert a currency amount ("12.50", 12.5, Decimal) to integer cents.

    Raises InvalidPrice for values that are not numbers.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidPrice("Price must be a number", details={"value": value})
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidPrice("Price must be a number", details={"value": value}) from None
    if not amount.is_finite():
        raise InvalidPrice("Price must be a number", details={"value": str(value)})
    return round_half_up(amount * 100)


def compute_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    return round_half_up(Decimal(subtotal_cents) * Decimal(tax_rate_bps) / BPS_DENOMINATOR)


def generate_sale_number(prefix: str, attempt_id: str, now: datetime) -> str:
    """Date prefix, time suffix down to microseconds, plus 4 hex chars from the attempt id."""
    tag = hashlib.sha256(attempt_id.encode("utf-8")).hexdigest()[:4].upper()
    return f"{prefix}-{now:%Y%m%d}-{now:%H%M%S%f}-{tag}"


def new_attempt_id() -> str:
    return uuid.uuid4().hex


def _check_scope(scope: StoreScope, store_id) -> None:
    if store_id is None or store_id == "":
        raise PermissionDenied("store_id is required")
    if not scope.can_act_on_store(store_id):
        raise PermissionDenied(
            "Store is outside the actor's scope",
            details={"store_id": store_id, "role": scope.role.value},
        )


def _is_filled(line: CartLine) -> bool:
    return (
        _is_int(line.product_id) and line.product_id > 0
        and _is_int(line.quantity) and line.quantity > 0
    )


def _usable_lines(lines: Iterable[CartLine]) -> tuple[CartLine, ...]:
    """Drop blank rows (no product or no positive quantity); the rest must not be empty."""
    lines = tuple(lines)
    kept = tuple(line for line in lines if _is_filled(line))
    if not kept:
        raise EmptyOrInvalidCart(
            "Cart has no line item with a product and a positive quantity",
            details={"submitted_lines": len(lines)},
        )
    return kept


def _check_prices(lines: Iterable[CartLine]) -> None:
    for index, line in enumerate(lines):
        if not _is_int(line.unit_price_cents) or line.unit_price_cents < MIN_UNIT_PRICE_CENTS:
            raise InvalidPrice(
                "Unit price must be at least 0.01",
                details={"line": index, "unit_price_cents": line.unit_price_cents},
            )


def _resolve_discount(request: SaleRequest, subtotal_cents: int) -> int:
    if request.discount_cents is not None and request.discount_percent is not None:
        raise BusinessRuleViolation("Give either discount_cents or discount_percent, not both")

    if request.discount_percent is not None:
        try:
            percent = Decimal(str(request.discount_percent))
        except (InvalidOperation, ValueError):
            raise BusinessRuleViolation("discount_percent must be a number") from None
        if not percent.is_finite() or percent < 0 or percent > 100:
            raise BusinessRuleViolation(
                "discount_percent must be between 0 and 100",
                details={"discount_percent": str(request.discount_percent)},
            )
        return round_half_up(Decimal(subtotal_cents) * percent / 100)

    if request.discount_cents is None:
        return 0
    if not _is_int(request.discount_cents) or request.discount_cents < 0:
        raise BusinessRuleViolation(
            "discount_cents must be a non-negative integer",
            details={"discount_cents": request.discount_cents},
        )
    return request.discount_cents


def _check_rules(
    request: SaleRequest, rules: SaleRules, line_count: int, subtotal_cents: int, discount_cents: int
) -> None:
    if line_count > rules.max_items_per_sale:
        raise BusinessRuleViolation(
            "Too many line items",
            details={"line_count": line_count, "max_items_per_sale": rules.max_items_per_sale},
        )

    max_discount = subtotal_cents * rules.max_discount_rate_bps // BPS_DENOMINATOR
    if discount_cents > max_discount:
        raise BusinessRuleViolation(
            "Discount exceeds the maximum allowed rate",
            details={
                "discount_cents": discount_cents,
                "max_discount_cents": max_discount,
                "max_discount_rate_bps": rules.max_discount_rate_bps,
            },
        )

    if request.payment_method not in PAYMENT_METHODS:
        raise BusinessRuleViolation(
            "Unknown payment method",
            details={"payment_method": request.payment_method, "allowed": list(PAYMENT_METHODS)},
        )

    if request.attempt_id is not None and not (
        isinstance(request.attempt_id, str) and 0 < len(request.attempt_id) <= MAX_ATTEMPT_ID_LENGTH
    ):
        raise BusinessRuleViolation("attempt_id must be a string of 1-64 characters")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def build_sale(
    scope: StoreScope,
    request: SaleRequest,
    rules: SaleRules | None = None,
    *,
    now: datetime | None = None,
) -> SaleDraft:
    """Validate `request` for `scope` and return the computed SaleDraft."""
    rules = rules or SaleRules()

    _check_scope(scope, request.store_id)
    lines = _usable_lines(request.lines)
    _check_prices(lines)

    draft_lines = tuple(
        DraftLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_price_cents=line.quantity * line.unit_price_cents,
        )
        for line in lines
    )
    subtotal = sum(line.total_price_cents for line in draft_lines)

    discount = _resolve_discount(request, subtotal)
    _check_rules(request, rules, len(draft_lines), subtotal, discount)

    tax = compute_tax_cents(subtotal, rules.tax_rate_bps)
    total = max(0, subtotal + tax - discount)

    quantities: dict[int, int] = {}
    for line in draft_lines:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    now = now or utcnow()
    attempt_id = request.attempt_id or new_attempt_id()

    return SaleDraft(
        store_id=request.store_id,
        seller_id=scope.actor_id,
        attempt_id=attempt_id,
        sale_number=generate_sale_number(rules.sale_number_prefix, attempt_id, now),
        lines=draft_lines,
        subtotal_cents=subtotal,
        tax_rate_bps=rules.tax_rate_bps,
        tax_cents=tax,
        discount_cents=discount,
        total_cents=total,
        payment_method=request.payment_method,
        created_at=now,
        customer_name=_clean(request.customer_name),
        customer_email=_clean(request.customer_email),
        customer_phone=_clean(request.customer_phone),
        notes=_clean(request.notes),
        quantities_by_product=quantities,
    )
