# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/stockflow/routes/sales.py
"""Sales API routes with role-scoped access"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import InvalidPrice, PermissionDenied, SaleError
from ..extensions import db
from ..models import Sale
from ..services import sales_service
from ..services.sale_builder import CartLine, SaleRequest, money_to_cents


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def error_response(e: SaleError):
    body = e.to_dict()
    if e.http_status >= 500:
        # Generic message only; the attempt id locates the details in the log.
        body = {"error": str(e), "kind": body["kind"], "details": {"step": e.details.get("step")},
                "attempt_id": e.attempt_id}
    return jsonify(body), e.http_status


# Parsing never rejects; malformed values become None for the sale builder to report.
def _price_cents(raw: dict):
    if "unit_price_cents" in raw:
        return raw.get("unit_price_cents")
    if "unit_price" not in raw:
        return None
    try:
        return money_to_cents(raw.get("unit_price"))
    except InvalidPrice:
        return None


def _parse_line(raw) -> CartLine:
    if not isinstance(raw, dict):
        return CartLine(product_id=None, quantity=None, unit_price_cents=None)

    return CartLine(
        product_id=raw.get("product_id"),
        quantity=raw.get("quantity"),
        unit_price_cents=_price_cents(raw),
    )


def parse_sale_request(data: dict) -> SaleRequest:
    raw_lines = data.get("lines")
    if not isinstance(raw_lines, list):
        raw_lines = []

    return SaleRequest(
        store_id=data.get("store_id"),
        lines=tuple(_parse_line(raw) for raw in raw_lines),
        discount_cents=data.get("discount_cents"),
        discount_percent=data.get("discount_percent"),
        payment_method=data.get("payment_method") or "cash",
        customer_name=data.get("customer_name"),
        customer_email=data.get("customer_email"),
        customer_phone=data.get("customer_phone"),
        notes=data.get("notes"),
        attempt_id=data.get("attempt_id"),
    )


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Record a sale and decrement stock in one transaction.

    Body: {store_id, lines: [{product_id, quantity, unit_price_cents}],
           discount_cents | discount_percent, payment_method, attempt_id, ...}
    Re-posting the same attempt_id returns the already committed sale (200).
    """
    data = request.get_json(silent=True) or {}

    try:
        sale_request = parse_sale_request(data)
        replay = bool(sale_request.attempt_id) and _already_committed(sale_request.attempt_id)
        sale = sales_service.create_sale(g.store_scope, sale_request)
    except SaleError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sales_service.sale_with_lines(sale)}), 200 if replay else 201


def _already_committed(attempt_id) -> bool:
    return db.session.query(Sale.id).filter_by(attempt_id=str(attempt_id)).first() is not None


@sales_bp.get("")
@require_actor
def list_sales_route():
    store_id = request.args.get("store_id", type=int)
    limit = request.args.get("limit", default=100, type=int)
    offset = request.args.get("offset", default=0, type=int)

    sales = sales_service.list_sales(g.store_scope, store_id, limit=limit, offset=offset)
    return jsonify({"sales": [sale.to_dict() for sale in sales]}), 200


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.store_scope, sale_id)
    except PermissionDenied as e:
        return error_response(e)

    if not sale:
        return jsonify({"error": "Sale not found"}), 404

    return jsonify({"sale": sales_service.sale_with_lines(sale)}), 200
