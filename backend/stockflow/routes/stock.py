# backend/stockflow/routes/stock.py
"""
Stock routes.

All routes require a bearer token; results are limited to the stores the
actor can see. Receiving stock and changing thresholds additionally require
a role that manages inventory (admin, manager).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..errors import PermissionDenied
from ..services import stock_service
from .sales import error_response


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_actor
def list_stock_route():
    store_id = request.args.get("store_id", type=int)
    records = stock_service.list_stock(g.store_scope, store_id)
    return jsonify({
        "stock": [stock_service.stock_record_summary(r) for r in records],
        "stock_value_cents": stock_service.stock_value_cents(g.store_scope, store_id),
    }), 200


@stock_bp.get("/low")
@require_actor
def list_low_stock_route():
    store_id = request.args.get("store_id", type=int)
    records = stock_service.list_low_stock(g.store_scope, store_id)
    return jsonify({"stock": [stock_service.stock_record_summary(r) for r in records]}), 200


@stock_bp.get("/quantity")
@require_actor
def quantity_route():
    """
    On-hand quantity of one product.

    With store_id: that store only (must be visible to the actor).
    Without: aggregate over every store the actor can see.
    """
    product_id = request.args.get("product_id", type=int)
    if not product_id:
        return jsonify({"error": "product_id required"}), 400

    store_id = request.args.get("store_id", type=int)
    visible = g.store_scope.visible_store_ids()

    if store_id is not None:
        if store_id not in visible:
            return error_response(PermissionDenied("Store is outside the actor's scope", details={"store_id": store_id}))
        quantity = stock_service.get_quantity(product_id, store_id)
        store_ids = [store_id]
    else:
        quantity = stock_service.aggregate_quantity(product_id, visible)
        store_ids = sorted(visible)

    return jsonify({"product_id": product_id, "store_ids": store_ids, "quantity": quantity}), 200


@stock_bp.post("/receive")
@require_actor
def receive_stock_route():
    """
    Receive units of a product into a store.

    Body: {product_id, store_id, quantity, min_threshold?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        record = stock_service.stock_product(
            g.store_scope,
            product_id=payload.get("product_id"),
            store_id=payload.get("store_id"),
            quantity=payload.get("quantity"),
            min_threshold=payload.get("min_threshold"),
        )
    except PermissionDenied as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"stock": stock_service.stock_record_summary(record)}), 201


@stock_bp.put("/threshold")
@require_actor
def set_threshold_route():
    payload = request.get_json(silent=True) or {}

    try:
        record = stock_service.set_min_threshold(
            g.store_scope,
            product_id=payload.get("product_id"),
            store_id=payload.get("store_id"),
            min_threshold=payload.get("min_threshold"),
        )
    except PermissionDenied as e:
        return error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"stock": stock_service.stock_record_summary(record)}), 200
