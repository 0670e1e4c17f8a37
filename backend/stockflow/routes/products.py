# backend/stockflow/routes/products.py
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..services.products_service import list_visible_products


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
def list_products_route():
    """
    Products as the actor's role may see them.

    admin: every product; manager: every product with stock per assigned
    store; seller: only products in stock at an assigned store.
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = list_visible_products(g.store_scope, active_only=not include_inactive)
    return jsonify({
        "products": products,
        "visibility": g.store_scope.product_visibility.value,
    }), 200
