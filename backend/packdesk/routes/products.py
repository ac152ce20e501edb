# Overview: Flask API routes for products; parses input and returns role-projected JSON.

# backend/packdesk/routes/products.py
"""
Product routes, scoped to the tenant in the URL.

SECURITY: All routes require a valid identity token. The service layer runs
require_role for the tenant before touching data; any tenant or role
mismatch comes back as the same 404 a missing product would.
- Reads: owner, admin, packer (each sees its own view)
- Low stock: owner, admin
- Writes: owner
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PackdeskError, error_response
from ..services import products_service
from ..decorators import require_identity

products_bp = Blueprint("products", __name__, url_prefix="/api/tenants/<int:tenant_id>/products")


@products_bp.get("")
@require_identity
def list_products(tenant_id: int):
    """
    List products.

    Query params:
    - include_inactive: "true" to include deactivated products
    """
    include_inactive = request.args.get("include_inactive", "").lower() == "true"
    try:
        views = products_service.list_products(g.identity, tenant_id, include_inactive=include_inactive)
        return jsonify({"items": [v.to_dict() for v in views], "count": len(views)})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/search")
@require_identity
def search_products(tenant_id: int):
    """Case-insensitive name/SKU search. Query param: q"""
    try:
        views = products_service.search_products(g.identity, tenant_id, request.args.get("q", ""))
        return jsonify({"items": [v.to_dict() for v in views], "count": len(views)})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/low-stock")
@require_identity
def low_stock(tenant_id: int):
    """Products at or below threshold (default LOW_STOCK_THRESHOLD)."""
    threshold = request.args.get("threshold", type=int)
    try:
        views = products_service.low_stock(g.identity, tenant_id, threshold)
        return jsonify({"items": [v.to_dict() for v in views], "count": len(views)})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load low stock products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_identity
def get_product(tenant_id: int, product_id: int):
    try:
        view = products_service.get_product(g.identity, tenant_id, product_id)
        return jsonify({"product": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_identity
def create_product(tenant_id: int):
    """
    Create a product.

    Optional stock_quantity is the opening stock, recorded as a stock_in
    movement.
    """
    payload = request.get_json(silent=True) or {}
    try:
        view = products_service.create_product(g.identity, tenant_id, payload)
        return jsonify({"product": view.to_dict()}), 201
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_identity
def update_product(tenant_id: int, product_id: int):
    """Patch product fields. stock_quantity is rejected; use the inventory routes."""
    payload = request.get_json(silent=True) or {}
    try:
        view = products_service.update_product(g.identity, tenant_id, product_id, payload)
        return jsonify({"product": view.to_dict()})
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_identity
def delete_product(tenant_id: int, product_id: int):
    try:
        products_service.delete_product(g.identity, tenant_id, product_id)
        return "", 204
    except PackdeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
