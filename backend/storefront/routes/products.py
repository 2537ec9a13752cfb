# Overview: Flask API routes for products and the stock ledger; parses input and returns JSON responses.

"""
Product and stock routes.

SECURITY:
- Catalog reads and stock validation are public (the storefront calls them
  before sign-in)
- Reservations, decrements and restores require an identity token
- Absolute stock overrides are staff only
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_staff
from ..services import catalog_service, stock_service
from ..validation import StorefrontError, error_response, require_json_object


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


# =============================================================================
# CATALOG
# =============================================================================

@products_bp.get("")
def list_products_route():
    """
    List active products.

    Query params:
    - category: exact category (optional)
    """
    try:
        products = catalog_service.list_products(category=request.args.get("category"))
        return jsonify([p.to_dict() for p in products])
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"success": False, "error": "Failed to fetch products"}), 500


@products_bp.get("/<product_id>")
def get_product_route(product_id):
    try:
        return jsonify(catalog_service.get_product(product_id).to_dict())
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch product %s", product_id)
        return jsonify({"success": False, "error": "Failed to fetch product"}), 500


# =============================================================================
# STOCK
# =============================================================================

@products_bp.post("/validate-stock")
def validate_stock_route():
    """
    Check requested quantities against current stock. Read-only.

    Request body:
    {
        "items": [{"id": 1, "quantity": 2}]
    }

    Returns:
        200: {success, allValid, items: [{id, name, requestedQuantity, availableStock, valid, error}]}
        400: Malformed items
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = stock_service.validate_stock(data.get("items"))
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate stock")
        return jsonify({"success": False, "error": "Failed to validate stock"}), 500


@products_bp.post("/reserve-stock")
@require_auth
def reserve_stock_route():
    """
    Place an advisory hold for an in-progress checkout.

    Request body:
    {
        "items": [{"id": 1, "quantity": 2}],
        "reservationId": "cart-abc",
        "expiresInMinutes": 15  (optional)
    }

    Returns:
        200: {success, reservationId, expiresAt, message}
        400: Malformed input or duplicate reservationId
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = stock_service.reserve_stock(
            data.get("items"),
            data.get("reservationId"),
            data.get("expiresInMinutes"),
        )
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return jsonify({"success": False, "error": "Failed to reserve stock"}), 500


@products_bp.put("/bulk-stock")
@require_auth
def bulk_stock_route():
    """
    Decrement stock for a batch of items, all or nothing.

    Request body:
    {
        "updates": [{"id": 1, "quantity": 3}],
        "reservationId": "cart-abc"  (optional, marks the hold fulfilled)
    }

    Returns:
        200: {success, message, results}
        400: Malformed input or insufficient stock (details name the product)
        404: Unknown product
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = stock_service.decrement_stock(
            data.get("updates"),
            reservation_id=data.get("reservationId"),
        )
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return jsonify({"success": False, "error": "Failed to update stock"}), 500


@products_bp.post("/restore-stock")
@require_auth
def restore_stock_route():
    """
    Put quantities back (best-effort per item), or release a live hold.

    Request body:
    {
        "items": [{"id": 1, "quantity": 3}],
        "reason": "Order cancelled",  (optional)
        "reservationId": "cart-abc"  (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        result = stock_service.restore_stock(
            data.get("items"),
            reason=data.get("reason"),
            reservation_id=data.get("reservationId"),
        )
        return jsonify({"success": True, **result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restore stock")
        return jsonify({"success": False, "error": "Failed to restore stock"}), 500


@products_bp.post("/stock-levels")
def stock_levels_route():
    """
    Request body: {"productIds": [1, 2, 3]}

    Unknown ids are left out of the result.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        levels = stock_service.get_stock_levels(data.get("productIds"))
        return jsonify({"success": True, "stockLevels": levels})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch stock levels")
        return jsonify({"success": False, "error": "Failed to fetch stock levels"}), 500


@products_bp.put("/<product_id>/stock")
@require_auth
@require_staff
def set_stock_route(product_id):
    """
    Absolute stock override.

    Request body: {"stockQuantity": 12}

    Returns:
        200: {success, message, product}
        400: Invalid quantity
        404: Unknown product
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        product = stock_service.set_stock(product_id, data.get("stockQuantity"))
        current_app.logger.info("Stock for product %s set to %s", product.id, product.stock_quantity)
        return jsonify({
            "success": True,
            "message": "Stock updated successfully",
            "product": product.to_dict(),
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set stock for product %s", product_id)
        return jsonify({"success": False, "error": "Failed to update stock"}), 500
