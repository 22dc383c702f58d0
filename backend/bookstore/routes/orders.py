# Overview: Flask API routes for checkout and order management; parses input and returns JSON responses.

# backend/bookstore/routes/orders.py
"""
Order routes.

SECURITY:
- POST /api/orders accepts guests unless ORDERS_REQUIRE_AUTH is set; a
  signed-in caller's orders are linked to their account
- /my-orders requires authentication
- Listing all orders and changing status require an admin
"""
from flask import Blueprint, request, jsonify, g, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..services import order_service
from ..validation import (
    parse_create_order,
    parse_status_update,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
)
from ..decorators import require_auth, require_admin, optional_auth


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_admin
def list_orders():
    """
    List all orders, newest first.

    Query params:
    - status: str (optional) - only orders in this status
    """
    status = request.args.get("status")
    return [o.to_dict() for o in order_service.list_orders(status=status)]


@orders_bp.get("/my-orders")
@require_auth
def my_orders():
    return [o.to_dict() for o in order_service.list_orders_for_user(g.current_user.id)]


@orders_bp.post("")
@optional_auth
def create_order_route():
    """
    Place an order.

    Body: {items: [{book_id, quantity}], customer_name, address, payment_method?}

    Responses:
    - 201: created order
    - 400: malformed body
    - 404: a book does not exist
    - 409: insufficient stock (details list every short line)
    """
    if current_app.config.get("ORDERS_REQUIRE_AUTH") and g.current_user is None:
        return jsonify({"error": "Authentication required"}), 401

    user_id = g.current_user.id if g.current_user is not None else None

    try:
        command = parse_create_order(request.get_json(silent=True), user_id=user_id)
        order = order_service.create_order(command)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BusinessRuleError as e:
        return jsonify(e.to_dict()), 409
    except SQLAlchemyError:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order.to_dict()), 201


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Single order; customers may only read their own."""
    try:
        order = order_service.get_order(order_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    if not g.current_user.is_admin and order.user_id != g.current_user.id:
        return jsonify({"error": "Order not found"}), 404

    return jsonify(order.to_dict())


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_admin
def update_status_route(order_id: int):
    """
    Change an order's status (and optionally payment_status).

    Cancelling restores stock once; cancelled orders cannot be reopened.
    An unknown order answers 404 before the body is checked.
    """
    try:
        order_service.get_order(order_id)
        command = parse_status_update(
            request.get_json(silent=True),
            allowed_statuses=order_service.allowed_statuses(),
        )
        order = order_service.update_order_status(order_id, command)
    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except BusinessRuleError as e:
        return jsonify(e.to_dict()), 409
    except SQLAlchemyError:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order.to_dict()), 200
