# Overview: Flask API routes for admin user management.

from flask import Blueprint, request, jsonify, g

from ..services import auth_service
from ..decorators import require_auth, require_admin

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    return jsonify([u.to_dict() for u in auth_service.list_users()])


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_admin
def update_user(user_id: int):
    """
    Grant or revoke the admin flag.

    Body: {"is_admin": bool}. Admins cannot demote themselves.
    """
    data = request.get_json(silent=True) or {}
    is_admin = data.get("is_admin")
    if not isinstance(is_admin, bool):
        return jsonify({"error": "is_admin must be a boolean", "field": "is_admin"}), 400

    if user_id == g.current_user.id and not is_admin:
        return jsonify({"error": "Cannot remove your own admin access"}), 400

    try:
        user = auth_service.set_admin(user_id, is_admin)
    except ValueError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify(user.to_dict())
