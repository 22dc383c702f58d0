# Overview: Flask API routes for categories; parses input and returns JSON responses.

from flask import Blueprint, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Category
from ..services import catalog_service
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, NotFoundError
from ..decorators import require_auth, require_admin

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description"}),
    required_on_create=frozenset({"name"}),
)

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.get("")
def list_categories():
    return [c.to_dict() for c in catalog_service.list_categories()]


@categories_bp.post("")
@require_auth
@require_admin
def create_category_route():
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
        category = catalog_service.create_category(patch=patch)
    except ValidationError as e:
        return e.to_dict(), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create category")
        return {"error": "Internal server error"}, 500

    return category.to_dict(), 201


@categories_bp.patch("/<int:category_id>")
@require_auth
@require_admin
def update_category_route(category_id: int):
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
        category = catalog_service.update_category(category_id=category_id, patch=patch)
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update category")
        return {"error": "Internal server error"}, 500

    return category.to_dict(), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_admin
def delete_category_route(category_id: int):
    """Delete a category. Books in it are kept and become uncategorised."""
    try:
        catalog_service.delete_category(category_id=category_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete category")
        return {"error": "Internal server error"}, 500

    return "", 204
