# Overview: Flask API routes for books and their inventory history; parses input and returns JSON responses.

# backend/bookstore/routes/books.py
"""
Book catalog routes.

SECURITY:
- Listing and single-book reads are public
- Low-stock, inventory history and every write require an admin
"""
from flask import Blueprint, request, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Book
from ..services import catalog_service, inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_book,
    ValidationError,
    NotFoundError,
)
from ..decorators import require_auth, require_admin

BOOK_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "title",
        "author",
        "description",
        "price_cents",
        "stock",
        "low_stock_threshold",
        "category_id",
        "cover_url",
    }),
    required_on_create=frozenset({"title", "author", "price_cents", "stock"}),
)

books_bp = Blueprint("books", __name__, url_prefix="/api/books")


@books_bp.get("")
def list_books():
    """
    List active books ordered by title.

    Query params:
    - category_id: int (optional) - only books in this category
    """
    category_id = request.args.get("category_id", type=int)
    books = catalog_service.list_books(category_id=category_id)
    return [b.to_dict() for b in books]


@books_bp.get("/low-stock")
@require_auth
@require_admin
def low_stock_books():
    """Active books with stock <= their low_stock_threshold."""
    return [b.to_dict() for b in catalog_service.low_stock_books()]


@books_bp.get("/<int:book_id>")
def get_book(book_id: int):
    try:
        book = catalog_service.get_book(book_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return book.to_dict()


@books_bp.get("/<int:book_id>/inventory-history")
@require_auth
@require_admin
def inventory_history(book_id: int):
    """
    Ledger entries for a book, newest first.

    Deactivated books keep their history, so they are still resolvable here.
    """
    try:
        catalog_service.get_book(book_id, include_inactive=True)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return [entry.to_dict() for entry in inventory_service.history_for(book_id)]


@books_bp.post("")
@require_auth
@require_admin
def create_book_route():
    """Create a book; its opening stock is written to the ledger."""
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Book, payload=payload, policy=BOOK_POLICY, partial=False)
        enforce_rules_book(patch)
        book = catalog_service.create_book(patch=patch)
    except ValidationError as e:
        return e.to_dict(), 400
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create book")
        return {"error": "Internal server error"}, 500

    return book.to_dict(), 201


@books_bp.patch("/<int:book_id>")
@require_auth
@require_admin
def update_book_route(book_id: int):
    """Partially update a book; a stock change is logged as a manual adjustment."""
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(model=Book, payload=payload, policy=BOOK_POLICY, partial=True)
        enforce_rules_book(patch)
        book = catalog_service.update_book(book_id=book_id, patch=patch)
    except ValidationError as e:
        return e.to_dict(), 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update book")
        return {"error": "Internal server error"}, 500

    return book.to_dict(), 200


@books_bp.delete("/<int:book_id>")
@require_auth
@require_admin
def delete_book_route(book_id: int):
    try:
        catalog_service.delete_book(book_id=book_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to delete book")
        return {"error": "Internal server error"}, 500

    return "", 204
