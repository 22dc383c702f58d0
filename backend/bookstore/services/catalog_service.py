# Overview: Service-layer operations for books and categories; encapsulates business logic and database work.

# backend/bookstore/services/catalog_service.py
"""
Catalog Service

Books and categories are plain CRUD records, with two exceptions:
- Any change to Book.stock made here is mirrored in the inventory ledger
  ("initial stock" on create, "manual adjustment" on update).
- Books are soft-deleted; categories are hard-deleted after their books are
  detached (category_id set to NULL).
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Book, Category
from ..validation import NotFoundError, ValidationError
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

BOOK_MUTABLE_FIELDS = {
    "title",
    "author",
    "description",
    "price_cents",
    "stock",
    "low_stock_threshold",
    "category_id",
    "cover_url",
}
CATEGORY_MUTABLE_FIELDS = {"name", "description"}


def _require_category(category_id: int | None) -> None:
    if category_id is None:
        return
    if db.session.get(Category, category_id) is None:
        raise ValidationError("category not found", "category_id")


def _active_books():
    return db.session.query(Book).filter(Book.is_active.is_(True))


# =============================================================================
# BOOKS
# =============================================================================


def list_books(category_id: int | None = None) -> list[Book]:
    query = _active_books()
    if category_id is not None:
        query = query.filter(Book.category_id == category_id)
    return query.order_by(Book.title.asc(), Book.id.asc()).all()


def get_book(book_id: int, *, include_inactive: bool = False) -> Book:
    book = db.session.get(Book, book_id)
    if book is None or (not book.is_active and not include_inactive):
        raise NotFoundError("Book not found")
    return book


def low_stock_books() -> list[Book]:
    """Active books whose stock is at or below their own threshold."""
    return (
        _active_books()
        .filter(Book.stock <= Book.low_stock_threshold)
        .order_by(Book.stock.asc(), Book.title.asc())
        .all()
    )


def create_book(*, patch: dict) -> Book:
    """
    Create a book from a validated patch and record its opening stock.

    The ledger row is written even when stock is 0 so every book's history
    starts with an "initial stock" entry.
    """
    _require_category(patch.get("category_id"))

    book = Book(**{k: v for k, v in patch.items() if k in BOOK_MUTABLE_FIELDS})
    if book.stock is None:
        book.stock = 0
    db.session.add(book)
    db.session.flush()

    inventory_service.record_change(
        book_id=book.id,
        change_amount=book.stock,
        reason=inventory_service.REASON_INITIAL_STOCK,
    )
    db.session.commit()

    logger.info("Created book id=%s title=%r stock=%s", book.id, book.title, book.stock)
    return book


def update_book(*, book_id: int, patch: dict) -> Book:
    """
    Apply a partial update.

    If the patch carries a stock value that differs from the current one,
    the difference is appended to the ledger as a manual adjustment in the
    same transaction.
    """
    def _op():
        book = lock_for_update(db.session.query(Book).filter_by(id=book_id)).first()
        if book is None or not book.is_active:
            raise NotFoundError("Book not found")

        if "category_id" in patch:
            _require_category(patch["category_id"])

        new_stock = patch.get("stock")
        if new_stock is not None and new_stock != book.stock:
            delta = new_stock - book.stock
            inventory_service.record_change(
                book_id=book.id,
                change_amount=delta,
                reason=inventory_service.REASON_MANUAL_ADJUSTMENT,
            )
            logger.info("Manual stock adjustment book id=%s: %s -> %s", book.id, book.stock, new_stock)

        for k, v in patch.items():
            if k in BOOK_MUTABLE_FIELDS:
                setattr(book, k, v)

        db.session.commit()
        return book

    return run_with_retry(_op)


def delete_book(*, book_id: int) -> None:
    """
    Soft-delete a book.

    Soft-delete only: order items and ledger rows keep their reference.
    """
    book = db.session.get(Book, book_id)
    if book is None or not book.is_active:
        raise NotFoundError("Book not found")

    book.is_active = False
    db.session.commit()
    logger.info("Deactivated book id=%s", book_id)


# =============================================================================
# CATEGORIES
# =============================================================================


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def create_category(*, patch: dict) -> Category:
    category = Category(**{k: v for k, v in patch.items() if k in CATEGORY_MUTABLE_FIELDS})
    db.session.add(category)
    db.session.commit()
    return category


def update_category(*, category_id: int, patch: dict) -> Category:
    category = get_category(category_id)
    for k, v in patch.items():
        if k in CATEGORY_MUTABLE_FIELDS:
            setattr(category, k, v)
    db.session.commit()
    return category


def delete_category(*, category_id: int) -> int:
    """
    Delete a category, detaching its books first.

    Returns the number of books whose category_id was cleared. Both steps
    commit together.
    """
    category = get_category(category_id)

    detached = 0
    for book in db.session.query(Book).filter(Book.category_id == category_id).all():
        book.category_id = None
        detached += 1

    db.session.delete(category)
    db.session.commit()

    logger.info("Deleted category id=%s (detached %s books)", category_id, detached)
    return detached
