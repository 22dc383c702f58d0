# Overview: Order lifecycle; creates orders, moves stock and keeps the ledger in step.

# backend/bookstore/services/order_service.py
"""
Order Lifecycle Invariants (authoritative)

Creation:
- The whole order is validated (books exist, are active, and have enough
  stock for the summed quantity per book) before any row is written.
- Stock decrements, ledger rows ("order #<id>", -quantity) and the order
  itself commit in ONE transaction. Any failure rolls all of it back, so a
  rejected order never leaves a partial stock change behind.
- total_amount_cents = sum(quantity * price_cents) at creation time.

Status changes:
- Moving to "cancelled" restores every line's stock and appends a
  "+quantity" / "order #<id> cancelled" ledger row, exactly once.
- A cancelled order is terminal: re-cancelling is a no-op and any other
  target status is rejected, so stock can never be restored twice.
- Other transitions within the configured workflow are not policed.

Concurrency:
- Books and the order are read with SELECT ... FOR UPDATE where the engine
  supports it; version_id counters catch lost updates elsewhere. Conflicts
  roll back and retry (see concurrency.run_with_retry).
"""
from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Book, Order, OrderItem
from ..validation import (
    BusinessRuleError,
    CreateOrderCommand,
    NotFoundError,
    StatusUpdateCommand,
    ValidationError,
)
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_CANCELLED = "cancelled"

ORDER_WORKFLOWS: dict[str, tuple[str, ...]] = {
    "fulfillment": ("pending", "processing", "shipped", "delivered", "cancelled"),
    "simple": ("pending", "completed", "cancelled"),
}


class InsufficientStockError(BusinessRuleError):
    """Raised when a book cannot cover the requested quantity."""


def allowed_statuses() -> tuple[str, ...]:
    workflow = current_app.config.get("ORDER_WORKFLOW", "fulfillment")
    try:
        return ORDER_WORKFLOWS[workflow]
    except KeyError:
        raise RuntimeError(f"Unknown ORDER_WORKFLOW: {workflow!r}")


def _requested_quantities(command: CreateOrderCommand) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in command.items:
        totals[line.book_id] = totals.get(line.book_id, 0) + line.quantity
    return totals


def _load_books_locked(book_ids) -> dict[int, Book]:
    # Sorted so concurrent orders lock rows in the same sequence
    books: dict[int, Book] = {}
    for book_id in sorted(book_ids):
        book = lock_for_update(db.session.query(Book).filter_by(id=book_id)).first()
        if book is None or not book.is_active:
            raise NotFoundError(f"Book {book_id} not found")
        books[book_id] = book
    return books


def _check_stock(books: dict[int, Book], requested: dict[int, int]) -> None:
    insufficient = []
    for book_id, qty in requested.items():
        book = books[book_id]
        if book.stock < qty:
            insufficient.append({
                "book_id": book_id,
                "title": book.title,
                "requested_quantity": qty,
                "stock": book.stock,
            })

    if insufficient:
        first = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for book {first['title']}",
            details={"items": insufficient},
        )


def create_order(command: CreateOrderCommand) -> Order:
    """
    Place an order: check every line, then decrement stock, write ledger rows
    and persist the order in a single transaction.

    Raises:
        ValidationError: no items (commands from parse_create_order never hit this)
        NotFoundError: a book id does not resolve to an active book
        InsufficientStockError: a book's stock is below the requested quantity
    """
    if not command.items:
        raise ValidationError("Order must contain at least one item", "items")

    requested = _requested_quantities(command)

    def _op():
        try:
            books = _load_books_locked(requested.keys())
            _check_stock(books, requested)

            order = Order(
                user_id=command.user_id,
                customer_name=command.customer_name,
                address=command.address,
                payment_method=command.payment_method,
                payment_status="pending",
                status=STATUS_PENDING,
                total_amount_cents=0,
            )
            db.session.add(order)
            db.session.flush()  # assigns order.id for the ledger reason

            total = 0
            for line in command.items:
                book = books[line.book_id]
                item = OrderItem(
                    book_id=book.id,
                    quantity=line.quantity,
                    unit_price_cents=book.price_cents,
                )
                order.items.append(item)
                total += item.line_total_cents

                book.stock -= line.quantity
                inventory_service.record_change(
                    book_id=book.id,
                    change_amount=-line.quantity,
                    reason=inventory_service.order_reason(order.id),
                )

            order.total_amount_cents = total
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "Created order id=%s lines=%s total_cents=%s", order.id, len(command.items), order.total_amount_cents
        )
        return order

    return run_with_retry(_op)


def _restore_stock(order: Order) -> None:
    for item in order.items:
        book = lock_for_update(db.session.query(Book).filter_by(id=item.book_id)).first()
        if book is None:
            logger.warning("Order %s references missing book %s; stock not restored", order.id, item.book_id)
            continue

        book.stock += item.quantity
        inventory_service.record_change(
            book_id=book.id,
            change_amount=item.quantity,
            reason=inventory_service.order_cancelled_reason(order.id),
        )


def update_order_status(order_id: int, command: StatusUpdateCommand) -> Order:
    """
    Move an order to a new status (and optionally a new payment status).

    Raises:
        NotFoundError: unknown order id
        ValidationError: status outside the configured workflow
        BusinessRuleError: attempt to move a cancelled order elsewhere
    """
    statuses = allowed_statuses()

    def _op():
        try:
            order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
            if order is None:
                raise NotFoundError("Order not found")

            if command.status not in statuses:
                raise ValidationError(f"status must be one of: {', '.join(statuses)}", "status")

            if order.status == STATUS_CANCELLED and command.status != STATUS_CANCELLED:
                raise BusinessRuleError(
                    "Cancelled orders cannot be reopened",
                    details={"order_id": order.id, "status": order.status},
                )

            previous = order.status
            if command.status == STATUS_CANCELLED and previous != STATUS_CANCELLED:
                _restore_stock(order)

            order.status = command.status
            if command.payment_status is not None:
                order.payment_status = command.payment_status

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if previous != order.status:
            logger.info("Order id=%s status %s -> %s", order.id, previous, order.status)
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def list_orders(status: str | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status is not None:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_orders_for_user(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
