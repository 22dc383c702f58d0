# Overview: Inventory ledger; append-only record of every stock delta.

# backend/bookstore/services/inventory_service.py
"""
Bookstore Inventory Ledger Invariants (authoritative)

- Book.stock is the live on-hand count; inventory_history explains it.
- Every committed change to Book.stock has exactly one ledger row with the
  signed delta, written in the same DB transaction as the stock change.
- The ledger is append-only (no updates/deletes).
- record_change() does not validate the resulting stock; the caller owns
  consistency (and the stock >= 0 check constraint backs it up).
- History reads are newest-first (created_at desc, id desc).
"""
from __future__ import annotations

from ..extensions import db
from ..models import InventoryHistory

REASON_INITIAL_STOCK = "initial stock"
REASON_MANUAL_ADJUSTMENT = "manual adjustment"


def order_reason(order_id: int) -> str:
    return f"order #{order_id}"


def order_cancelled_reason(order_id: int) -> str:
    return f"order #{order_id} cancelled"


def record_change(*, book_id: int, change_amount: int, reason: str) -> InventoryHistory:
    """
    Append a ledger row.

    Flushes but never commits: the row belongs to the caller's transaction.
    """
    entry = InventoryHistory(
        book_id=book_id,
        change_amount=change_amount,
        reason=reason,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def history_for(book_id: int) -> list[InventoryHistory]:
    """Ledger rows for a book, newest first. Empty list if none exist."""
    return (
        db.session.query(InventoryHistory)
        .filter(InventoryHistory.book_id == book_id)
        .order_by(InventoryHistory.created_at.desc(), InventoryHistory.id.desc())
        .all()
    )


def net_change(book_id: int) -> int:
    """Sum of all ledger deltas for a book."""
    total = (
        db.session.query(db.func.coalesce(db.func.sum(InventoryHistory.change_amount), 0))
        .filter(InventoryHistory.book_id == book_id)
        .scalar()
    )
    return int(total or 0)
