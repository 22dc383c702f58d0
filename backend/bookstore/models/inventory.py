from __future__ import annotations

from ..extensions import db
from bookstore.time_utils import to_utc_z


class InventoryHistory(db.Model):
    """
    Append-only stock ledger.

    change_amount is signed: positive for additions (initial stock,
    restock, cancelled orders), negative for removals (orders, manual
    corrections). Rows are never updated or deleted.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.Index("ix_invhist_book_created", "book_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    book_id = db.Column(db.Integer, db.ForeignKey("books.id"), nullable=False, index=True)

    change_amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    book = db.relationship("Book", backref=db.backref("inventory_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "change_amount": self.change_amount,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
