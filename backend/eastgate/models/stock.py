from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


def _qty(value):
    return str(value) if value is not None else None


class StockItem(db.Model):
    """
    Stock item master data with cached quantity on hand.

    LEDGER DESIGN:
    - quantity is a cache of the StockTransaction history, never a free field.
    - Only stock_service mutators (add/use/waste/adjust/reverse) write it, each
      appending exactly one StockTransaction in the same DB transaction.
    - Replaying quantity_delta in (created_at, id) order reproduces quantity.
    - Items are never deleted, only driven to zero.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        # SKUs are unique within a branch
        db.UniqueConstraint("branch_id", "sku", name="uq_stock_items_branch_sku"),
        db.Index("ix_stock_items_branch_name", "branch_id", "name"),
        db.Index("ix_stock_items_branch_category", "branch_id", "category"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    unit = db.Column(db.String(16), nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Numeric(14, 3), nullable=False, default=10)

    # IN_STOCK, LOW_STOCK, OUT_OF_STOCK (derived from quantity vs reorder_level)
    status = db.Column(db.String(16), nullable=False, default="IN_STOCK", index=True)

    expiry_date = db.Column(db.Date, nullable=True, index=True)
    location = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    branch = db.relationship("Branch", backref=db.backref("stock_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<StockItem id={self.id} sku={self.sku!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "quantity": _qty(self.quantity),
            "unit_cost_cents": self.unit_cost_cents,
            "reorder_level": _qty(self.reorder_level),
            "status": self.status,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "location": self.location,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockTransaction(db.Model):
    """
    Append-only ledger of stock movements.

    TRANSACTION TYPES:
    - IN: Stock received (or compensating reversal of an OUT)
    - OUT: Stock consumed (kitchen usage, order fulfillment)
    - WASTAGE: Spoiled/damaged stock written off (floored at zero)
    - ADJUSTMENT: Manual correction to a counted quantity

    IMMUTABLE: Records are never updated or deleted.

    idempotency_key makes order consumption and reversals at-most-once per
    stock item (e.g. "order:ORD-001-00042", "reversal:17").
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.UniqueConstraint("stock_item_id", "idempotency_key", name="uq_stock_tx_item_idempotency"),
        db.Index("ix_stock_tx_item_created", "stock_item_id", "created_at"),
        db.Index("ix_stock_tx_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    quantity_delta = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_before = db.Column(db.Numeric(14, 3), nullable=False)
    quantity_after = db.Column(db.Numeric(14, 3), nullable=False)

    # Cost snapshot at the time of the movement
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference = db.Column(db.String(64), nullable=True, index=True)
    idempotency_key = db.Column(db.String(96), nullable=True)
    reverses_transaction_id = db.Column(db.Integer, db.ForeignKey("stock_transactions.id"), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("staff_users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    stock_item = db.relationship("StockItem", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "branch_id": self.branch_id,
            "type": self.type,
            "quantity_delta": _qty(self.quantity_delta),
            "quantity_before": _qty(self.quantity_before),
            "quantity_after": _qty(self.quantity_after),
            "unit_cost_cents": self.unit_cost_cents,
            "reference": self.reference,
            "reverses_transaction_id": self.reverses_transaction_id,
            "reason": self.reason,
            "performed_by_user_id": self.performed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
