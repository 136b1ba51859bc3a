from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

class Order(db.Model):
    """
    Restaurant order document.

    WHY: An order is a document with a lifecycle, not a cart. Status moves one
    step at a time through the order transition table; the totals are frozen
    at creation from snapshotted line prices.

    Priority is NOT a column: it is derived on every read from status,
    order_type and age (see kitchen_board_service.compute_priority).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "order_number", name="uq_orders_branch_number"),
        db.Index("ix_orders_order_number", "order_number"),
        # Board queries: active orders for a branch, oldest first
        db.Index("ix_orders_branch_status_created", "branch_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "ORD-001-00042")
    order_number = db.Column(db.String(64), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    order_type = db.Column(db.String(16), nullable=False, index=True)  # dine_in, room_service, takeaway, delivery
    table_number = db.Column(db.Integer, nullable=True)
    room_number = db.Column(db.String(16), nullable=True)

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    payment_method = db.Column(db.String(32), nullable=False)
    grand_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("staff_users.id"), nullable=True)

    # Timestamps (created_at is set once and drives age-based priority)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    preparing_at = db.Column(db.DateTime(timezone=True), nullable=True)
    ready_at = db.Column(db.DateTime(timezone=True), nullable=True)
    served_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    # Set once when the urgent-order alert has fired
    urgent_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "order_type": self.order_type,
            "table_number": self.table_number,
            "room_number": self.room_number,
            "status": self.status,
            "payment_method": self.payment_method,
            "grand_total_cents": self.grand_total_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "preparing_at": to_utc_z(self.preparing_at),
            "ready_at": to_utc_z(self.ready_at),
            "served_at": to_utc_z(self.served_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["all_lines_ready"] = bool(self.lines) and all(
                line.item_status == "ready" for line in self.lines
            )
        return data

class OrderLine(db.Model):
    """
    Individual line items on an order.

    name and unit_price_cents are snapshots of the menu item at order time.
    item_status is an informational kitchen checklist; the order-level status
    is authoritative.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    item_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, preparing, ready
    notes = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "position": self.position,
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "item_status": self.item_status,
            "notes": self.notes,
        }
