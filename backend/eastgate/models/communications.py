from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Notification(db.Model):
    """
    Branch-targeted staff notification (low stock, urgent orders, ...).

    Written by notification_service.notify; delivery failures never block
    the state transition that triggered them.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # LOW_STOCK, OUT_OF_STOCK, URGENT_ORDER, ORDER_READY, SERVICE_REQUEST
    kind = db.Column(db.String(32), nullable=False, index=True)
    severity = db.Column(db.String(16), nullable=False, default="info")  # info, warning, critical
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    reference = db.Column(db.String(64), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "kind": self.kind,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "reference": self.reference,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }


class ActivityEvent(db.Model):
    """
    Append-only activity log for cross-cutting domain events.

    Events are written inside the same DB transaction as the change they
    record, so a rolled-back transition leaves no trace here either.
    """
    __tablename__ = "activity_events"
    __table_args__ = (
        db.Index("ix_activity_branch_occurred", "branch_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., order.created, stock.used
    entity_type = db.Column(db.String(64), nullable=False, index=True)  # order, stock_item, service_request
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("staff_users.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "note": self.note,
            "payload": self.payload,
        }
