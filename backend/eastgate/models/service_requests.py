from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ServiceRequest(db.Model):
    """
    Non-food guest request (housekeeping, maintenance, concierge, ...).

    Unlike orders, priority is chosen once at creation by the guest or
    receptionist and is never recomputed.
    """
    __tablename__ = "service_requests"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "request_number", name="uq_service_requests_branch_number"),
        db.Index("ix_service_requests_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    request_number = db.Column(db.String(64), nullable=False)

    guest_name = db.Column(db.String(255), nullable=False)
    room_number = db.Column(db.String(16), nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    priority = db.Column(db.String(16), nullable=False, default="normal")  # low, normal, high, urgent
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("staff_users.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("staff_users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    assigned_to = db.relationship("StaffUser", foreign_keys=[assigned_to_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "request_number": self.request_number,
            "guest_name": self.guest_name,
            "room_number": self.room_number,
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "assigned_to_user_id": self.assigned_to_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
        }
