# Overview: Service-layer operations for staff notifications.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError
from ..extensions import db
from ..models import Notification
from ..time_utils import utcnow
from .concurrency import run_with_retry


KIND_LOW_STOCK = "LOW_STOCK"
KIND_OUT_OF_STOCK = "OUT_OF_STOCK"
KIND_URGENT_ORDER = "URGENT_ORDER"
KIND_ORDER_READY = "ORDER_READY"
KIND_SERVICE_REQUEST = "SERVICE_REQUEST"

_SEVERITY_BY_KIND = {
    KIND_LOW_STOCK: "warning",
    KIND_OUT_OF_STOCK: "critical",
    KIND_URGENT_ORDER: "critical",
    KIND_ORDER_READY: "info",
    KIND_SERVICE_REQUEST: "warning",
}


def notify(
    kind: str,
    message: str,
    target_branch: int,
    *,
    title: str | None = None,
    reference: str | None = None,
) -> Notification | None:
    """
    Fire-and-forget notification to a branch.

    Written in a SAVEPOINT inside the caller's transaction, so it commits with
    the triggering change. A failure to write the notification is logged and
    swallowed: it must never block or roll back the state transition.
    """
    try:
        with db.session.begin_nested():
            note = Notification(
                branch_id=target_branch,
                kind=kind,
                severity=_SEVERITY_BY_KIND.get(kind, "info"),
                title=title or kind.replace("_", " ").title(),
                message=message,
                reference=reference,
            )
            db.session.add(note)
        current_app.logger.info("Notification %s for branch %s: %s", kind, target_branch, message)
        return note
    except SQLAlchemyError:
        current_app.logger.exception("Failed to deliver %s notification for branch %s", kind, target_branch)
        return None


def list_notifications(branch_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter(Notification.branch_id == branch_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int) -> Notification:
    def _op():
        note = db.session.get(Notification, notification_id)
        if note is None:
            raise NotFoundError("Notification not found")
        if not note.is_read:
            note.is_read = True
            note.read_at = utcnow()
        db.session.commit()
        return note

    return run_with_retry(_op)
