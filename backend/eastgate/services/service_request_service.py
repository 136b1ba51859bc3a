# Overview: Service-layer operations for guest service requests; encapsulates business logic and database work.

"""
Service Request Tracker

STATE MACHINE:
    pending -> in_progress -> completed
    pending | in_progress -> cancelled

Same rules as the order engine: idempotent same-status requests, no skipping,
terminal immutability, STALE on an expected_status mismatch. Priority is chosen
at creation and never recomputed.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ServiceRequest, StaffUser
from ..time_utils import utcnow
from ..validation import optional_text, require_choice, require_text
from .activity_service import append_activity
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import SERVICE_REQUEST_DOCUMENT, next_document_number
from .notification_service import KIND_SERVICE_REQUEST, notify


REQUEST_TYPES = ("room_service", "maintenance", "housekeeping", "concierge", "laundry", "wake_up")
REQUEST_PRIORITIES = ("low", "normal", "high", "urgent")
REQUEST_STATUSES = ("pending", "in_progress", "completed", "cancelled")
OPEN_REQUEST_STATUSES = ("pending", "in_progress")
TERMINAL_REQUEST_STATUSES = frozenset({"completed", "cancelled"})

REQUEST_TRANSITIONS = {
    "pending": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

PRIORITY_ALIASES = {"medium": "normal"}
_PRIORITY_RANK = {"urgent": 0, "high": 1, "normal": 2, "low": 3}

_STATUS_TIMESTAMP = {
    "in_progress": "started_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
}


def normalize_priority(value: str | None) -> str:
    value = optional_text(value, "priority")
    if value is None:
        return "normal"
    p = value.lower()
    p = PRIORITY_ALIASES.get(p, p)
    return require_choice(p, "priority", REQUEST_PRIORITIES)


def check_request_transition(current: str, requested: str, expected_status: str | None = None) -> bool:
    if requested not in REQUEST_STATUSES:
        raise ValidationError(
            f"Invalid status '{requested}'. Must be one of: {', '.join(REQUEST_STATUSES)}",
            details={"status": requested},
        )
    if requested == current:
        return False
    if expected_status is not None and expected_status != current:
        raise InvalidTransitionError(
            "Someone else already updated this request",
            reason=InvalidTransitionError.STALE,
            details={"expected_status": expected_status, "current_status": current},
        )
    if current in TERMINAL_REQUEST_STATUSES:
        raise InvalidTransitionError(
            f"Request is already {current}",
            reason=InvalidTransitionError.TERMINAL,
            details={"current_status": current, "requested_status": requested},
        )
    if requested not in REQUEST_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move request from {current} to {requested}",
            reason=InvalidTransitionError.CANNOT_SKIP,
            details={"current_status": current, "requested_status": requested},
        )
    return True


def get_service_request(request_id: int, *, lock: bool = False) -> ServiceRequest:
    q = db.session.query(ServiceRequest).filter(ServiceRequest.id == request_id)
    if lock:
        q = lock_for_update(q)
    req = q.first()
    if req is None:
        raise NotFoundError("Service request not found", details={"request_id": request_id})
    return req


def create_service_request(
    *,
    branch_id: int,
    guest_name: str,
    room_number: str,
    request_type: str,
    description: str | None = None,
    priority: str | None = None,
    created_by_user_id: int | None = None,
) -> ServiceRequest:
    guest = require_text(guest_name, "guest_name", max_length=255)
    room = require_text(room_number, "room_number", max_length=16, allow_numbers=True)
    description = optional_text(description, "description")
    rtype = require_choice(request_type, "type", REQUEST_TYPES)
    prio = normalize_priority(priority)

    def _op():
        begin_write()
        req = ServiceRequest(
            branch_id=branch_id,
            request_number=next_document_number(
                branch_id=branch_id, document_type=SERVICE_REQUEST_DOCUMENT, prefix="SR"
            ),
            guest_name=guest,
            room_number=room,
            type=rtype,
            description=description,
            priority=prio,
            status="pending",
            created_by_user_id=created_by_user_id,
            created_at=utcnow(),
        )
        db.session.add(req)
        db.session.flush()

        if prio == "urgent":
            notify(
                KIND_SERVICE_REQUEST,
                f"Urgent {rtype.replace('_', ' ')} request from room {room} ({guest})",
                branch_id,
                title="Urgent service request",
                reference=req.request_number,
            )

        append_activity(
            branch_id=branch_id,
            event_type="service_request.created",
            entity_type="service_request",
            entity_id=req.id,
            actor_user_id=created_by_user_id,
            note=req.request_number,
            payload={"type": rtype, "priority": prio},
        )
        db.session.commit()
        current_app.logger.info("Service request %s created (%s, %s)", req.request_number, rtype, prio)
        return req

    return run_with_retry(_op)


def advance_service_request_status(
    request_id: int,
    requested_status: str,
    *,
    actor_user_id: int | None = None,
    expected_status: str | None = None,
) -> tuple[ServiceRequest, bool]:
    """Returns (request, changed); changed is False for an idempotent no-op."""
    requested = require_text(requested_status, "status").lower()
    expected = optional_text(expected_status, "expected_status")
    expected = expected.lower() if expected else None

    def _op():
        begin_write()
        req = get_service_request(request_id, lock=True)
        previous = req.status

        if not check_request_transition(previous, requested, expected):
            db.session.rollback()
            return req, False

        now = utcnow()
        req.status = requested
        ts_field = _STATUS_TIMESTAMP.get(requested)
        if ts_field and getattr(req, ts_field) is None:
            setattr(req, ts_field, now)
        if requested == "in_progress" and req.assigned_to_user_id is None and actor_user_id is not None:
            req.assigned_to_user_id = actor_user_id

        append_activity(
            branch_id=req.branch_id,
            event_type="service_request.status_changed",
            entity_type="service_request",
            entity_id=req.id,
            actor_user_id=actor_user_id,
            occurred_at=now,
            payload={"from": previous, "to": requested},
        )
        db.session.commit()
        current_app.logger.info("Service request %s moved %s -> %s", req.request_number, previous, requested)
        return req, True

    return run_with_retry(_op)


def assign_service_request(request_id: int, user_id: int, *, actor_user_id: int | None = None) -> ServiceRequest:
    def _op():
        req = get_service_request(request_id, lock=True)
        if req.status in TERMINAL_REQUEST_STATUSES:
            raise InvalidTransitionError(
                f"Request is already {req.status}",
                reason=InvalidTransitionError.TERMINAL,
            )
        staff = db.session.get(StaffUser, user_id)
        if staff is None or not staff.is_active:
            raise NotFoundError("Staff member not found", details={"user_id": user_id})
        if staff.branch_id is not None and staff.branch_id != req.branch_id:
            raise ValidationError("Staff member belongs to a different branch")

        req.assigned_to_user_id = staff.id
        append_activity(
            branch_id=req.branch_id,
            event_type="service_request.assigned",
            entity_type="service_request",
            entity_id=req.id,
            actor_user_id=actor_user_id,
            payload={"assigned_to_user_id": staff.id},
        )
        db.session.commit()
        return req

    return run_with_retry(_op)


def list_service_requests(
    branch_id: int | None,
    *,
    status: str | None = None,
    assigned_to_user_id: int | None = None,
    open_only: bool = False,
) -> list[ServiceRequest]:
    """Sorted by priority (urgent first), then oldest first."""
    q = db.session.query(ServiceRequest)
    if branch_id is not None:
        q = q.filter(ServiceRequest.branch_id == branch_id)
    if status:
        q = q.filter(ServiceRequest.status == require_choice(status, "status", REQUEST_STATUSES))
    elif open_only:
        q = q.filter(ServiceRequest.status.in_(OPEN_REQUEST_STATUSES))
    if assigned_to_user_id is not None:
        q = q.filter(ServiceRequest.assigned_to_user_id == assigned_to_user_id)

    return sorted(q.all(), key=lambda r: (_PRIORITY_RANK.get(r.priority, 4), r.created_at, r.id))
