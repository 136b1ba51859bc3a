# Overview: Service-layer operations for the activity log.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import ActivityEvent
"""
Activity Log Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the activity log itself.
- Events are written inside the same DB transaction as the domain event they record.
"""


def append_activity(
    *,
    branch_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> ActivityEvent:
    """
    Append-only activity event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Flushes without committing; the caller owns the transaction.
    """
    ev = ActivityEvent(
        branch_id=branch_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, python default applies
        note=note,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_activity(
    *,
    branch_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    limit: int = 100,
) -> list[ActivityEvent]:
    q = db.session.query(ActivityEvent).filter(ActivityEvent.branch_id == branch_id)
    if entity_type:
        q = q.filter(ActivityEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(ActivityEvent.entity_id == entity_id)
    return q.order_by(ActivityEvent.occurred_at.desc(), ActivityEvent.id.desc()).limit(limit).all()
