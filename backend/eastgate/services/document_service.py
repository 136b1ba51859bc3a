# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


ORDER_DOCUMENT = "ORDER"
SERVICE_REQUEST_DOCUMENT = "SERVICE_REQUEST"


def next_document_number(
    *,
    branch_id: int,
    document_type: str,
    prefix: str,
    pad: int = 5,
) -> str:
    """
    Allocate the next document number for a branch/type inside the caller's
    transaction.

    Uses an UPDATE ... SET next_number = next_number + 1 so concurrent writers
    serialise on the (branch_id, document_type) row. Must be called from
    within a run_with_retry unit of work; the number is only consumed if that
    unit of work commits.
    """
    if not branch_id:
        raise ValidationError("branch_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(branch_id=branch_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the sequence row first
            db.session.execute(stmt)
            db.session.flush()
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(branch_id=branch_id, document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{branch_id:03d}-{next_num:0{pad}d}"
