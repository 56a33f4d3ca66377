# Overview: Human-readable document numbers for purchase and sales orders.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


def next_document_number(*, document_type: str, prefix: str, pad: int = 4, session=None) -> str:
    """
    Allocate the next document number for a document type, e.g. "PO-0007".

    Runs inside the caller's transaction: the increment is a single
    UPDATE ... SET next_number = next_number + 1, and a first-use race on
    the sequence row is resolved inside a SAVEPOINT so the caller's pending
    work is never rolled back.
    """
    if not document_type:
        raise ValidationError("document_type is required")
    session = session if session is not None else db.session

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _read_allocated() -> int:
        current = (
            session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    result = session.execute(stmt)
    if result.rowcount:
        next_num = _read_allocated()
    else:
        try:
            with session.begin_nested():
                session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            result = session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _read_allocated()

    return f"{prefix}-{next_num:0{pad}d}"
