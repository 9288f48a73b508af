# Overview: Human-readable document numbers for orders and refunds.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence

ORDER_DOCUMENT = "ORDER"
REFUND_DOCUMENT = "REFUND"

_PREFIXES = {
    ORDER_DOCUMENT: "ORD",
    REFUND_DOCUMENT: "RFD",
}


def next_document_number(document_type: str, *, pad: int = 6) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    The counter is bumped with a single UPDATE so concurrent callers serialize
    on the sequence row; the first caller for a type inserts the row.
    Does not commit.
    """
    prefix = _PREFIXES.get(document_type)
    if prefix is None:
        raise ValueError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        # First number for this type. A concurrent first insert fails on the
        # primary key and the caller's unit of work is retried.
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{str(number).zfill(pad)}"
