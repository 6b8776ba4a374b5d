# Overview: Atomic document number allocation for orders, payments and invoices.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


ORDER_DOCUMENT = ("ORDER", "ORD")
PAYMENT_DOCUMENT = ("PAYMENT", "PAY")
INVOICE_DOCUMENT = ("INVOICE", "INV")


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _bump(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next document number for a document type.

    Runs inside the caller's transaction: the increment is an UPDATE on the
    sequence row, so concurrent callers serialize on that row. The first
    allocation inserts the row inside a SAVEPOINT so a lost insert race does
    not discard the caller's pending work.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _bump(document_type)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=2))
            next_num = 1
        except IntegrityError:
            next_num = _bump(document_type)
            if next_num is None:
                raise DocumentSequenceError(f"Could not allocate a {document_type} number")

    return f"{prefix}-{next_num:0{pad}d}"
