# Overview: Per-user invoice number allocation.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InvoiceSequence


INVOICE_PREFIX = "INV"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def format_invoice_number(number: int, *, prefix: str = INVOICE_PREFIX, pad: int = 4) -> str:
    return f"{prefix}-{number:0{pad}d}"


def _read_allocated(user_id: int) -> int:
    current = (
        db.session.query(InvoiceSequence.next_number)
        .filter_by(user_id=user_id)
        .scalar()
    )
    return current - 1


def next_invoice_number(*, user_id: int) -> str:
    """
    Atomically allocate the next invoice number for a user.

    Runs inside the caller's transaction: the UPDATE takes a row lock on the
    user's sequence row until the caller commits or rolls back. The first
    allocation inserts the row inside a savepoint, so losing the insert race
    does not discard the caller's pending work.
    """
    if not user_id:
        raise DocumentSequenceError("user_id is required")

    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.user_id == user_id)
        .values(next_number=InvoiceSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return format_invoice_number(_read_allocated(user_id))

    try:
        with db.session.begin_nested():
            db.session.add(InvoiceSequence(user_id=user_id, next_number=2))
        return format_invoice_number(1)
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError("Could not allocate invoice number")
        return format_invoice_number(_read_allocated(user_id))
