# Overview: Business-number allocation (SL-/RT-/RJ-/WR-/CLM- numbers).

from __future__ import annotations

from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


SALE = "SALE"
RETURN = "RETURN"
REPAIR = "REPAIR"
WARRANTY = "WARRANTY"
CLAIM = "CLAIM"

DOCUMENT_PREFIXES = {
    SALE: "SL",
    RETURN: "RT",
    REPAIR: "RJ",
    WARRANTY: "WR",
    CLAIM: "CLM",
}


def format_document_number(prefix: str, on: date, number: int, pad: int = 4) -> str:
    return f"{prefix}-{on:%Y%m%d}-{number:0{pad}d}"


def _increment(document_type: str, on: date) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == on,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, sequence_date=on)
        .scalar()
    )
    return current - 1


def next_document_number(document_type: str, *, on: date | None = None) -> str:
    """
    Allocate the next number for document_type on the given UTC day.

    Runs inside the caller's transaction: the counter row is bumped with an
    atomic UPDATE, so two writers can never receive the same number, and a
    rolled-back operation releases nothing that was ever persisted. The
    first number of a day is created under a savepoint; losing that insert
    race falls back to the UPDATE path.
    """
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if prefix is None:
        raise ValidationError(f"Unknown document type: {document_type}")
    on = on or utcnow().date()

    number = _increment(document_type, on)
    if number is None:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, sequence_date=on, next_number=2))
            number = 1
        except IntegrityError:
            number = _increment(document_type, on)
            if number is None:
                raise

    return format_document_number(prefix, on, number)
