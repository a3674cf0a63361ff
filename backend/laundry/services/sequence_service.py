# Overview: Atomic sequential numbers for printed codes (delivery barcodes).

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BarcodeSequence

DELIVERY_SEQUENCE = "delivery"


def next_sequence_value(name: str) -> int:
    """
    Atomically allocate the next value of a named sequence.

    The increment is a single UPDATE, so concurrent callers serialize on the
    sequence row. The first allocation inserts the row inside a savepoint; a
    concurrent first insert loses on the unique name and falls back to the
    UPDATE path. Runs inside the caller's transaction.
    """
    stmt = (
        update(BarcodeSequence)
        .where(BarcodeSequence.name == name)
        .values(next_number=BarcodeSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(BarcodeSequence(name=name, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(BarcodeSequence.next_number)
        .filter(BarcodeSequence.name == name)
        .scalar()
    )
    return current - 1


def next_delivery_barcode() -> str:
    """Next delivery barcode: zero-padded sequential number ("000000001")."""
    pad = current_app.config.get("DELIVERY_BARCODE_PAD", 9)
    return f"{next_sequence_value(DELIVERY_SEQUENCE):0{pad}d}"
