# Overview: Idempotency ledger for (epc, item, purchase order) quantity contributions.

"""
Idempotency Ledger

WHY: Several readers can see the same tag within milliseconds, and handhelds
replay scans after reconnecting. A tag must contribute its quantity to a
purchase order line exactly once.

The unique constraint on (epc, item_number, po_number) decides: the insert is
INSERT ... ON CONFLICT DO NOTHING, so exactly one caller observes is_new=True
no matter how many race. Replays still refresh the bookkeeping quantity.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func, update

from ..extensions import db
from ..models import IdempotencyRecord
from .concurrency import insert_ignore
from inbound.time_utils import utcnow


@dataclass(frozen=True)
class IdempotencyResult:
    is_new: bool


def record_if_new(epc: str, item_number: str, po_number: str, quantity: int) -> IdempotencyResult:
    """
    Record that epc contributed quantity to (po_number, item_number).

    Runs inside the caller's transaction; nothing is committed here.
    """
    now = utcnow()
    is_new = insert_ignore(
        IdempotencyRecord,
        {
            "epc": epc,
            "item_number": item_number,
            "po_number": po_number,
            "quantity": quantity,
            "created_at": now,
            "updated_at": now,
        },
        conflict_columns=("epc", "item_number", "po_number"),
    )

    if not is_new:
        db.session.execute(
            update(IdempotencyRecord)
            .where(
                IdempotencyRecord.epc == epc,
                IdempotencyRecord.item_number == item_number,
                IdempotencyRecord.po_number == po_number,
            )
            .values(quantity=quantity, updated_at=now)
        )

    return IdempotencyResult(is_new=is_new)


def is_recorded(epc: str, item_number: str, po_number: str) -> bool:
    return db.session.query(IdempotencyRecord.id).filter_by(
        epc=epc,
        item_number=item_number,
        po_number=po_number,
    ).first() is not None


def list_records(
    *,
    epc: str | None = None,
    item_number: str | None = None,
    po_number: str | None = None,
) -> list[IdempotencyRecord]:
    query = db.session.query(IdempotencyRecord)
    if epc:
        query = query.filter(IdempotencyRecord.epc == epc)
    if item_number:
        query = query.filter(IdempotencyRecord.item_number == item_number)
    if po_number:
        query = query.filter(IdempotencyRecord.po_number == po_number)
    return query.order_by(IdempotencyRecord.created_at.desc(), IdempotencyRecord.id.desc()).all()


def record_stats() -> dict:
    row = db.session.query(
        func.count(IdempotencyRecord.id),
        func.count(func.distinct(IdempotencyRecord.epc)),
        func.count(func.distinct(IdempotencyRecord.item_number)),
        func.count(func.distinct(IdempotencyRecord.po_number)),
        func.coalesce(func.sum(IdempotencyRecord.quantity), 0),
    ).one()
    return {
        "total_records": row[0],
        "unique_epcs": row[1],
        "unique_items": row[2],
        "unique_pos": row[3],
        "total_quantity": int(row[4]),
    }
