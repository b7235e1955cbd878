# Overview: Fulfillment status engine; derives purchase order status from the receipt ledger.

"""
Fulfillment Status Engine

STATUS LAW (for a purchase order with at least one line):
- received: every line's received quantity >= its ordered quantity, and
  something was received at all
- partial:  some line has receipts, but not every line is covered
- pending:  no line has any receipt

FROZEN: received and cancelled are terminal. Recomputing a frozen order is a
no-op even if the ledger changes underneath it.

Status is written only when it differs from the stored value, so the engine
is safe to call after every scan. Nothing here commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import PurchaseOrder
from ..models.master import PO_STATUS_PARTIAL, PO_STATUS_PENDING, PO_STATUS_RECEIVED
from .concurrency import acquire_scope_lock
from .ledger_service import po_lock_key, received_by_item, get_ledger
from .lookup_service import get_purchase_order
from inbound.time_utils import utcnow, to_utc_z


@dataclass(frozen=True)
class StatusResult:
    po_number: str
    status: str
    previous_status: str
    changed: bool
    total_ordered: int
    total_received: int
    received_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "po_number": self.po_number,
            "status": self.status,
            "previous_status": self.previous_status,
            "changed": self.changed,
            "total_ordered": self.total_ordered,
            "total_received": self.total_received,
            "received_at": to_utc_z(self.received_at),
        }


def ordered_by_item(po: PurchaseOrder) -> dict[str, int]:
    totals: dict[str, int] = {}
    for line in po.lines:
        totals[line.item_number] = totals.get(line.item_number, 0) + int(line.quantity or 0)
    return totals


def classify(ordered: dict[str, int], received: dict[str, int]) -> str | None:
    """
    Apply the status law. Returns None for an order without lines, which
    leaves the stored status alone.
    """
    if not ordered:
        return None

    all_covered = True
    some_received = False
    total_received = 0

    for item_number, ordered_qty in ordered.items():
        received_qty = received.get(item_number, 0)
        total_received += received_qty
        if received_qty > 0:
            some_received = True
        if received_qty < ordered_qty:
            all_covered = False

    if all_covered and total_received > 0:
        return PO_STATUS_RECEIVED
    if some_received:
        return PO_STATUS_PARTIAL
    return PO_STATUS_PENDING


def recompute(po_number: str, *, now: datetime | None = None) -> StatusResult:
    """
    Reconcile a purchase order's status with its receipt ledger.

    Raises:
        NotFoundError: purchase order not registered
    """
    acquire_scope_lock(po_lock_key(po_number))

    po = get_purchase_order(po_number, reload=True)
    previous = po.status

    ordered = ordered_by_item(po)
    received = received_by_item(po_number)
    total_ordered = sum(ordered.values())
    total_received = sum(received.get(item_number, 0) for item_number in ordered)

    if po.is_frozen:
        return StatusResult(
            po_number=po_number,
            status=previous,
            previous_status=previous,
            changed=False,
            total_ordered=total_ordered,
            total_received=total_received,
            received_at=po.received_at,
        )

    new_status = classify(ordered, received)
    if new_status is None or new_status == previous:
        return StatusResult(
            po_number=po_number,
            status=previous,
            previous_status=previous,
            changed=False,
            total_ordered=total_ordered,
            total_received=total_received,
            received_at=po.received_at,
        )

    po.status = new_status
    if new_status == PO_STATUS_RECEIVED:
        po.received_at = now or utcnow()
    db.session.flush()

    return StatusResult(
        po_number=po_number,
        status=new_status,
        previous_status=previous,
        changed=True,
        total_ordered=total_ordered,
        total_received=total_received,
        received_at=po.received_at,
    )


def status_summary(po_number: str) -> dict:
    """
    Read-only status view with a per-line breakdown.

    Raises:
        NotFoundError: purchase order not registered
    """
    po = get_purchase_order(po_number)
    ordered = ordered_by_item(po)
    received = received_by_item(po_number)
    ledger = get_ledger(po_number)

    lines = []
    for item_number, ordered_qty in ordered.items():
        received_qty = received.get(item_number, 0)
        lines.append({
            "item_number": item_number,
            "ordered_quantity": ordered_qty,
            "received_quantity": received_qty,
            "remaining_quantity": max(ordered_qty - received_qty, 0),
        })

    return {
        "po_number": po.po_number,
        "status": po.status,
        "created_at": to_utc_z(po.created_at),
        "received_at": to_utc_z(po.received_at),
        "total_items": len(ordered),
        "total_ordered_quantity": sum(ordered.values()),
        "total_received_quantity": sum(received.get(i, 0) for i in ordered),
        "ledger_entries": len(ledger.entries or []) if ledger else 0,
        "lines": lines,
    }
