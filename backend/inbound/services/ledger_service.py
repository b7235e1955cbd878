# Overview: Receipt aggregator; per purchase order ledger of tag contributions.

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..models import ReceiptLedger
from .concurrency import acquire_scope_lock, lock_for_update
from inbound.time_utils import utcnow, to_utc_z
"""
Receipt Ledger Invariants (authoritative)

- One ledger document per purchase order; entries is a JSON array.
- One entry per (item_number, epc). A second scan of the same pair is a no-op.
- Distinct tags for the same item each get their own entry; quantities are
  never merged into another tag's entry, so every unit stays traceable to the
  tag that delivered it.
- Received quantity for an item = sum of its entries.
- The load-modify-store cycle runs under the per-PO scope lock, inside the
  caller's transaction. Nothing here commits.
"""


def po_lock_key(po_number: str) -> str:
    return f"po:{po_number}"


@dataclass(frozen=True)
class AggregationResult:
    entries: list[dict]
    appended: bool
    entry: dict | None


def _find_entry(entries: list[dict], item_number: str, epc: str) -> dict | None:
    for entry in entries:
        if entry.get("item_number") == item_number and entry.get("epc") == epc:
            return entry
    return None


def _load_for_update(po_number: str) -> ReceiptLedger | None:
    return lock_for_update(
        db.session.query(ReceiptLedger).filter(ReceiptLedger.po_number == po_number)
    ).first()


def apply_scan(
    *,
    po_number: str,
    item_number: str,
    epc: str,
    quantity: int,
    lot_no: str,
    item_description: str | None = None,
    ordered_quantity: int = 0,
    received_at: datetime | None = None,
) -> AggregationResult:
    """
    Append this tag's contribution to the purchase order ledger.

    Returns the full entry list and whether an entry was appended. An existing
    (item_number, epc) entry is returned untouched.
    """
    acquire_scope_lock(po_lock_key(po_number))

    now = received_at or utcnow()
    ledger = _load_for_update(po_number)
    if ledger is None:
        ledger = ReceiptLedger(po_number=po_number, entries=[], received_at=now)
        db.session.add(ledger)
        db.session.flush()

    entries = list(ledger.entries or [])
    existing = _find_entry(entries, item_number, epc)
    if existing is not None:
        return AggregationResult(entries=entries, appended=False, entry=existing)

    entry = {
        "item_number": item_number,
        "item_description": item_description or "",
        "lot_no": lot_no,
        "epc": epc,
        "quantity": int(quantity),
        "ordered_quantity": int(ordered_quantity),
        "received_at": to_utc_z(now),
    }
    entries.append(entry)

    # Assign a new list so the JSON column is flagged dirty
    ledger.entries = entries
    if ledger.received_at is None:
        ledger.received_at = now
    db.session.flush()

    return AggregationResult(entries=entries, appended=True, entry=entry)


def get_ledger(po_number: str) -> ReceiptLedger | None:
    return db.session.query(ReceiptLedger).filter_by(po_number=po_number).first()


def get_entries(po_number: str) -> list[dict]:
    ledger = get_ledger(po_number)
    return list(ledger.entries or []) if ledger else []


def received_by_item(po_number: str) -> dict[str, int]:
    """Sum of entry quantities per item_number."""
    totals: dict[str, int] = OrderedDict()
    for entry in get_entries(po_number):
        item_number = entry.get("item_number")
        totals[item_number] = totals.get(item_number, 0) + int(entry.get("quantity") or 0)
    return dict(totals)


def received_quantity(po_number: str, item_number: str) -> int:
    return received_by_item(po_number).get(item_number, 0)


def ledger_summary(po_number: str) -> dict:
    """
    Ledger document with per-item totals.

    Returns dict with po_number, items (raw entries), totals and the overall
    received quantity.
    """
    ledger = get_ledger(po_number)
    entries = list(ledger.entries or []) if ledger else []
    totals = received_by_item(po_number) if ledger else {}

    return {
        "po_number": po_number,
        "items": entries,
        "entry_count": len(entries),
        "received_by_item": totals,
        "total_received": sum(totals.values()),
        "received_at": to_utc_z(ledger.received_at) if ledger else None,
        "updated_at": to_utc_z(ledger.updated_at) if ledger else None,
    }
