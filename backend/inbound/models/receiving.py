from __future__ import annotations

from sqlalchemy.dialects.postgresql import JSONB

from ..extensions import db
from inbound.time_utils import to_utc_z


class ReceiptLedger(db.Model):
    """
    Per purchase order receipt ledger (one document per PO).

    entries is a JSON array, one element per contributing tag:
        {item_number, item_description, lot_no, epc, quantity,
         ordered_quantity, received_at}

    INVARIANTS:
    - (item_number, epc) pairs are unique within entries.
    - Received quantity for an item is the sum over its entries.
    - Mutated only by the receipt aggregator, inside the per-PO lock.
    """
    __tablename__ = "receipt_ledgers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(100), nullable=False, unique=True, index=True)
    entries = db.Column(db.JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ReceiptLedger po_number={self.po_number!r} entries={len(self.entries or [])}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "items": list(self.entries or []),
            "received_at": to_utc_z(self.received_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class IdempotencyRecord(db.Model):
    """
    One row per (epc, item_number, po_number) that has contributed quantity.

    The unique constraint is the arbiter between racing readers: exactly one
    insert wins. quantity is bookkeeping only (last write wins).
    """
    __tablename__ = "epc_tracking"
    __table_args__ = (
        db.UniqueConstraint("epc", "item_number", "po_number", name="uq_epc_tracking_epc_item_po"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    epc = db.Column(db.String(255), nullable=False)
    item_number = db.Column(db.String(255), nullable=False)
    po_number = db.Column(db.String(100), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<IdempotencyRecord epc={self.epc!r} item={self.item_number!r} po={self.po_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "epc": self.epc,
            "item_number": self.item_number,
            "po_number": self.po_number,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ScopeLock(db.Model):
    """
    Lock target for stores without advisory locks.

    A row per lock key; SELECT ... FOR UPDATE on it serializes transactions
    that share the key until commit/rollback.
    """
    __tablename__ = "scope_locks"

    key = db.Column(db.String(255), primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<ScopeLock key={self.key!r}>"
