from __future__ import annotations

from ..extensions import db
from inbound.time_utils import to_utc_z


class TagRegistration(db.Model):
    """
    Pre-provisioned mapping from a scanned code to a purchase order line.

    IMMUTABLE to the reconciliation core: codes are created by provisioning
    and only ever read during a scan. The code is globally unique.
    """
    __tablename__ = "tag_registrations"
    __table_args__ = (
        db.Index("ix_tag_registrations_po_item", "po_number", "item_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(255), nullable=False, unique=True)
    po_number = db.Column(db.String(100), nullable=False)
    lot_no = db.Column(db.String(100), nullable=False)
    item_number = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    uom = db.Column(db.String(50), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<TagRegistration code={self.code!r} po={self.po_number!r} item={self.item_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "po_number": self.po_number,
            "lot_no": self.lot_no,
            "item_number": self.item_number,
            "quantity": self.quantity,
            "uom": self.uom,
            "created_at": to_utc_z(self.created_at),
        }
