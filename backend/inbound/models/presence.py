from __future__ import annotations

from ..extensions import db
from inbound.time_utils import to_utc_z


PRESENCE_IN = "in"
PRESENCE_OUT = "out"


class PresenceState(db.Model):
    """
    Append-only presence log.

    The most recent row per epc (highest id) is authoritative for
    toggling decisions; older rows are retained for audit.
    """
    __tablename__ = "presence_log"
    __table_args__ = (
        db.CheckConstraint("status IN ('in', 'out')", name="ck_presence_log_status"),
        db.Index("ix_presence_log_epc_seen", "epc", "seen_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    epc = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(10), nullable=False)
    seen_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    po_number = db.Column(db.String(100), nullable=True)
    item_number = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    location_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<PresenceState epc={self.epc!r} status={self.status} seen_at={self.seen_at}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "epc": self.epc,
            "status": self.status,
            "seen_at": to_utc_z(self.seen_at),
            "po_number": self.po_number,
            "item_number": self.item_number,
            "user_id": self.user_id,
            "quantity": self.quantity,
            "location_name": self.location_name,
            "created_at": to_utc_z(self.created_at),
        }
