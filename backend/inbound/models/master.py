from __future__ import annotations

from ..extensions import db
from inbound.time_utils import to_utc_z


# Purchase order statuses
PO_STATUS_PENDING = "pending"
PO_STATUS_PARTIAL = "partial"
PO_STATUS_RECEIVED = "received"
PO_STATUS_CANCELLED = "cancelled"

PO_STATUSES = {PO_STATUS_PENDING, PO_STATUS_PARTIAL, PO_STATUS_RECEIVED, PO_STATUS_CANCELLED}
FROZEN_PO_STATUSES = {PO_STATUS_RECEIVED, PO_STATUS_CANCELLED}


class Item(db.Model):
    """
    Item master data.

    Read-only to the reconciliation core; looked up by item_number, which is
    the natural key carried on tag registrations and purchase order lines.
    """
    __tablename__ = "items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    item_number = db.Column(db.String(255), nullable=False, unique=True, index=True)
    item_description = db.Column(db.Text, nullable=True)
    uom = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} item_number={self.item_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_number": self.item_number,
            "item_description": self.item_description,
            "uom": self.uom,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    STATUS: derived, never set by clients during reconciliation. Only the
    fulfillment status engine writes it, and received/cancelled are frozen.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'partial', 'received', 'cancelled')",
            name="ck_purchase_orders_status",
        ),
        db.Index("ix_purchase_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(100), nullable=False, unique=True, index=True)
    supplier_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PO_STATUS_PENDING)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
    )

    @property
    def is_frozen(self) -> bool:
        return self.status in FROZEN_PO_STATUSES

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "po_number": self.po_number,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "received_at": to_utc_z(self.received_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderLine(db.Model):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "item_number", name="uq_po_lines_po_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_number = db.Column(db.String(255), db.ForeignKey("items.item_number"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<PurchaseOrderLine po_id={self.purchase_order_id} item={self.item_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "item_number": self.item_number,
            "quantity": self.quantity,
        }


class Location(db.Model):
    """
    Physical location (dock door, staging area).

    device_id links a fixed reader to the location it is mounted at.
    """
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_code = db.Column(db.String(100), nullable=False, unique=True)
    location_name = db.Column(db.String(255), nullable=False)
    device_id = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} code={self.location_code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_code": self.location_code,
            "location_name": self.location_name,
            "device_id": self.device_id,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Acting user behind a reader (the scan's `value`).

    A user may be stationed at a location; presence events report that
    location's name.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(50), nullable=False, unique=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    location = db.relationship("Location", backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "location_id": self.location_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
