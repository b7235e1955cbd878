# Overview: Read-only master data lookups (items, purchase orders, actors, locations).

"""
Master data lookups

Items, purchase orders, users and locations are owned by the surrounding
back office. The reconciliation core only reads them by natural key, and any
miss is a terminal failure for the scan that asked.
"""

from ..extensions import db
from ..models import Item, PurchaseOrder, User, Location
from ..validation import NotFoundError, ValidationError


def get_item(item_number: str) -> Item:
    item = db.session.query(Item).filter_by(item_number=item_number).first()
    if not item:
        raise NotFoundError(f'Item "{item_number}" not found')
    return item


def get_purchase_order(po_number: str, *, reload: bool = False) -> PurchaseOrder:
    """
    Look up a purchase order by number.

    reload=True overwrites any copy already in the session's identity map;
    callers holding the PO lock use it so status reads reflect the store.
    """
    query = db.session.query(PurchaseOrder).filter_by(po_number=po_number)
    if reload:
        query = query.populate_existing()
    po = query.first()
    if not po:
        raise NotFoundError(f"Purchase order {po_number} not found")
    return po


def resolve_actor(value: str) -> User:
    """
    Resolve a scan's `value` to the acting user.

    Numeric values are user ids; anything else is matched against username.
    """
    if value is None or str(value).strip() == "":
        raise ValidationError("value is required")

    value = str(value).strip()
    user = None
    if value.isdigit():
        user = db.session.get(User, int(value))
    if user is None:
        user = db.session.query(User).filter_by(username=value).first()

    if not user:
        raise NotFoundError(f'User "{value}" not found')
    if not user.is_active:
        raise NotFoundError(f'User "{value}" is inactive')
    return user


def location_for_device(device_id: str | None) -> Location | None:
    """Location a fixed reader is mounted at, if the reader is registered."""
    if not device_id:
        return None
    return db.session.query(Location).filter_by(device_id=device_id).first()


def resolve_location_name(actor: User, device_id: str | None = None) -> str | None:
    """Reader location wins over the actor's home location."""
    location = location_for_device(device_id)
    if location is None:
        location = actor.location
    return location.location_name if location else None
