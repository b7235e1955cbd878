# Overview: Tag code resolution and tag registration provisioning.

"""
Tag Code Resolver

WHY: Readers emit an opaque code; everything downstream needs the purchase
order line it stands for. Registration happens ahead of time, so resolution
is a pure lookup with no side effects.

PROVISIONING: register_tag() generates 16-char upper-case hex codes. A
generated code can collide with an existing one; the insert is retried once
with a fresh code before giving up with ConflictError.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TagRegistration
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_code


CODE_BYTES = 8


@dataclass(frozen=True)
class TagResolution:
    code: str
    po_number: str
    lot_no: str
    item_number: str
    quantity: int

    def to_dict(self) -> dict:
        return {
            "epc": self.code,
            "po_number": self.po_number,
            "lot_no": self.lot_no,
            "item_number": self.item_number,
            "quantity": self.quantity,
        }


def resolve(code: str) -> TagResolution:
    """
    Resolve a scanned code to its registered purchase order line.

    Raises:
        NotFoundError: code is not registered (terminal for the scan)
    """
    normalized = normalize_code(code or "")
    if not normalized:
        raise ValidationError("epc is required")

    registration = db.session.query(TagRegistration).filter_by(code=normalized).first()
    if not registration:
        raise NotFoundError(f'EPC/Hex code "{normalized}" is not registered')

    return TagResolution(
        code=registration.code,
        po_number=registration.po_number,
        lot_no=registration.lot_no,
        item_number=registration.item_number,
        quantity=registration.quantity,
    )


def generate_code() -> str:
    return secrets.token_hex(CODE_BYTES).upper()


def register_tag(
    *,
    po_number: str,
    lot_no: str,
    item_number: str,
    quantity: int,
    uom: str | None = None,
    code: str | None = None,
) -> TagRegistration:
    """
    Provision a tag registration and commit it.

    Args:
        po_number: Purchase order the tag belongs to
        lot_no: Lot/batch identifier
        item_number: Item carried by the tag
        quantity: Units the tag stands for (must be positive)
        uom: Unit of measure
        code: Explicit code; generated when omitted

    Raises:
        ValidationError: invalid quantity or blank identifiers
        ConflictError: code already registered (explicit code, or a generated
            code that collided twice)
    """
    if not po_number or not lot_no or not item_number:
        raise ValidationError("po_number, lot_no and item_number are required")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    explicit = normalize_code(code) if code else None
    attempts = 1 if explicit else 2

    for attempt in range(attempts):
        registration = TagRegistration(
            code=explicit or generate_code(),
            po_number=po_number,
            lot_no=lot_no,
            item_number=item_number,
            quantity=quantity,
            uom=uom,
        )
        db.session.add(registration)
        try:
            db.session.commit()
            return registration
        except IntegrityError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise ConflictError(f'Tag code "{registration.code}" is already registered')


def list_registrations(po_number: str | None = None) -> list[TagRegistration]:
    query = db.session.query(TagRegistration)
    if po_number:
        query = query.filter(TagRegistration.po_number == po_number)
    return query.order_by(TagRegistration.id).all()
