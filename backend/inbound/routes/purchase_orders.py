# Overview: Flask API routes for purchase order fulfillment status and receipt ledgers.

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..services import fulfillment_service, ledger_service
from ..services.broadcast_service import CHANNEL_STATUS, safe_publish, status_payload
from ..services.lookup_service import get_purchase_order
from ..validation import NotFoundError
from inbound.time_utils import utcnow


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("/<po_number>/status")
def po_status_route(po_number: str):
    try:
        return jsonify(fulfillment_service.status_summary(po_number))
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@purchase_orders_bp.post("/<po_number>/recompute-status")
def recompute_status_route(po_number: str):
    """
    Re-derive the status from the ledger (e.g. after a ledger correction).

    Received and cancelled orders are returned unchanged.
    """
    try:
        now = utcnow()
        result = fulfillment_service.recompute(po_number, now=now)
        payload = status_payload(result, timestamp=now) if result.changed else None
        db.session.commit()
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to recompute purchase order status")
        return jsonify({"error": "Internal server error"}), 500

    if payload is not None:
        current_app.logger.info("PO %s status %s -> %s", po_number, result.previous_status, result.status)
        safe_publish(current_app.extensions["event_publisher"], CHANNEL_STATUS, payload, current_app.logger)
    return jsonify(result.to_dict())


@purchase_orders_bp.get("/<po_number>/ledger")
def po_ledger_route(po_number: str):
    try:
        get_purchase_order(po_number)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(ledger_service.ledger_summary(po_number))
