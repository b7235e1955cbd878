# Overview: Flask API routes for the idempotency ledger (which tags counted toward which lines).

from flask import Blueprint, jsonify, request

from ..services import idempotency_service
from ..validation import normalize_code


epc_tracking_bp = Blueprint("epc_tracking", __name__, url_prefix="/api/epc-tracking")


@epc_tracking_bp.get("")
def list_epc_tracking_route():
    """
    Query parameters (all optional): epc, item_number, po_number
    """
    epc = request.args.get("epc")
    records = idempotency_service.list_records(
        epc=normalize_code(epc) if epc else None,
        item_number=request.args.get("item_number"),
        po_number=request.args.get("po_number"),
    )
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})


@epc_tracking_bp.get("/stats")
def epc_tracking_stats_route():
    return jsonify(idempotency_service.record_stats())
