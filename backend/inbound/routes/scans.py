# Overview: Flask API route for reader scan ingestion; runs the full receiving pipeline.

"""
Scan Ingestion Route

Readers and handhelds post one scan per request:
    {"epc": "...", "value": "<user id or username>", "rssi": "...",
     "count": 1, "timestamp": 1718000000000, "deviceId": "..."}

Status codes:
- 201: the scan added a receipt ledger entry
- 200: duplicate scan (ledger unchanged); presence and status may still move
- 400: malformed body (missing epc or value)
- 404: unknown tag code, actor, item or purchase order
- 409: concurrent update conflict that survived a retry
"""

from flask import Blueprint, current_app, jsonify, request

from ..services.scan_service import reconciler_for_app
from ..validation import ConflictError, NotFoundError, ValidationError, parse_scan_payload


scans_bp = Blueprint("scans", __name__, url_prefix="/api/scans")


@scans_bp.post("")
def ingest_scan_route():
    try:
        scan = parse_scan_payload(request.get_json(silent=True))
        outcome = reconciler_for_app(current_app).process_scan(scan)
        return jsonify(outcome.to_dict()), 201 if outcome.ledger_appended else 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process scan")
        return jsonify({"error": "Internal server error"}), 500
