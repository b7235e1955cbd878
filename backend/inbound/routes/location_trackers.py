# Overview: Flask API routes for the standalone presence tracker and presence history.

from flask import Blueprint, current_app, jsonify, request

from ..services import presence_service
from ..services.scan_service import reconciler_for_app
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_code, parse_scan_payload


location_trackers_bp = Blueprint("location_trackers", __name__, url_prefix="/api/location-trackers")


@location_trackers_bp.post("/scan")
def track_scan_route():
    """
    Presence-only scan. Same body as /api/scans; nothing is received.

    Returns 201 when the tag's presence changed, 200 when the read fell inside
    the cooldown window.
    """
    try:
        scan = parse_scan_payload(request.get_json(silent=True))
        outcome = reconciler_for_app(current_app).track_presence(scan)
        return jsonify(outcome.to_dict()), 201 if outcome.presence.changed else 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to track presence scan")
        return jsonify({"error": "Internal server error"}), 500


@location_trackers_bp.get("")
def list_presence_history_route():
    """
    Presence rows, newest first.

    Query parameters:
    - epc: only this tag
    - location_name: only rows recorded at this location
    - limit: maximum rows (default 100, max 500)
    """
    epc = request.args.get("epc")
    location_name = request.args.get("location_name")
    limit = request.args.get("limit", 100, type=int)
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500

    rows = presence_service.history(
        epc=normalize_code(epc) if epc else None,
        location_name=location_name,
        limit=limit,
    )
    return jsonify({
        "items": [row.to_dict() for row in rows],
        "count": len(rows),
        "limit": limit,
    })


@location_trackers_bp.get("/current")
def current_presence_route():
    """Latest presence row per tag."""
    rows = presence_service.current_statuses()
    return jsonify({"items": [row.to_dict() for row in rows], "count": len(rows)})


@location_trackers_bp.get("/stats")
def presence_stats_route():
    return jsonify(presence_service.presence_stats())
