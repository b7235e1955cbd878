# Overview: Server-Sent Events stream of reconciliation broadcasts for live dashboards.

"""
Live Event Stream

Each client gets its own subscription to the in-process broadcast signal.
Events are written as SSE frames:

    event: inbound:new-scan
    data: {...}

A comment line is sent every EVENT_STREAM_HEARTBEAT_SECONDS of silence so
proxies keep the connection open. Only events published by this process are
seen; deployments running EVENT_PUBLISHER=redis subscribe to Redis directly.
"""

import json

from flask import Blueprint, Response, current_app, stream_with_context

from ..services.broadcast_service import EventStreamSubscription


events_bp = Blueprint("events", __name__, url_prefix="/api/events")


def format_sse(channel: str, payload: dict) -> str:
    return f"event: {channel}\ndata: {json.dumps(payload, default=str)}\n\n"


@events_bp.get("/stream")
def event_stream_route():
    heartbeat = current_app.config.get("EVENT_STREAM_HEARTBEAT_SECONDS", 15)
    subscription = EventStreamSubscription()

    def generate():
        try:
            yield ": connected\n\n"
            for event in subscription.listen(timeout=heartbeat):
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                channel, payload = event
                yield format_sse(channel, payload)
        finally:
            subscription.close()

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
