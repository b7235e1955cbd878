# Overview: Event broadcaster; fire-and-forget publication of reconciliation events.

"""
Event Broadcaster

The reconciliation core is handed an EventPublisher when it is constructed and
never looks one up globally. Publishing is best-effort: it happens after the
scan transaction has committed, and a publisher failure is logged and
swallowed, never turned into a scan failure.

PUBLISHERS:
- SignalPublisher: in-process fan-out over a blinker signal. The live event
  stream endpoint subscribes to it.
- RedisPublisher: JSON over Redis pub/sub for dashboards in other processes.
- NullPublisher: drops everything.
"""

from __future__ import annotations

import json
import queue
from typing import Iterator, Protocol

import redis
from blinker import Namespace

from inbound.time_utils import to_utc_z


CHANNEL_RECEIPT = "inbound:new-scan"
CHANNEL_PRESENCE = "location-tracker:new-activity"
CHANNEL_STATUS = "po:status-updated"

CHANNELS = (CHANNEL_RECEIPT, CHANNEL_PRESENCE, CHANNEL_STATUS)

broadcast_signals = Namespace()
event_broadcast = broadcast_signals.signal("event-broadcast")


class EventPublisher(Protocol):
    def publish(self, channel: str, payload: dict) -> None:
        ...


class NullPublisher:
    def publish(self, channel: str, payload: dict) -> None:
        return None


class SignalPublisher:
    def __init__(self, signal=event_broadcast, channel_prefix: str = ""):
        self.signal = signal
        self.channel_prefix = channel_prefix

    def publish(self, channel: str, payload: dict) -> None:
        self.signal.send(self, channel=f"{self.channel_prefix}{channel}", payload=payload)


class RedisPublisher:
    def __init__(self, client: redis.Redis, channel_prefix: str = ""):
        self.client = client
        self.channel_prefix = channel_prefix

    @classmethod
    def from_url(cls, url: str, channel_prefix: str = "") -> "RedisPublisher":
        return cls(redis.Redis.from_url(url), channel_prefix=channel_prefix)

    def publish(self, channel: str, payload: dict) -> None:
        self.client.publish(f"{self.channel_prefix}{channel}", json.dumps(payload, default=str))


def build_publisher(config) -> EventPublisher:
    """Publisher selected by EVENT_PUBLISHER (signal, redis, none)."""
    kind = (config.get("EVENT_PUBLISHER") or "signal").lower()
    prefix = config.get("EVENT_CHANNEL_PREFIX") or ""
    if kind == "signal":
        return SignalPublisher(channel_prefix=prefix)
    if kind == "redis":
        return RedisPublisher.from_url(config["REDIS_URL"], channel_prefix=prefix)
    if kind == "none":
        return NullPublisher()
    raise ValueError(f"Unknown EVENT_PUBLISHER: {kind}")


def safe_publish(publisher: EventPublisher, channel: str, payload: dict, logger) -> bool:
    """Publish, logging instead of raising. Returns True when the publish went out."""
    try:
        publisher.publish(channel, payload)
        return True
    except Exception:
        logger.exception("Failed to publish %s event", channel)
        return False


class EventStreamSubscription:
    """
    Buffer of signal broadcasts for one live-stream client.

    Connects to the blinker signal on creation; close() must be called when
    the client goes away. When the buffer is full the oldest events win and
    newer ones are dropped.
    """

    def __init__(self, signal=event_broadcast, maxsize: int = 1000):
        self.signal = signal
        self.events: queue.Queue = queue.Queue(maxsize=maxsize)
        self.signal.connect(self._receive, weak=False)

    def _receive(self, sender, channel: str = "", payload: dict | None = None, **extra) -> None:
        try:
            self.events.put_nowait((channel, payload or {}))
        except queue.Full:
            pass

    def listen(self, timeout: float) -> Iterator[tuple[str, dict] | None]:
        """Yield (channel, payload) pairs; yields None after `timeout` idle seconds."""
        while True:
            try:
                yield self.events.get(timeout=timeout)
            except queue.Empty:
                yield None

    def close(self) -> None:
        self.signal.disconnect(self._receive)


# =============================================================================
# Payload builders
# =============================================================================

def receipt_payload(
    *,
    resolution,
    item_description: str | None,
    received_quantity: int,
    ordered_quantity: int,
    location_name: str | None,
    location_status: str | None,
    user_id: int | None,
    timestamp,
) -> dict:
    return {
        "po_number": resolution.po_number,
        "item_number": resolution.item_number,
        "item_description": item_description or "",
        "received_quantity": received_quantity,
        "scanned_quantity": resolution.quantity,
        "ordered_quantity": ordered_quantity,
        "remaining_quantity": max(ordered_quantity - received_quantity, 0),
        "lot_no": resolution.lot_no,
        "epc": resolution.code,
        "location_name": location_name,
        "location_status": location_status,
        "user_id": user_id,
        "timestamp": to_utc_z(timestamp),
    }


def activity_text(record) -> str:
    where = f" at {record.location_name}" if record.location_name else ""
    if record.status == "in":
        return f"EPC {record.epc} checked in{where}"
    return f"EPC {record.epc} checked out{where}"


def presence_payload(record, *, timestamp) -> dict:
    return {
        "id": record.id,
        "epc": record.epc,
        "user_id": record.user_id,
        "po_number": record.po_number,
        "item_number": record.item_number,
        "quantity": record.quantity,
        "status": record.status,
        "location_name": record.location_name,
        "created_at": to_utc_z(record.seen_at),
        "timestamp": to_utc_z(timestamp),
        "activity_text": activity_text(record),
    }


def status_payload(result, *, timestamp) -> dict:
    return {
        "po_number": result.po_number,
        "old_status": result.previous_status,
        "new_status": result.status,
        "received_at": to_utc_z(result.received_at),
        "total_ordered": result.total_ordered,
        "total_received": result.total_received,
        "timestamp": to_utc_z(timestamp),
    }
