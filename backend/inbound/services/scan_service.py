# Overview: Scan reconciliation pipeline; one transaction per scan, broadcast after commit.

"""
Scan Reconciler

PIPELINE (one scan, one transaction):
1. Resolve the tag code, the actor, the item and the purchase order.
   Any miss is terminal: the transaction rolls back and nothing is written.
2. Take the per-PO lock, then record the (epc, item, PO) triple in the
   idempotency ledger. Only a first-seen triple reaches the receipt aggregator.
3. Apply the scan to the tag's presence state (per-tag lock, taken after the
   PO lock; always in that order).
4. Recompute the purchase order's fulfillment status.
5. Commit, then publish one event per state change. Publishing can fail
   without affecting the committed scan.

RETRIES: transient lock/deadlock failures are retried with backoff; a
unique-constraint race is retried once and then surfaced as ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..extensions import db
from ..validation import ScanRequest
from . import idempotency_service, ledger_service, tag_service, fulfillment_service
from .broadcast_service import (
    CHANNEL_PRESENCE,
    CHANNEL_RECEIPT,
    CHANNEL_STATUS,
    EventPublisher,
    presence_payload,
    receipt_payload,
    safe_publish,
    status_payload,
)
from .concurrency import acquire_scope_lock, run_with_conflict_retry, run_with_retry
from .fulfillment_service import StatusResult, ordered_by_item
from .ledger_service import po_lock_key
from .lookup_service import get_item, get_purchase_order, resolve_actor, resolve_location_name
from .presence_service import PresenceTracker
from .tag_service import TagResolution
from inbound.time_utils import utcnow


@dataclass(frozen=True)
class PresenceOutcome:
    action: str
    status: str
    record: dict

    @property
    def changed(self) -> bool:
        return self.action != "suppressed"

    def to_dict(self) -> dict:
        return {"action": self.action, "status": self.status, "record": self.record}


@dataclass(frozen=True)
class ScanOutcome:
    """Everything one receiving scan did, captured before commit."""
    resolution: TagResolution
    item_description: str
    user_id: int
    location_name: str | None
    ledger_entries: list[dict]
    ledger_appended: bool
    received_quantity: int
    ordered_quantity: int
    presence: PresenceOutcome
    status: StatusResult
    events: list[tuple[str, dict]] = field(default_factory=list)

    @property
    def duplicate(self) -> bool:
        return not self.ledger_appended

    def to_dict(self) -> dict:
        return {
            **self.resolution.to_dict(),
            "item_description": self.item_description,
            "user_id": self.user_id,
            "location_name": self.location_name,
            "duplicate": self.duplicate,
            "received_quantity": self.received_quantity,
            "ordered_quantity": self.ordered_quantity,
            "remaining_quantity": max(self.ordered_quantity - self.received_quantity, 0),
            "ledger": {
                "po_number": self.resolution.po_number,
                "items": self.ledger_entries,
            },
            "presence": self.presence.to_dict(),
            "po_status": self.status.to_dict(),
        }


@dataclass(frozen=True)
class TrackOutcome:
    """Result of a standalone presence scan (no receiving)."""
    resolution: TagResolution
    user_id: int
    location_name: str | None
    presence: PresenceOutcome
    events: list[tuple[str, dict]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            **self.resolution.to_dict(),
            "user_id": self.user_id,
            "location_name": self.location_name,
            "presence": self.presence.to_dict(),
        }


class ScanReconciler:
    def __init__(
        self,
        *,
        publisher: EventPublisher,
        presence_tracker: PresenceTracker | None = None,
        clock=utcnow,
        retry_attempts: int = 3,
        logger: logging.Logger | None = None,
    ):
        self.publisher = publisher
        self.presence_tracker = presence_tracker or PresenceTracker()
        self.clock = clock
        self.retry_attempts = retry_attempts
        self.logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process_scan(self, scan: ScanRequest) -> ScanOutcome:
        """
        Run the full receiving pipeline for one scan.

        Raises:
            ValidationError: malformed request (400)
            NotFoundError: unknown code, actor, item or purchase order (404)
            ConflictError: unique-constraint race that survived a retry (409)
        """
        outcome = self._transact(lambda: self._reconcile(scan))

        if outcome.duplicate and not outcome.presence.changed:
            self.logger.debug("Duplicate scan suppressed: epc=%s po=%s", scan.epc, outcome.resolution.po_number)
        else:
            self.logger.info(
                "Scan reconciled: epc=%s po=%s item=%s appended=%s presence=%s status=%s",
                scan.epc,
                outcome.resolution.po_number,
                outcome.resolution.item_number,
                outcome.ledger_appended,
                outcome.presence.action,
                outcome.status.status,
            )

        self._broadcast(outcome.events)
        return outcome

    def track_presence(self, scan: ScanRequest) -> TrackOutcome:
        """
        Standalone tracker entry point: presence only, no receiving.

        Raises:
            ValidationError, NotFoundError, ConflictError as process_scan
        """
        outcome = self._transact(lambda: self._track(scan))
        self.logger.info("Presence scan: epc=%s action=%s status=%s",
                         scan.epc, outcome.presence.action, outcome.presence.status)
        self._broadcast(outcome.events)
        return outcome

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _transact(self, work):
        def _attempt():
            try:
                result = work()
                db.session.commit()
                return result
            except Exception:
                db.session.rollback()
                raise

        return run_with_retry(
            lambda: run_with_conflict_retry(_attempt),
            attempts=self.retry_attempts,
        )

    def _broadcast(self, events: list[tuple[str, dict]]) -> None:
        for channel, payload in events:
            safe_publish(self.publisher, channel, payload, self.logger)

    # ------------------------------------------------------------------
    # Pipeline steps (inside the transaction)
    # ------------------------------------------------------------------

    def _apply_presence(self, *, resolution: TagResolution, actor_id: int, location_name, now) -> tuple[PresenceOutcome, dict | None]:
        result = self.presence_tracker.track(
            epc=resolution.code,
            now=now,
            po_number=resolution.po_number,
            item_number=resolution.item_number,
            user_id=actor_id,
            quantity=resolution.quantity,
            location_name=location_name,
        )
        outcome = PresenceOutcome(action=result.action, status=result.status, record=result.record.to_dict())
        event = presence_payload(result.record, timestamp=now) if result.changed else None
        return outcome, event

    def _reconcile(self, scan: ScanRequest) -> ScanOutcome:
        now = self.clock()

        resolution = tag_service.resolve(scan.epc)
        actor = resolve_actor(scan.value)
        item = get_item(resolution.item_number)
        location_name = resolve_location_name(actor, scan.device_id)

        # PO rows are read only under the PO lock
        acquire_scope_lock(po_lock_key(resolution.po_number))
        po = get_purchase_order(resolution.po_number, reload=True)

        ordered_quantity = ordered_by_item(po).get(resolution.item_number, 0)

        recorded = idempotency_service.record_if_new(
            resolution.code,
            resolution.item_number,
            resolution.po_number,
            resolution.quantity,
        )
        if recorded.is_new:
            aggregation = ledger_service.apply_scan(
                po_number=resolution.po_number,
                item_number=resolution.item_number,
                epc=resolution.code,
                quantity=resolution.quantity,
                lot_no=resolution.lot_no,
                item_description=item.item_description,
                ordered_quantity=ordered_quantity,
                received_at=now,
            )
            entries, appended = aggregation.entries, aggregation.appended
        else:
            entries, appended = ledger_service.get_entries(resolution.po_number), False

        received_quantity = sum(
            int(entry.get("quantity") or 0)
            for entry in entries
            if entry.get("item_number") == resolution.item_number
        )

        presence, presence_event = self._apply_presence(
            resolution=resolution,
            actor_id=actor.id,
            location_name=location_name,
            now=now,
        )

        status = fulfillment_service.recompute(resolution.po_number, now=now)

        events: list[tuple[str, dict]] = []
        if appended:
            events.append((CHANNEL_RECEIPT, receipt_payload(
                resolution=resolution,
                item_description=item.item_description,
                received_quantity=received_quantity,
                ordered_quantity=ordered_quantity,
                location_name=location_name,
                location_status=presence.status,
                user_id=actor.id,
                timestamp=now,
            )))
        if presence_event is not None:
            events.append((CHANNEL_PRESENCE, presence_event))
        if status.changed:
            events.append((CHANNEL_STATUS, status_payload(status, timestamp=now)))

        return ScanOutcome(
            resolution=resolution,
            item_description=item.item_description or "",
            user_id=actor.id,
            location_name=location_name,
            ledger_entries=entries,
            ledger_appended=appended,
            received_quantity=received_quantity,
            ordered_quantity=ordered_quantity,
            presence=presence,
            status=status,
            events=events,
        )

    def _track(self, scan: ScanRequest) -> TrackOutcome:
        now = self.clock()

        resolution = tag_service.resolve(scan.epc)
        actor = resolve_actor(scan.value)
        location_name = resolve_location_name(actor, scan.device_id)

        presence, presence_event = self._apply_presence(
            resolution=resolution,
            actor_id=actor.id,
            location_name=location_name,
            now=now,
        )

        events = [(CHANNEL_PRESENCE, presence_event)] if presence_event is not None else []
        return TrackOutcome(
            resolution=resolution,
            user_id=actor.id,
            location_name=location_name,
            presence=presence,
            events=events,
        )


def reconciler_for_app(app) -> ScanReconciler:
    """Reconciler wired from application config and the app's publisher."""
    return ScanReconciler(
        publisher=app.extensions["event_publisher"],
        presence_tracker=PresenceTracker(cooldown_seconds=app.config["PRESENCE_COOLDOWN_SECONDS"]),
        clock=app.extensions.get("scan_clock", utcnow),
        retry_attempts=app.config.get("SCAN_RETRY_ATTEMPTS", 3),
        logger=app.logger,
    )
