"""
End-to-end reconciliation through ScanReconciler against SQLite.

Scenarios:
- A: single tag covers a single-line PO
- B: two tags for the same item add up to the ordered quantity
- C: rescanning a tag from B changes nothing
- D: second scan inside the cooldown is suppressed
- E: second scan after the cooldown toggles presence
"""

import pytest

from inbound.models import IdempotencyRecord, PresenceState, PurchaseOrder, ReceiptLedger
from inbound.services.broadcast_service import CHANNEL_PRESENCE, CHANNEL_RECEIPT, CHANNEL_STATUS, NullPublisher
from inbound.services.presence_service import PresenceTracker
from inbound.services.scan_service import ScanReconciler
from inbound.validation import NotFoundError, ScanRequest


def scan(epc, value="receiver", device_id=None):
    return ScanRequest(epc=epc, value=value, device_id=device_id)


def _row_counts(db_session):
    return (
        db_session.query(IdempotencyRecord).count(),
        db_session.query(ReceiptLedger).count(),
        db_session.query(PresenceState).count(),
    )


def test_scenario_a_single_tag_receives_single_line_po(reconciler, publisher, receiver, po_single_line, tag, db_session):
    tag("T1", "P1", "ITEM-A", 10)

    outcome = reconciler.process_scan(scan("T1"))

    assert outcome.ledger_appended
    assert not outcome.duplicate
    assert len(outcome.ledger_entries) == 1
    assert outcome.received_quantity == 10
    assert outcome.presence.status == "in"
    assert outcome.status.status == "received"
    assert publisher.channels() == [CHANNEL_RECEIPT, CHANNEL_PRESENCE, CHANNEL_STATUS]

    receipt = publisher.events[0][1]
    assert receipt["epc"] == "T1"
    assert receipt["received_quantity"] == 10
    assert receipt["remaining_quantity"] == 0
    assert receipt["location_name"] == "Receiving Dock 1"
    assert receipt["location_status"] == "in"

    status = publisher.events[2][1]
    assert status["old_status"] == "pending"
    assert status["new_status"] == "received"

    po = db_session.query(PurchaseOrder).filter_by(po_number="P1").one()
    assert po.status == "received"
    assert po.received_at is not None


def test_scenario_b_two_tags_sum_to_received(reconciler, receiver, po_single_line, tag):
    tag("T1", "P1", "ITEM-A", 6)
    tag("T2", "P1", "ITEM-A", 4)

    first = reconciler.process_scan(scan("T1"))
    second = reconciler.process_scan(scan("T2"))

    assert first.status.status == "partial"
    assert [(e["epc"], e["quantity"]) for e in second.ledger_entries] == [("T1", 6), ("T2", 4)]
    assert second.received_quantity == 10
    assert second.status.status == "received"


def test_scenario_c_rescan_changes_nothing(reconciler, publisher, receiver, po_single_line, tag, db_session):
    tag("T1", "P1", "ITEM-A", 6)
    tag("T2", "P1", "ITEM-A", 4)

    reconciler.process_scan(scan("T1"))
    reconciler.process_scan(scan("T2"))
    publisher.clear()
    second = reconciler.process_scan(scan("T1"))

    assert second.duplicate
    assert len(second.ledger_entries) == 2
    assert second.received_quantity == 10
    assert second.presence.action == "suppressed"
    assert not second.status.changed
    assert publisher.events == []
    assert _row_counts(db_session) == (2, 1, 2)


def test_two_line_po_partial_then_received(reconciler, publisher, receiver, po_two_lines, tag, db_session):
    tag("T1", "P2", "ITEM-A", 10)
    tag("T2", "P2", "ITEM-B", 5)

    first = reconciler.process_scan(scan("T1"))
    assert first.status.status == "partial"
    assert first.status.previous_status == "pending"

    second = reconciler.process_scan(scan("T2"))
    assert second.status.status == "received"
    assert second.status.previous_status == "partial"

    status_events = [payload for channel, payload in publisher.events if channel == CHANNEL_STATUS]
    assert [(e["old_status"], e["new_status"]) for e in status_events] == [
        ("pending", "partial"),
        ("partial", "received"),
    ]


def test_scenario_d_scan_inside_cooldown_is_suppressed(reconciler, publisher, clock, receiver, po_single_line, tag, db_session):
    tag("T3", "P1", "ITEM-A", 1)

    reconciler.process_scan(scan("T3"))
    publisher.clear()
    clock.advance(10)
    second = reconciler.process_scan(scan("T3"))

    assert second.presence.action == "suppressed"
    assert second.presence.status == "in"
    assert db_session.query(PresenceState).count() == 1
    assert publisher.events == []


def test_scenario_e_scan_after_cooldown_toggles(reconciler, publisher, clock, receiver, po_single_line, tag, db_session):
    tag("T3", "P1", "ITEM-A", 1)

    reconciler.process_scan(scan("T3"))
    publisher.clear()
    clock.advance(65)
    second = reconciler.process_scan(scan("T3"))

    assert second.duplicate
    assert second.presence.action == "toggled"
    assert second.presence.status == "out"
    assert publisher.channels() == [CHANNEL_PRESENCE]
    assert publisher.events[0][1]["activity_text"] == "EPC T3 checked out at Receiving Dock 1"

    statuses = [r.status for r in db_session.query(PresenceState).order_by(PresenceState.id)]
    assert statuses == ["in", "out"]


def test_unknown_code_leaves_no_rows(reconciler, publisher, receiver, po_single_line, db_session):
    with pytest.raises(NotFoundError):
        reconciler.process_scan(scan("NOPE"))

    assert _row_counts(db_session) == (0, 0, 0)
    assert publisher.events == []


def test_unknown_actor_leaves_no_rows(reconciler, publisher, po_single_line, tag, db_session):
    tag("T1", "P1", "ITEM-A", 10)

    with pytest.raises(NotFoundError):
        reconciler.process_scan(scan("T1", value="nobody"))

    assert _row_counts(db_session) == (0, 0, 0)


def test_tag_for_unknown_po_leaves_no_rows(reconciler, receiver, items, tag, db_session):
    tag("T1", "MISSING-PO", "ITEM-A", 10)

    with pytest.raises(NotFoundError):
        reconciler.process_scan(scan("T1"))

    assert _row_counts(db_session) == (0, 0, 0)


def test_tag_for_unknown_item_leaves_no_rows(reconciler, receiver, po_single_line, tag, db_session):
    tag("T1", "P1", "ITEM-ZZZ", 10)

    with pytest.raises(NotFoundError):
        reconciler.process_scan(scan("T1"))

    assert _row_counts(db_session) == (0, 0, 0)


def test_actor_resolved_by_numeric_id(reconciler, receiver, po_single_line, tag):
    tag("T1", "P1", "ITEM-A", 10)

    outcome = reconciler.process_scan(scan("T1", value=str(receiver.id)))

    assert outcome.user_id == receiver.id


def test_reader_location_overrides_actor_location(reconciler, receiver, staging, po_single_line, tag):
    tag("T1", "P1", "ITEM-A", 10)

    outcome = reconciler.process_scan(scan("T1", device_id="READER-02"))

    assert outcome.location_name == "Staging Area"
    assert outcome.presence.record["location_name"] == "Staging Area"


def test_publisher_failure_does_not_roll_back(app, db_session, clock, failing_publisher, receiver, po_single_line, tag):
    from inbound.services.scan_service import reconciler_for_app

    tag("T1", "P1", "ITEM-A", 10)

    outcome = reconciler_for_app(app).process_scan(scan("T1"))

    assert outcome.ledger_appended
    assert failing_publisher.calls == 3
    assert _row_counts(db_session) == (1, 1, 1)
    assert db_session.query(PurchaseOrder).filter_by(po_number="P1").one().status == "received"


def test_scan_against_received_po_keeps_status_frozen(reconciler, publisher, receiver, po_single_line, tag, db_session):
    tag("T1", "P1", "ITEM-A", 10)
    tag("T2", "P1", "ITEM-A", 2)

    reconciler.process_scan(scan("T1"))
    publisher.clear()
    extra = reconciler.process_scan(scan("T2"))

    assert extra.ledger_appended
    assert extra.received_quantity == 12
    assert extra.status.status == "received"
    assert not extra.status.changed
    assert CHANNEL_STATUS not in publisher.channels()


def test_track_presence_obeys_cooldown(reconciler, publisher, clock, receiver, tag, db_session):
    tag("T9", "P1", "ITEM-A", 1)

    first = reconciler.track_presence(scan("T9"))
    clock.advance(30)
    second = reconciler.track_presence(scan("T9"))
    clock.advance(31)
    third = reconciler.track_presence(scan("T9"))

    assert first.presence.action == "entered"
    assert second.presence.action == "suppressed"
    assert third.presence.status == "out"
    assert publisher.channels() == [CHANNEL_PRESENCE, CHANNEL_PRESENCE]
    # presence-only scans never touch receiving
    assert db_session.query(IdempotencyRecord).count() == 0
    assert db_session.query(ReceiptLedger).count() == 0


def test_custom_cooldown(db_session, clock, receiver, po_single_line, tag):
    tag("T1", "P1", "ITEM-A", 1)
    reconciler = ScanReconciler(
        publisher=NullPublisher(),
        presence_tracker=PresenceTracker(cooldown_seconds=5),
        clock=clock,
    )

    reconciler.process_scan(scan("T1"))
    clock.advance(5)

    assert reconciler.process_scan(scan("T1")).presence.status == "out"


def test_status_committed_while_waiting_on_po_lock_is_respected(monkeypatch, reconciler, publisher, receiver, po_single_line, tag, db_session):
    from sqlalchemy import text

    from inbound.services import scan_service

    tag("T1", "P1", "ITEM-A", 10)
    db_session.query(PurchaseOrder).filter_by(po_number="P1").one()
    real_lock = scan_service.acquire_scope_lock

    def lock_after_cancel(key):
        # another receiver cancels the PO before this scan gets the lock
        db_session.execute(text("UPDATE purchase_orders SET status = 'cancelled' WHERE po_number = 'P1'"))
        real_lock(key)

    monkeypatch.setattr(scan_service, "acquire_scope_lock", lock_after_cancel)

    outcome = reconciler.process_scan(scan("T1"))

    assert outcome.ledger_appended
    assert outcome.status.status == "cancelled"
    assert not outcome.status.changed
    assert CHANNEL_STATUS not in publisher.channels()

    db_session.expire_all()
    po = db_session.query(PurchaseOrder).filter_by(po_number="P1").one()
    assert po.status == "cancelled"
    assert po.received_at is None
