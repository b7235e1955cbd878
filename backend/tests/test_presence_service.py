from datetime import datetime, timedelta

import pytest

from inbound.models import PresenceState
from inbound.services import presence_service
from inbound.services.presence_service import PresenceTracker


T0 = datetime(2026, 1, 15, 8, 0, 0)


def at(seconds):
    return T0 + timedelta(seconds=seconds)


@pytest.fixture
def tracker():
    return PresenceTracker(cooldown_seconds=60)


def test_first_scan_enters(db_session, tracker):
    result = tracker.track(epc="T3", now=at(0), po_number="P1", item_number="ITEM-A", quantity=4)
    db_session.commit()

    assert result.action == presence_service.ACTION_ENTERED
    assert result.status == "in"
    assert result.changed
    row = db_session.query(PresenceState).one()
    assert row.status == "in"
    assert row.quantity == 4


def test_scan_inside_cooldown_is_suppressed(db_session, tracker):
    """Two scans ten seconds apart: one row, second call is a no-op."""
    tracker.track(epc="T3", now=at(0))
    second = tracker.track(epc="T3", now=at(10))
    db_session.commit()

    assert second.action == presence_service.ACTION_SUPPRESSED
    assert second.status == "in"
    assert not second.changed
    assert db_session.query(PresenceState).count() == 1


def test_scan_after_cooldown_toggles(db_session, tracker):
    """Two scans 61 seconds apart: in, then out."""
    tracker.track(epc="T3", now=at(0))
    second = tracker.track(epc="T3", now=at(61))
    third = tracker.track(epc="T3", now=at(200))
    db_session.commit()

    assert second.action == presence_service.ACTION_TOGGLED
    assert second.status == "out"
    assert third.status == "in"
    statuses = [r.status for r in db_session.query(PresenceState).order_by(PresenceState.id)]
    assert statuses == ["in", "out", "in"]


def test_exact_cooldown_boundary_toggles(db_session, tracker):
    tracker.track(epc="T3", now=at(0))
    result = tracker.track(epc="T3", now=at(60))

    assert result.action == presence_service.ACTION_TOGGLED


def test_out_of_order_scan_is_suppressed(db_session, tracker):
    tracker.track(epc="T3", now=at(120))
    result = tracker.track(epc="T3", now=at(0))

    assert result.action == presence_service.ACTION_SUPPRESSED
    assert db_session.query(PresenceState).count() == 1


def test_repeated_scans_in_window_are_idempotent(db_session, tracker):
    tracker.track(epc="T3", now=at(0))
    for offset in range(1, 59, 7):
        assert not tracker.track(epc="T3", now=at(offset)).changed

    assert tracker.last_state("T3").status == "in"


def test_tags_are_tracked_independently(db_session, tracker):
    tracker.track(epc="T1", now=at(0))
    result = tracker.track(epc="T2", now=at(5))

    assert result.action == presence_service.ACTION_ENTERED


def test_zero_cooldown_toggles_every_scan(db_session):
    tracker = PresenceTracker(cooldown_seconds=0)
    tracker.track(epc="T1", now=at(0))

    assert tracker.track(epc="T1", now=at(0)).status == "out"


def test_negative_cooldown_rejected():
    with pytest.raises(ValueError):
        PresenceTracker(cooldown_seconds=-1)


def test_current_statuses_and_stats(db_session, tracker):
    tracker.track(epc="T1", now=at(0))
    tracker.track(epc="T1", now=at(100))
    tracker.track(epc="T2", now=at(0))
    db_session.commit()

    current = {row.epc: row.status for row in presence_service.current_statuses()}
    assert current == {"T1": "out", "T2": "in"}

    stats = presence_service.presence_stats(now=at(120))
    assert stats == {
        "total_trackers": 3,
        "current_in": 1,
        "current_out": 1,
        "recent_activity": 3,
    }

    assert presence_service.presence_stats(now=at(7200))["recent_activity"] == 0


def test_history_newest_first(db_session, tracker):
    tracker.track(epc="T1", now=at(0))
    tracker.track(epc="T1", now=at(100))
    tracker.track(epc="T2", now=at(0))
    db_session.commit()

    assert [r.status for r in presence_service.history(epc="T1")] == ["out", "in"]
    assert len(presence_service.history(limit=2)) == 2


def test_history_filters_by_location(db_session, tracker):
    tracker.track(epc="T1", now=at(0), location_name="Receiving Dock 1")
    tracker.track(epc="T2", now=at(0), location_name="Staging Area")
    tracker.track(epc="T1", now=at(100), location_name="Staging Area")
    db_session.commit()

    rows = presence_service.history(location_name="Staging Area")

    assert [(r.epc, r.status) for r in rows] == [("T1", "out"), ("T2", "in")]
    assert [r.epc for r in presence_service.history(epc="T1", location_name="Receiving Dock 1")] == ["T1"]
