# Overview: Presence tracker; per-tag in/out state machine with a hysteresis window.

"""
Presence Tracker

WHY: A tag parked next to a reader is read many times per second. The
hysteresis window collapses a burst into one logical event, and a read after
the window has elapsed is taken to mean the tag crossed the boundary again.

STATE MACHINE (per epc):
- no history           -> "in"   (entered, new row)
- last seen < cooldown -> no-op  (suppressed, no row)
- last seen >= cooldown -> flip  (toggled, new row: in -> out, out -> in)

IDENTITY: a tag is identified by its code alone. The purchase order, item and
actor are recorded on each row but do not split the state.

CONCURRENCY: reading the last row and appending the next one happen under a
transaction-scoped lock on "presence:<epc>", so two late scans of the same
tag produce one toggle, not two.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import PresenceState
from ..models.presence import PRESENCE_IN, PRESENCE_OUT
from .concurrency import acquire_scope_lock
from inbound.time_utils import utcnow, seconds_between


DEFAULT_COOLDOWN_SECONDS = 60

ACTION_ENTERED = "entered"
ACTION_TOGGLED = "toggled"
ACTION_SUPPRESSED = "suppressed"


def presence_lock_key(epc: str) -> str:
    return f"presence:{epc}"


def opposite_status(status: str) -> str:
    return PRESENCE_OUT if status == PRESENCE_IN else PRESENCE_IN


@dataclass(frozen=True)
class PresenceResult:
    """
    Outcome of one presence decision.

    record is the row written by this scan, or the authoritative prior row
    when the scan was suppressed.
    """
    action: str
    status: str
    record: PresenceState

    @property
    def changed(self) -> bool:
        return self.action != ACTION_SUPPRESSED


class PresenceTracker:
    def __init__(self, cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS):
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        self.cooldown_seconds = cooldown_seconds

    def last_state(self, epc: str) -> PresenceState | None:
        return (
            db.session.query(PresenceState)
            .filter(PresenceState.epc == epc)
            .order_by(PresenceState.id.desc())
            .first()
        )

    def track(
        self,
        *,
        epc: str,
        now: datetime | None = None,
        po_number: str | None = None,
        item_number: str | None = None,
        user_id: int | None = None,
        quantity: int = 0,
        location_name: str | None = None,
    ) -> PresenceResult:
        """
        Apply one scan to the tag's presence state.

        Runs inside the caller's transaction; nothing is committed here.
        """
        acquire_scope_lock(presence_lock_key(epc))

        now = now or utcnow()
        last = self.last_state(epc)

        if last is None:
            action, status = ACTION_ENTERED, PRESENCE_IN
        else:
            # Out-of-order reads (negative elapsed) are treated as noise too
            if seconds_between(last.seen_at, now) < self.cooldown_seconds:
                return PresenceResult(action=ACTION_SUPPRESSED, status=last.status, record=last)
            action, status = ACTION_TOGGLED, opposite_status(last.status)

        row = PresenceState(
            epc=epc,
            status=status,
            seen_at=now,
            po_number=po_number,
            item_number=item_number,
            user_id=user_id,
            quantity=quantity or 0,
            location_name=location_name,
        )
        db.session.add(row)
        db.session.flush()

        return PresenceResult(action=action, status=status, record=row)


def _latest_ids_subquery():
    return (
        db.session.query(func.max(PresenceState.id).label("id"))
        .group_by(PresenceState.epc)
        .subquery()
    )


def current_statuses() -> list[PresenceState]:
    """Authoritative (latest) row for every tag ever seen."""
    latest = _latest_ids_subquery()
    return (
        db.session.query(PresenceState)
        .join(latest, PresenceState.id == latest.c.id)
        .order_by(PresenceState.epc)
        .all()
    )


def presence_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    latest = _latest_ids_subquery()

    total = db.session.query(func.count(PresenceState.id)).scalar() or 0
    by_status = dict(
        db.session.query(PresenceState.status, func.count(PresenceState.id))
        .join(latest, PresenceState.id == latest.c.id)
        .group_by(PresenceState.status)
        .all()
    )
    recent = (
        db.session.query(func.count(PresenceState.id))
        .filter(PresenceState.seen_at >= now - timedelta(hours=1))
        .scalar()
        or 0
    )

    return {
        "total_trackers": total,
        "current_in": by_status.get(PRESENCE_IN, 0),
        "current_out": by_status.get(PRESENCE_OUT, 0),
        "recent_activity": recent,
    }


def history(*, epc: str | None = None, location_name: str | None = None, limit: int = 100) -> list[PresenceState]:
    query = db.session.query(PresenceState)
    if epc:
        query = query.filter(PresenceState.epc == epc)
    if location_name:
        query = query.filter(PresenceState.location_name == location_name)
    return query.order_by(PresenceState.id.desc()).limit(limit).all()
