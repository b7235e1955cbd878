from inbound.models import ReceiptLedger
from inbound.services import ledger_service


def _apply(epc, item_number="ITEM-A", quantity=10, po_number="P1"):
    return ledger_service.apply_scan(
        po_number=po_number,
        item_number=item_number,
        epc=epc,
        quantity=quantity,
        lot_no="LOT-1",
        item_description="Widget",
        ordered_quantity=10,
    )


def test_first_scan_creates_ledger_with_one_entry(db_session):
    result = _apply("T1")
    db_session.commit()

    assert result.appended is True
    assert len(result.entries) == 1
    entry = result.entries[0]
    assert entry["epc"] == "T1"
    assert entry["item_number"] == "ITEM-A"
    assert entry["quantity"] == 10
    assert entry["lot_no"] == "LOT-1"
    assert entry["received_at"].endswith("Z")

    ledger = db_session.query(ReceiptLedger).filter_by(po_number="P1").one()
    assert len(ledger.entries) == 1


def test_same_item_and_tag_is_not_appended_twice(db_session):
    _apply("T1")
    second = _apply("T1", quantity=99)
    db_session.commit()

    assert second.appended is False
    assert second.entry["quantity"] == 10
    assert len(ledger_service.get_entries("P1")) == 1


def test_distinct_tags_keep_separate_entries(db_session):
    _apply("T1", quantity=4)
    _apply("T2", quantity=6)
    _apply("T3", item_number="ITEM-B", quantity=5)
    db_session.commit()

    entries = ledger_service.get_entries("P1")
    assert [e["epc"] for e in entries] == ["T1", "T2", "T3"]
    assert ledger_service.received_by_item("P1") == {"ITEM-A": 10, "ITEM-B": 5}
    assert ledger_service.received_quantity("P1", "ITEM-A") == 10


def test_ledger_version_increments_on_append(db_session):
    _apply("T1")
    db_session.commit()
    version = ledger_service.get_ledger("P1").version_id

    _apply("T2")
    db_session.commit()

    assert ledger_service.get_ledger("P1").version_id == version + 1


def test_summary_for_unknown_po_is_empty(db_session):
    summary = ledger_service.ledger_summary("NOPE")

    assert summary["items"] == []
    assert summary["entry_count"] == 0
    assert summary["total_received"] == 0
    assert summary["received_at"] is None


def test_summary_totals(db_session):
    _apply("T1", quantity=4)
    _apply("T2", item_number="ITEM-B", quantity=2)
    db_session.commit()

    summary = ledger_service.ledger_summary("P1")
    assert summary["entry_count"] == 2
    assert summary["received_by_item"] == {"ITEM-A": 4, "ITEM-B": 2}
    assert summary["total_received"] == 6
