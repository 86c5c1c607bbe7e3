"""Tests for ReceiptDB storage and status transitions."""

import pytest

from receiptpal.db import ReceiptDB
from receiptpal.models import AnalysisStatus, Receipt, ReceiptItem, StoreInfo, Summary
from receiptpal.parsing import ParsedReceipt


@pytest.fixture
def db(tmp_path):
    receipts = ReceiptDB(db_path=tmp_path / "test.db")
    yield receipts
    receipts.close()


def _receipt(user_id="u1", household_id=None):
    return Receipt(
        user_id=user_id,
        household_id=household_id,
        image_url="/images/receipts/u1/1_r.jpg",
        image_path="receipts/u1/1_r.jpg",
    )


def _parsed():
    return ParsedReceipt(
        store_info=StoreInfo(name="FreshMart", location="Springfield", date="2024-03-15"),
        items=[
            ReceiptItem(name="Milk", category="dairy", total_price=3.5, keywords=["milk"]),
            ReceiptItem(name="Bread", category="bakery", total_price=2.25),
        ],
        summary=Summary(subtotal=5.75, tax=0.46, total=6.21),
        confidence="high",
    )


def test_insert_and_get(db):
    receipt_id = db.insert(_receipt())
    receipt = db.get(receipt_id)

    assert receipt.id == receipt_id
    assert receipt.status == AnalysisStatus.PENDING
    assert receipt.items == []
    assert receipt.store_info.name == ""
    assert receipt.created_at is not None
    assert receipt.added_to_pantry is False


def test_get_missing(db):
    assert db.get(999) is None


def test_transition_is_compare_and_swap(db):
    receipt_id = db.insert(_receipt())

    assert db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)
    assert not db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)
    assert db.get(receipt_id).status == AnalysisStatus.PROCESSING


def test_transition_records_error(db):
    receipt_id = db.insert(_receipt())
    db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)
    db.transition(
        receipt_id, (AnalysisStatus.PROCESSING,), AnalysisStatus.FAILED, error="boom"
    )

    receipt = db.get(receipt_id)
    assert receipt.status == AnalysisStatus.FAILED
    assert receipt.metadata.processing_error == "boom"


def test_complete_writes_everything(db):
    receipt_id = db.insert(_receipt())
    db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)

    assert db.complete(receipt_id, _parsed())

    receipt = db.get(receipt_id)
    assert receipt.status == AnalysisStatus.COMPLETED
    assert receipt.store_info.name == "FreshMart"
    assert receipt.store_info.date == "2024-03-15"
    assert [i.name for i in receipt.items] == ["Milk", "Bread"]
    assert receipt.items[0].keywords == ["milk"]
    assert receipt.summary.total == 6.21
    assert receipt.metadata.confidence == "high"
    assert receipt.metadata.processed_at is not None
    assert receipt.metadata.processing_error is None


def test_complete_requires_processing(db):
    receipt_id = db.insert(_receipt())

    assert not db.complete(receipt_id, _parsed())

    receipt = db.get(receipt_id)
    assert receipt.status == AnalysisStatus.PENDING
    assert receipt.items == []


def test_list_visible_scopes_by_household(db):
    own = db.insert(_receipt("u1"))
    shared = db.insert(_receipt("u2", household_id=5))
    db.insert(_receipt("u2"))
    db.insert(_receipt("u3", household_id=6))

    assert {r.id for r in db.list_visible("u1")} == {own}
    assert {r.id for r in db.list_visible("u1", household_id=5)} == {own, shared}


def test_update_item_name(db):
    receipt_id = db.insert(_receipt())
    db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)
    db.complete(receipt_id, _parsed())

    assert db.update_item_name(receipt_id, 1, "Sourdough")
    assert not db.update_item_name(receipt_id, 9, "Nothing")
    assert db.get(receipt_id).items[1].name == "Sourdough"


def test_update_notes_and_tags(db):
    receipt_id = db.insert(_receipt())
    db.update_notes(receipt_id, "weekly shop", ["weekly"])
    db.update_notes(receipt_id, "weekly shop, paid cash")

    receipt = db.get(receipt_id)
    assert receipt.notes == "weekly shop, paid cash"
    assert receipt.tags == ["weekly"]


def test_get_by_image_path(db):
    receipt_id = db.insert(_receipt())
    assert db.get_by_image_path("receipts/u1/1_r.jpg").id == receipt_id
    assert db.get_by_image_path("receipts/u1/other.jpg") is None


def test_list_visible_keeps_own_receipts_outside_household(db):
    own_id = db.insert(_receipt(household_id=5))
    db.insert(_receipt(user_id="u2", household_id=5))

    assert [r.id for r in db.list_visible("u1")] == [own_id]


def test_delete_cascades_items(db):
    receipt_id = db.insert(_receipt())
    db.transition(receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING)
    db.complete(receipt_id, _parsed())

    db.delete(receipt_id)

    assert db.get(receipt_id) is None
    conn = db._get_conn()
    count = conn.execute("SELECT COUNT(*) AS n FROM receipt_items").fetchone()["n"]
    assert count == 0
