"""Tests for ReceiptService upload, editing, search and deletion."""

from datetime import date

import pytest
from fakes import PNG_BYTES, RECEIPT_RESPONSE

from receiptpal.errors import NotFoundError, ValidationError
from receiptpal.models import AnalysisStatus


@pytest.mark.asyncio
async def test_create_receipt_stores_image_and_analyses(services, backend, storage):
    backend.responses = [RECEIPT_RESPONSE]

    receipt = await services.receipts.create_receipt("u1", "my receipt.png", PNG_BYTES, "image/png")

    assert receipt.id is not None
    assert receipt.status == AnalysisStatus.COMPLETED
    assert receipt.image_path.startswith("receipts/u1/")
    assert receipt.image_path.endswith("_my_receipt.png")
    assert receipt.image_url == f"/images/{receipt.image_path}"
    assert storage.read(receipt.image_path) == PNG_BYTES


@pytest.mark.asyncio
async def test_create_receipt_without_analysis_is_pending(services, backend):
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    assert receipt.status == AnalysisStatus.PENDING
    assert backend.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data, content_type, message",
    [
        (b"", "image/png", "No file provided"),
        (PNG_BYTES, "application/pdf", "Invalid file type"),
    ],
)
async def test_create_receipt_rejects_bad_upload(services, data, content_type, message):
    with pytest.raises(ValidationError, match=message):
        await services.receipts.create_receipt("u1", "r.png", data, content_type)
    assert services.receipts.list_for_user("u1") == []


@pytest.mark.asyncio
async def test_receipt_joins_current_household(services):
    household = services.households.create_household("u1", "Home")
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    assert receipt.household_id == household.id


@pytest.mark.asyncio
async def test_visibility_follows_household(services):
    own = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    with pytest.raises(NotFoundError):
        services.receipts.get("u2", own.id)

    household = services.households.create_household("u1", "Home")
    shared = await services.receipts.create_receipt(
        "u1", "r2.png", PNG_BYTES, "image/png", analyze=False
    )
    services.households.join_household("u2", household.invite_code)

    assert services.receipts.get("u2", shared.id).id == shared.id
    assert [r.id for r in services.receipts.list_for_user("u2")] == [shared.id]
    with pytest.raises(NotFoundError):
        services.receipts.get("u2", own.id)


@pytest.mark.asyncio
async def test_owner_keeps_receipts_after_leaving_household(services, storage):
    services.households.create_household("u1", "Home")
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    assert receipt.household_id is not None

    services.households.leave_household("u1")

    assert [r.id for r in services.receipts.list_for_user("u1")] == [receipt.id]
    assert services.receipts.get("u1", receipt.id).id == receipt.id
    services.receipts.delete_receipt("u1", receipt.id)
    assert services.receipts.list_for_user("u1") == []
    with pytest.raises(NotFoundError):
        storage.read(receipt.image_path)


@pytest.mark.asyncio
async def test_former_member_loses_shared_receipts(services):
    household = services.households.create_household("u1", "Home")
    services.households.join_household("u2", household.invite_code)
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    assert services.receipts.get("u2", receipt.id).id == receipt.id

    services.households.leave_household("u2")

    assert services.receipts.list_for_user("u2") == []
    with pytest.raises(NotFoundError):
        services.receipts.get("u2", receipt.id)


@pytest.mark.asyncio
async def test_get_by_image_path_checks_visibility(services):
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )

    assert services.receipts.get_by_image_path("u1", receipt.image_path).id == receipt.id
    with pytest.raises(NotFoundError, match="Image not found"):
        services.receipts.get_by_image_path("u2", receipt.image_path)
    with pytest.raises(NotFoundError):
        services.receipts.get_by_image_path("u1", "receipts/u1/missing.png")


@pytest.mark.asyncio
async def test_update_item_name(services, backend):
    backend.responses = [RECEIPT_RESPONSE]
    receipt = await services.receipts.create_receipt("u1", "r.png", PNG_BYTES, "image/png")

    updated = services.receipts.update_item_name("u1", receipt.id, 0, "Oat Milk")

    assert updated.items[0].name == "Oat Milk"
    with pytest.raises(NotFoundError):
        services.receipts.update_item_name("u1", receipt.id, 5, "Nothing")
    with pytest.raises(ValidationError):
        services.receipts.update_item_name("u1", receipt.id, 0, "  ")


@pytest.mark.asyncio
async def test_update_notes(services):
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    updated = services.receipts.update_notes("u1", receipt.id, "party", ["birthday"])
    assert updated.notes == "party"
    assert updated.tags == ["birthday"]


@pytest.mark.asyncio
async def test_delete_removes_blob(services, storage):
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )

    services.receipts.delete_receipt("u1", receipt.id)

    with pytest.raises(NotFoundError):
        services.receipts.get("u1", receipt.id)
    with pytest.raises(NotFoundError):
        storage.read(receipt.image_path)


@pytest.mark.asyncio
async def test_delete_with_missing_blob_still_deletes_record(services, storage):
    receipt = await services.receipts.create_receipt(
        "u1", "r.png", PNG_BYTES, "image/png", analyze=False
    )
    storage.delete(receipt.image_path)

    services.receipts.delete_receipt("u1", receipt.id)

    assert services.receipts.list_for_user("u1") == []


@pytest.mark.asyncio
async def test_search_receipts(services, backend):
    backend.responses = [RECEIPT_RESPONSE]
    analysed = await services.receipts.create_receipt("u1", "r.png", PNG_BYTES, "image/png")
    await services.receipts.create_receipt("u1", "r2.png", PNG_BYTES, "image/png", analyze=False)

    by_store = services.receipts.search_receipts("u1", store_name="fresh")
    assert [r.id for r in by_store] == [analysed.id]

    by_date = services.receipts.search_receipts(
        "u1", start_date=date(2024, 3, 1), end_date=date(2024, 3, 31)
    )
    assert [r.id for r in by_date] == [analysed.id]

    by_amount = services.receipts.search_receipts("u1", min_amount=5.0, max_amount=6.0)
    assert [r.id for r in by_amount] == [analysed.id]


@pytest.mark.asyncio
async def test_add_to_pantry_via_receipt(services, backend):
    backend.responses = [RECEIPT_RESPONSE]
    receipt = await services.receipts.create_receipt("u1", "r.png", PNG_BYTES, "image/png")

    assert services.receipts.add_to_pantry("u1", receipt.id) == 2
    assert services.receipts.get("u1", receipt.id).added_to_pantry is True
