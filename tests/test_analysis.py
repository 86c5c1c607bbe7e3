"""Tests for the receipt analysis trigger and in-place retry."""

import pytest
from fakes import PNG_BYTES, RECEIPT_RESPONSE, FakeBackend

from receiptpal.analysis import ReceiptAnalyzer
from receiptpal.assistant import GroceryAssistant
from receiptpal.errors import (
    RATE_LIMIT_MESSAGE,
    AIConfigurationError,
    AIServiceError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
)
from receiptpal.models import AnalysisStatus, Receipt
from receiptpal.parsing import parse_receipt_response


class RecordingReceiptDB:
    """Wraps a ReceiptDB and records every successful status transition."""

    def __init__(self, inner):
        self._inner = inner
        self.transitions = []

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def transition(self, receipt_id, from_statuses, to_status, *, error=None):
        changed = self._inner.transition(receipt_id, from_statuses, to_status, error=error)
        if changed:
            self.transitions.append(to_status)
        return changed

    def complete(self, receipt_id, parsed):
        changed = self._inner.complete(receipt_id, parsed)
        if changed:
            self.transitions.append(AnalysisStatus.COMPLETED)
        return changed


def _create(database, storage, user_id="u1"):
    blob = storage.upload_receipt_image(user_id, "receipt.png", PNG_BYTES, "image/png")
    receipt_id = database.receipts.insert(
        Receipt(user_id=user_id, image_url=blob.url, image_path=blob.path)
    )
    return receipt_id


def _analyzer(database, storage, backend, receipts=None):
    return ReceiptAnalyzer(receipts or database.receipts, storage, GroceryAssistant(backend))


@pytest.mark.asyncio
async def test_success_goes_pending_processing_completed(database, storage):
    receipt_id = _create(database, storage)
    recording = RecordingReceiptDB(database.receipts)
    backend = FakeBackend([RECEIPT_RESPONSE])

    status = await _analyzer(database, storage, backend, recording).handle_created(receipt_id)

    assert status == AnalysisStatus.COMPLETED
    assert recording.transitions == [AnalysisStatus.PROCESSING, AnalysisStatus.COMPLETED]

    receipt = database.receipts.get(receipt_id)
    assert receipt.status == AnalysisStatus.COMPLETED
    assert receipt.store_info.name == "FreshMart"
    assert [i.name for i in receipt.items] == ["Milk", "Bananas"]
    assert receipt.summary.total == 5.4
    assert receipt.metadata.confidence == "high"
    assert receipt.metadata.processed_at is not None

    assert backend.calls[0]["images"][0].data == PNG_BYTES
    assert backend.calls[0]["images"][0].mime_type == "image/png"


@pytest.mark.asyncio
async def test_second_trigger_is_a_no_op(database, storage):
    receipt_id = _create(database, storage)
    backend = FakeBackend([RECEIPT_RESPONSE])
    analyzer = _analyzer(database, storage, backend)

    await analyzer.handle_created(receipt_id)
    status = await analyzer.handle_created(receipt_id)

    assert status == AnalysisStatus.COMPLETED
    assert len(backend.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, message",
    [
        (AIConfigurationError("GEMINI_API_KEY not configured."), "GEMINI_API_KEY not configured."),
        (AIServiceError("Gemini API error: 500"), "Gemini API error: 500"),
        ("this is not json", "Failed to parse"),
    ],
)
async def test_failure_marks_failed_and_keeps_fields(database, storage, error, message):
    receipt_id = _create(database, storage)
    backend = FakeBackend([error])

    status = await _analyzer(database, storage, backend).handle_created(receipt_id)

    assert status == AnalysisStatus.FAILED
    receipt = database.receipts.get(receipt_id)
    assert receipt.status == AnalysisStatus.FAILED
    assert message in receipt.metadata.processing_error
    assert receipt.items == []
    assert receipt.store_info.name == ""
    assert receipt.summary.total == 0


@pytest.mark.asyncio
async def test_rate_limit_is_retryable(database, storage):
    receipt_id = _create(database, storage)
    backend = FakeBackend([RateLimitError()])

    status = await _analyzer(database, storage, backend).handle_created(receipt_id)

    assert status == AnalysisStatus.FAILED_RETRYABLE
    receipt = database.receipts.get(receipt_id)
    assert receipt.metadata.processing_error == RATE_LIMIT_MESSAGE


@pytest.mark.asyncio
async def test_missing_image_fails(database, storage):
    receipt_id = database.receipts.insert(
        Receipt(user_id="u1", image_url="/images/x", image_path="receipts/u1/missing.png")
    )
    backend = FakeBackend([RECEIPT_RESPONSE])

    status = await _analyzer(database, storage, backend).handle_created(receipt_id)

    assert status == AnalysisStatus.FAILED
    assert "Image not found" in database.receipts.get(receipt_id).metadata.processing_error
    assert backend.calls == []


@pytest.mark.asyncio
async def test_unknown_receipt(database, storage):
    with pytest.raises(NotFoundError):
        await _analyzer(database, storage, FakeBackend()).handle_created(12345)


@pytest.mark.asyncio
async def test_process_pending(database, storage):
    first = _create(database, storage)
    second = _create(database, storage)
    backend = FakeBackend([RECEIPT_RESPONSE, RateLimitError()])

    results = await _analyzer(database, storage, backend).process_pending()

    assert results == {
        first: AnalysisStatus.COMPLETED,
        second: AnalysisStatus.FAILED_RETRYABLE,
    }


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_keeps_receipt_id(self, services, backend):
        backend.responses = [AIServiceError("Gemini API error: 503"), RECEIPT_RESPONSE]
        receipt = await services.receipts.create_receipt("u1", "r.png", PNG_BYTES, "image/png")
        assert receipt.status == AnalysisStatus.FAILED

        retried = await services.receipts.retry_analysis("u1", receipt.id)

        assert retried.id == receipt.id
        assert retried.status == AnalysisStatus.COMPLETED
        assert retried.metadata.processing_error is None
        assert len(services.receipts.list_for_user("u1")) == 1

    @pytest.mark.asyncio
    async def test_retry_without_analysis_resets_to_pending(self, services, backend):
        backend.responses = [RateLimitError()]
        receipt = await services.receipts.create_receipt("u1", "r.png", PNG_BYTES, "image/png")
        assert receipt.status == AnalysisStatus.FAILED_RETRYABLE

        retried = await services.receipts.retry_analysis("u1", receipt.id, analyze=False)

        assert retried.status == AnalysisStatus.PENDING
        assert retried.metadata.processing_error is None

    @pytest.mark.asyncio
    async def test_retry_while_processing_discards_stale_run(
        self, services, backend, database
    ):
        receipt = await services.receipts.create_receipt(
            "u1", "r.png", PNG_BYTES, "image/png", analyze=False
        )
        assert database.receipts.transition(
            receipt.id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING
        )
        stale = parse_receipt_response(RECEIPT_RESPONSE).value

        retried = await services.receipts.retry_analysis("u1", receipt.id, analyze=False)
        assert retried.status == AnalysisStatus.PENDING
        assert database.receipts.complete(receipt.id, stale) is False
        assert database.receipts.get(receipt.id).items == []

        backend.responses = [RECEIPT_RESPONSE]
        assert await services.receipts.analyze(receipt.id) == AnalysisStatus.COMPLETED
        assert database.receipts.complete(receipt.id, stale) is False
        assert len(database.receipts.get(receipt.id).items) == 2

    @pytest.mark.asyncio
    async def test_retry_pending_is_rejected(self, services):
        receipt = await services.receipts.create_receipt(
            "u1", "r.png", PNG_BYTES, "image/png", analyze=False
        )
        with pytest.raises(InvalidTransitionError):
            await services.receipts.retry_analysis("u1", receipt.id)

    @pytest.mark.asyncio
    async def test_retry_other_users_receipt(self, services):
        receipt = await services.receipts.create_receipt(
            "u1", "r.png", PNG_BYTES, "image/png", analyze=False
        )
        with pytest.raises(NotFoundError):
            await services.receipts.retry_analysis("u2", receipt.id)
