"""Receipt analysis trigger.

Runs once for every newly created (or retried) receipt:

    pending → processing → completed | failed | failed_retryable

Extracted fields are only written together with ``completed``; a failure
records the error message and leaves store/items/summary untouched.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import NotFoundError, RateLimitError, ResponseParseError
from .models import AnalysisStatus

if TYPE_CHECKING:
    from .assistant import GroceryAssistant
    from .db import ReceiptDB
    from .storage import BlobStorage

logger = logging.getLogger(__name__)


class ReceiptAnalyzer:
    """Extracts store, items and totals from a receipt image via the AI service."""

    def __init__(
        self,
        receipts: ReceiptDB,
        storage: BlobStorage,
        assistant: GroceryAssistant,
    ) -> None:
        self._receipts = receipts
        self._storage = storage
        self._assistant = assistant

    async def handle_created(self, receipt_id: int) -> AnalysisStatus:
        """Process a pending receipt and return its final status.

        Returns the current status unchanged if the receipt was not pending
        (another worker claimed it, or it was already analysed).
        """
        receipt = self._receipts.get(receipt_id)
        if receipt is None:
            raise NotFoundError(f"Receipt not found: {receipt_id}")

        claimed = self._receipts.transition(
            receipt_id, (AnalysisStatus.PENDING,), AnalysisStatus.PROCESSING
        )
        if not claimed:
            logger.info(
                "Receipt %s is %s, not pending; skipping analysis",
                receipt_id,
                receipt.status.value,
            )
            return receipt.status

        logger.info("Analyzing receipt: %s", receipt_id)
        try:
            image = self._storage.read(receipt.image_path)
            result = await self._assistant.extract_receipt(
                image, mime_type=self._storage.content_type(receipt.image_path)
            )
            if not result.ok:
                raise ResponseParseError(result.error.message)
        except RateLimitError as e:
            logger.warning("Rate limited while analyzing receipt %s", receipt_id)
            return self._fail(receipt_id, AnalysisStatus.FAILED_RETRYABLE, str(e))
        except Exception as e:
            logger.exception("Error analyzing receipt %s", receipt_id)
            return self._fail(receipt_id, AnalysisStatus.FAILED, str(e) or type(e).__name__)

        if not self._receipts.complete(receipt_id, result.value):
            logger.warning("Receipt %s left processing before completion", receipt_id)
            current = self._receipts.get(receipt_id)
            return current.status if current else AnalysisStatus.FAILED

        logger.info(
            "Receipt %s analyzed successfully (%d items)",
            receipt_id,
            len(result.value.items),
        )
        return AnalysisStatus.COMPLETED

    def _fail(self, receipt_id: int, status: AnalysisStatus, message: str) -> AnalysisStatus:
        self._receipts.transition(
            receipt_id, (AnalysisStatus.PROCESSING,), status, error=message
        )
        return status

    async def process_pending(self) -> dict[int, AnalysisStatus]:
        """Analyse every receipt still waiting in ``pending``."""
        results: dict[int, AnalysisStatus] = {}
        for receipt in self._receipts.list_by_status(AnalysisStatus.PENDING):
            results[receipt.id] = await self.handle_created(receipt.id)
        return results
