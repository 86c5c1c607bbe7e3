"""Receipt upload, editing, retry and search."""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from ..aggregation import filter_receipts, sort_receipts
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models import AnalysisStatus, Receipt, validate_receipt
from .users import UserService, is_visible

if TYPE_CHECKING:
    from ..analysis import ReceiptAnalyzer
    from ..db import Database
    from ..storage import BlobStorage
    from .pantry import PantryService

logger = logging.getLogger(__name__)

# Processing is included so a run that died mid-analysis can be restarted.
# complete() only writes while a receipt is processing, so of two overlapping
# runs only the first to finish is stored.
RETRYABLE_STATUSES = (
    AnalysisStatus.PROCESSING,
    AnalysisStatus.COMPLETED,
    AnalysisStatus.FAILED,
    AnalysisStatus.FAILED_RETRYABLE,
)


class ReceiptService:
    def __init__(
        self,
        db: Database,
        storage: BlobStorage,
        analyzer: ReceiptAnalyzer,
        pantry: PantryService,
    ) -> None:
        self._db = db
        self._storage = storage
        self._analyzer = analyzer
        self._pantry = pantry
        self._users = UserService(db)

    async def create_receipt(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        *,
        analyze: bool = True,
    ) -> Receipt:
        """Store the image and insert a pending receipt.

        With ``analyze`` the extraction runs before returning; otherwise the
        caller is expected to schedule :meth:`analyze` itself.
        """
        blob = self._storage.upload_receipt_image(user_id, filename, data, content_type)
        receipt = Receipt(
            user_id=user_id,
            household_id=self._users.household_of(user_id),
            image_url=blob.url,
            image_path=blob.path,
        )
        errors = validate_receipt(receipt)
        if errors:
            self._storage.delete(blob.path)
            raise ValidationError(errors)

        receipt.id = self._db.receipts.insert(receipt)
        logger.info("Created receipt %s for %s", receipt.id, user_id)
        if analyze:
            await self.analyze(receipt.id)
        return self._db.receipts.get(receipt.id)

    async def analyze(self, receipt_id: int) -> AnalysisStatus:
        return await self._analyzer.handle_created(receipt_id)

    def get(self, user_id: str, receipt_id: int) -> Receipt:
        receipt = self._db.receipts.get(receipt_id)
        if receipt is None or not is_visible(receipt, user_id, self._users.household_of(user_id)):
            raise NotFoundError(f"Receipt not found: {receipt_id}")
        return receipt

    def get_by_image_path(self, user_id: str, image_path: str) -> Receipt:
        """Return the receipt owning a stored image, if the user may see it."""
        receipt = self._db.receipts.get_by_image_path(image_path)
        if receipt is None or not is_visible(receipt, user_id, self._users.household_of(user_id)):
            raise NotFoundError("Image not found")
        return receipt

    def list_for_user(self, user_id: str, sort_by: str = "date-desc") -> list[Receipt]:
        receipts = self._db.receipts.list_visible(user_id, self._users.household_of(user_id))
        return sort_receipts(receipts, sort_by)

    def search_receipts(
        self,
        user_id: str,
        *,
        store_name: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        min_amount: float | None = None,
        max_amount: float | None = None,
        sort_by: str = "date-desc",
    ) -> list[Receipt]:
        receipts = filter_receipts(
            self._db.receipts.list_visible(user_id, self._users.household_of(user_id)),
            store_name=store_name,
            start_date=start_date,
            end_date=end_date,
            min_amount=min_amount,
            max_amount=max_amount,
        )
        return sort_receipts(receipts, sort_by)

    def update_item_name(
        self, user_id: str, receipt_id: int, position: int, name: str
    ) -> Receipt:
        receipt = self.get(user_id, receipt_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Item name is required")
        if not self._db.receipts.update_item_name(receipt.id, position, name):
            raise NotFoundError(f"Receipt {receipt_id} has no item {position}")
        return self._db.receipts.get(receipt.id)

    def update_notes(
        self, user_id: str, receipt_id: int, notes: str, tags: list[str] | None = None
    ) -> Receipt:
        receipt = self.get(user_id, receipt_id)
        self._db.receipts.update_notes(receipt.id, notes or "", tags)
        return self._db.receipts.get(receipt.id)

    def delete_receipt(self, user_id: str, receipt_id: int) -> None:
        """Delete the receipt record and its stored image."""
        receipt = self.get(user_id, receipt_id)
        self._db.receipts.delete(receipt.id)
        if not self._storage.delete(receipt.image_path):
            logger.warning("Image for receipt %s was already gone: %s", receipt.id, receipt.image_path)

    async def retry_analysis(
        self, user_id: str, receipt_id: int, *, analyze: bool = True
    ) -> Receipt:
        """Reset the receipt to ``pending`` in place and analyse it again.

        The receipt keeps its ID, so pantry rows and links that reference it
        stay valid.

        Raises:
            InvalidTransitionError: If the receipt is already pending.
        """
        receipt = self.get(user_id, receipt_id)
        if not self._db.receipts.transition(
            receipt.id, RETRYABLE_STATUSES, AnalysisStatus.PENDING
        ):
            raise InvalidTransitionError(
                f"Receipt {receipt_id} is already waiting for analysis"
            )
        logger.info("Retrying analysis for receipt %s", receipt.id)
        if analyze:
            await self.analyze(receipt.id)
        return self._db.receipts.get(receipt.id)

    def add_to_pantry(self, user_id: str, receipt_id: int) -> int:
        """Copy a completed receipt's items into the pantry (at most once)."""
        return self._pantry.add_from_receipt(self.get(user_id, receipt_id))
