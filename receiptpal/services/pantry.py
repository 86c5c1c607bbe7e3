"""Pantry inventory: manual entries, photo detection and receipt transfer."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..aggregation import group_by_category
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models import SHOPPING_CATEGORIES, AnalysisStatus, PantryItem, Receipt
from .users import UserService, is_visible

if TYPE_CHECKING:
    from ..assistant import GroceryAssistant
    from ..db import Database

logger = logging.getLogger(__name__)


class PantryService:
    def __init__(self, db: Database, assistant: GroceryAssistant) -> None:
        self._db = db
        self._assistant = assistant
        self._users = UserService(db)

    def _get_visible(self, user_id: str, item_id: int) -> PantryItem:
        item = self._db.pantry.get(item_id)
        if item is None or not is_visible(item, user_id, self._users.household_of(user_id)):
            raise NotFoundError(f"Pantry item not found: {item_id}")
        return item

    def list_items(self, user_id: str) -> list[PantryItem]:
        return self._db.pantry.list_visible(user_id, self._users.household_of(user_id))

    def grouped(self, user_id: str) -> dict[str, list[PantryItem]]:
        """Visible items grouped by shopping category in display order."""
        return group_by_category(self.list_items(user_id), SHOPPING_CATEGORIES)

    async def add_manual(self, user_id: str, name: str) -> PantryItem:
        """Add one item by name, categorized by the AI."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter an item name")
        category = await self._assistant.categorize_item(name)
        item = PantryItem(
            user_id=user_id,
            household_id=self._users.household_of(user_id),
            name=name.lower(),
            category=category,
            source="manual",
        )
        [item.id] = self._db.pantry.add_items([item])
        return item

    async def add_from_photo(
        self, user_id: str, image_bytes: bytes, mime_type: str = "image/jpeg"
    ) -> list[PantryItem]:
        """Detect ingredients in a pantry photo and add each one."""
        names = await self._assistant.analyze_pantry_photo(image_bytes, mime_type)
        household_id = self._users.household_of(user_id)
        items = [
            PantryItem(
                user_id=user_id,
                household_id=household_id,
                name=name.lower(),
                source="photo",
            )
            for name in names
            if name
        ]
        for item, item_id in zip(items, self._db.pantry.add_items(items)):
            item.id = item_id
        logger.info("Added %d items from pantry photo for %s", len(items), user_id)
        return items

    def add_from_receipt(self, receipt: Receipt) -> int:
        """Copy a completed receipt's items into the pantry, once.

        The ``added_to_pantry`` flag is set in the same transaction as the
        inserts, so concurrent or repeated calls add nothing and a failed
        insert leaves the receipt untransferred. The (receipt, name) unique
        index also rejects duplicate names within a receipt.

        Returns:
            Number of pantry items inserted.
        """
        if receipt.status != AnalysisStatus.COMPLETED:
            raise InvalidTransitionError(
                f"Receipt {receipt.id} is {receipt.status.value}, not completed"
            )

        items = [
            PantryItem(
                user_id=receipt.user_id,
                household_id=receipt.household_id,
                name=item.name.lower(),
                category=item.category or None,
                source="receipt",
                receipt_id=receipt.id,
                store_name=receipt.store_info.name or "Unknown Store",
            )
            for item in receipt.items
            if item.name
        ]
        added = self._db.pantry.add_receipt_items(receipt.id, items)
        if added is None:
            logger.debug("Receipt %s already transferred to pantry", receipt.id)
            return 0
        logger.info("Added %d items from receipt %s to pantry", len(added), receipt.id)
        return len(added)

    async def rename_item(self, user_id: str, item_id: int, name: str) -> PantryItem:
        """Rename an item and re-categorize it under the new name."""
        item = self._get_visible(user_id, item_id)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter an item name")
        category = await self._assistant.categorize_item(name)
        self._db.pantry.update(item.id, name=name.lower(), category=category)
        return self._db.pantry.get(item.id)

    def delete_item(self, user_id: str, item_id: int) -> None:
        item = self._get_visible(user_id, item_id)
        self._db.pantry.delete_item(item.id)

    async def recategorize(self, user_id: str) -> dict[str, int]:
        """Retry categorization for uncategorized and 'other' items.

        Items are sent one at a time. An item counts as updated only when
        the AI picks a category other than 'other'.
        """
        pending = [
            item for item in self.list_items(user_id)
            if not item.category or item.category == "other"
        ]
        updated = 0
        for item in pending:
            category = await self._assistant.categorize_item(item.name)
            if category != "other":
                self._db.pantry.update(item.id, category=category)
                updated += 1
        logger.info(
            "Recategorized %d of %d pantry items for %s", updated, len(pending), user_id
        )
        return {"updated": updated, "unchanged": len(pending) - updated}
