"""Shopping list with price estimates from purchase history."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..aggregation import estimate_price, group_by_category, store_suggestions
from ..errors import NotFoundError, ValidationError
from ..models import SHOPPING_CATEGORIES, ShoppingItem
from .users import UserService, is_visible

if TYPE_CHECKING:
    from ..assistant import GroceryAssistant
    from ..db import Database

logger = logging.getLogger(__name__)


class ShoppingListService:
    def __init__(self, db: Database, assistant: GroceryAssistant | None = None) -> None:
        self._db = db
        self._assistant = assistant
        self._users = UserService(db)

    def _history(self, user_id: str, household_id: int | None):
        return self._db.receipts.list_visible(user_id, household_id)

    def _get_visible(self, user_id: str, item_id: int) -> ShoppingItem:
        item = self._db.shopping.get(item_id)
        if item is None or not is_visible(item, user_id, self._users.household_of(user_id)):
            raise NotFoundError(f"Shopping item not found: {item_id}")
        return item

    def list_items(self, user_id: str) -> list[ShoppingItem]:
        return self._db.shopping.list_visible(user_id, self._users.household_of(user_id))

    def grouped(self, user_id: str) -> dict[str, list[ShoppingItem]]:
        return group_by_category(self.list_items(user_id), SHOPPING_CATEGORIES)

    async def add_item(
        self,
        user_id: str,
        name: str,
        *,
        quantity: str | None = None,
        notes: str | None = None,
        category: str | None = None,
    ) -> ShoppingItem:
        """Add a manual entry.

        The price is estimated from matching items on past receipts. Without
        an explicit category the AI picks one when an assistant is configured.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter an item name")
        household_id = self._users.household_of(user_id)

        history = [i for r in self._history(user_id, household_id) for i in r.items]
        if category is None and self._assistant is not None:
            category = await self._assistant.categorize_item(name)

        item = ShoppingItem(
            user_id=user_id,
            household_id=household_id,
            name=name,
            quantity=quantity,
            notes=notes,
            category=category,
            manual=True,
            estimated_price=estimate_price(name, history),
        )
        [item.id] = self._db.shopping.add_items([item])
        return item

    def add_recipe_ingredients(
        self, user_id: str, recipe_name: str, ingredients: list[str]
    ) -> list[ShoppingItem]:
        """Add the selected ingredients of a recipe, tagged with its name."""
        ingredients = [i.strip() for i in ingredients if i and i.strip()]
        if not ingredients:
            raise ValidationError("Please select ingredients to add to your shopping list")
        household_id = self._users.household_of(user_id)
        history = [i for r in self._history(user_id, household_id) for i in r.items]

        items = [
            ShoppingItem(
                user_id=user_id,
                household_id=household_id,
                name=name,
                from_recipe=recipe_name,
                manual=False,
                estimated_price=estimate_price(name, history),
            )
            for name in ingredients
        ]
        for item, item_id in zip(items, self._db.shopping.add_items(items)):
            item.id = item_id
        logger.info("Added %d ingredients from %r to shopping list", len(items), recipe_name)
        return items

    def toggle_checked(self, user_id: str, item_id: int) -> ShoppingItem:
        item = self._get_visible(user_id, item_id)
        return self.set_checked(user_id, item.id, not item.checked)

    def set_checked(self, user_id: str, item_id: int, checked: bool) -> ShoppingItem:
        item = self._get_visible(user_id, item_id)
        self._db.shopping.set_checked(item.id, checked)
        item.checked = checked
        return item

    def update_item(
        self,
        user_id: str,
        item_id: int,
        *,
        quantity: str | None = None,
        notes: str | None = None,
        category: str | None = None,
    ) -> ShoppingItem:
        item = self._get_visible(user_id, item_id)
        self._db.shopping.update(item.id, quantity=quantity, notes=notes, category=category)
        return self._db.shopping.get(item.id)

    def delete_item(self, user_id: str, item_id: int) -> None:
        item = self._get_visible(user_id, item_id)
        self._db.shopping.delete_item(item.id)

    def clear_checked(self, user_id: str) -> int:
        """Delete all checked items. Returns how many were removed."""
        return self._db.shopping.delete_checked(user_id, self._users.household_of(user_id))

    def store_suggestions(self, user_id: str) -> list[dict]:
        """Stores that previously sold the unchecked items, best match first."""
        household_id = self._users.household_of(user_id)
        wanted = [
            item.name
            for item in self._db.shopping.list_visible(user_id, household_id)
            if not item.checked
        ]
        return store_suggestions(wanted, self._history(user_id, household_id))
