"""Recipe suggestions, recipe import and saved recipes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..aggregation import names_match
from ..errors import NotFoundError, ValidationError
from ..models import Recipe, RecipeSuggestion
from .users import UserService

if TYPE_CHECKING:
    from ..assistant import GroceryAssistant
    from ..db import Database

logger = logging.getLogger(__name__)

# Staples most kitchens already have; listed after everything else
BASIC_INGREDIENTS = (
    "water", "salt", "pepper", "black pepper", "white pepper",
    "olive oil", "vegetable oil", "cooking oil", "oil",
    "butter", "sugar", "flour", "all-purpose flour",
    "baking powder", "baking soda", "vanilla extract",
    "garlic powder", "onion powder", "paprika",
)


def sort_by_priority(ingredients: list[str]) -> list[str]:
    """Move basic staples to the end, keeping relative order otherwise."""
    priority, basic = [], []
    for ingredient in ingredients:
        if any(names_match(ingredient, b) for b in BASIC_INGREDIENTS):
            basic.append(ingredient)
        else:
            priority.append(ingredient)
    return priority + basic


def match_ingredients(
    ingredients: list[str], available: list[str]
) -> tuple[list[str], list[str]]:
    """Split recipe ingredients into (matched, missing) against what the user has."""
    matched, missing = [], []
    for ingredient in ingredients:
        if any(names_match(ingredient, have) for have in available):
            matched.append(ingredient)
        else:
            missing.append(ingredient)
    return matched, missing


class RecipeService:
    def __init__(self, db: Database, assistant: GroceryAssistant) -> None:
        self._db = db
        self._assistant = assistant
        self._users = UserService(db)

    def known_ingredients(self, user_id: str) -> list[str]:
        """Sorted, lower-cased item names from receipts plus pantry names."""
        household_id = self._users.household_of(user_id)
        names = {
            item.name.lower()
            for receipt in self._db.receipts.list_visible(user_id, household_id)
            for item in receipt.items
            if item.name
        }
        names.update(
            p.name.lower()
            for p in self._db.pantry.list_visible(user_id, household_id)
            if p.name
        )
        return sorted(names)

    async def suggest(
        self,
        user_id: str,
        ingredients: list[str] | None = None,
        include_partial_matches: bool = True,
    ) -> list[RecipeSuggestion]:
        if ingredients is None:
            ingredients = self.known_ingredients(user_id)
        if not ingredients:
            raise ValidationError("No ingredients available. Upload receipts or add pantry items.")
        suggestions = await self._assistant.generate_recipes(
            ingredients, include_partial_matches=include_partial_matches
        )
        for suggestion in suggestions:
            suggestion.missing_ingredients = sort_by_priority(suggestion.missing_ingredients)
        return suggestions

    async def import_recipe(self, user_id: str, text: str) -> Recipe:
        """Parse pasted recipe text and mark which ingredients the user has."""
        if not (text or "").strip():
            raise ValidationError("Please paste a recipe")
        recipe = await self._assistant.parse_recipe_text(text)
        matched, missing = match_ingredients(
            recipe.ingredients, self.known_ingredients(user_id)
        )
        recipe.matched_ingredients = matched
        recipe.missing_ingredients = sort_by_priority(missing)
        logger.info(
            "Imported recipe %r: %d matched, %d missing",
            recipe.name, len(matched), len(missing),
        )
        return recipe

    def save_recipe(self, user_id: str, recipe: Recipe) -> Recipe:
        if not recipe.name:
            raise ValidationError("Recipe name is required")
        recipe_id = self._db.recipes.save(user_id, recipe)
        return self._db.recipes.get(recipe_id)

    def list_saved(self, user_id: str) -> list[Recipe]:
        return self._db.recipes.list_for_user(user_id)

    def delete_saved(self, user_id: str, recipe_id: int) -> None:
        recipe = self._db.recipes.get(recipe_id)
        if recipe is None or recipe.user_id != user_id:
            raise NotFoundError(f"Saved recipe not found: {recipe_id}")
        self._db.recipes.delete(recipe_id)
