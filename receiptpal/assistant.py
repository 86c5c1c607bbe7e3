"""AI-backed helpers: receipt extraction, recipes, pantry photos, categorization.

Each helper builds a prompt, calls the configured ``AIBackend`` with fixed
generation settings for its task, and parses the text answer.
"""

from __future__ import annotations

import json
import logging

from .ai import AIBackend, GenerationSettings, ImagePart
from .errors import ResponseParseError
from .models import SHOPPING_CATEGORIES, Recipe, RecipeSuggestion
from .parsing import ParseResult, parse_json_text, parse_receipt_response, to_optional_int

logger = logging.getLogger(__name__)

RECEIPT_SETTINGS = GenerationSettings(temperature=0.2, top_k=32, top_p=0.95, max_output_tokens=4096)
RECIPE_SETTINGS = GenerationSettings(temperature=0.7, top_k=40, top_p=0.95, max_output_tokens=2048)
PHOTO_SETTINGS = GenerationSettings(temperature=0.4, top_k=32, top_p=0.95, max_output_tokens=1024)
CATEGORY_SETTINGS = GenerationSettings(temperature=0.1, top_k=1, top_p=0.95, max_output_tokens=10)
IMPORT_SETTINGS = GenerationSettings(temperature=0.3, top_k=20, top_p=0.8, max_output_tokens=4096)

MAX_IMPORT_CHARS = 50_000

RECEIPT_PROMPT = """\
Analyze this grocery receipt image and extract the following information in JSON format:

{
  "storeInfo": {
    "name": "Store name if visible (string or null)",
    "location": "City, State if visible (string or null)",
    "date": "Date in YYYY-MM-DD format (string or null)"
  },
  "items": [
    {
      "name": "Item name (string)",
      "category": "One of: grocery|produce|meat|dairy|bakery|frozen|beverages|snacks|household|personal care|health|other",
      "quantity": "Quantity as number (default 1)",
      "unitPrice": "Unit price as number",
      "totalPrice": "Total price for this item as number",
      "keywords": ["generic search terms for the item, e.g. candy, creamer"]
    }
  ],
  "summary": {
    "subtotal": "Subtotal as number",
    "tax": "Tax amount as number",
    "total": "Total amount as number"
  },
  "confidence": "high|medium|low - your confidence in the extraction"
}

Important instructions:
- Extract ALL items from the receipt
- Be precise with numbers - no dollar signs, just numbers (e.g., 12.99 not $12.99)
- If you can't read a value, set it to null or 0 for numbers
- Categorize each item appropriately
- The total in summary should match the receipt total
- Respond ONLY with valid JSON, no additional text
- If quantity is not visible, assume 1
- Calculate unitPrice = totalPrice / quantity
"""

_RECIPE_PROMPT = """\
You are a creative chef helping someone cook with their groceries.

Available ingredients: {ingredients}

{partial_hint}

Please suggest 5 delicious, practical recipes that can be made primarily with these ingredients. For each recipe, provide:
1. Recipe name
2. Brief description (1 sentence)
3. Missing ingredients (if any) - especially highlight any essential ingredients not in the list
4. Link to a real recipe from AllRecipes.com, FoodNetwork.com, or another major recipe site
5. Difficulty level (Easy/Medium/Hard)
6. Cooking time (in minutes)

Format your response as a JSON array with this structure:
[
  {{
    "name": "Recipe Name",
    "description": "Brief description",
    "matchedIngredients": ["ingredient1", "ingredient2"],
    "missingIngredients": ["ingredient3", "ingredient4"],
    "recipeUrl": "https://www.allrecipes.com/recipe/...",
    "difficulty": "Easy",
    "cookingTime": 30
  }}
]

Return ONLY the JSON array, no additional text.
"""

_PARTIAL_HINT = (
    "The user may not have all ingredients like spices, oils, butter, salt, "
    "pepper, and common pantry staples. Suggest recipes even if they're "
    "missing these common items."
)
_STRICT_HINT = "Only suggest recipes that strictly use the available ingredients."

_PHOTO_PROMPT = """\
You are analyzing a photo of someone's pantry or grocery items.

Please identify all visible food items and ingredients in this image. List them as simple ingredient names (e.g., "tomatoes", "chicken breast", "olive oil", "pasta").

Return ONLY a JSON array of ingredient names, like this:
["ingredient1", "ingredient2", "ingredient3"]

Focus on ingredients that can be used for cooking. Ignore packaging, brands, or non-food items.
"""

_CATEGORY_PROMPT = """\
Categorize this grocery/shopping item into ONE of these categories:

produce - Fresh fruits, vegetables, herbs
meat - Meat, poultry, seafood, fish
dairy - Milk, cheese, yogurt, eggs, butter
bakery - Bread, bagels, pastries, baked goods
frozen - Frozen foods, ice cream
pantry - Canned goods, pasta, rice, flour, spices, condiments, oils
beverages - Drinks, juice, soda, coffee, tea
snacks - Chips, crackers, candy, cookies
household - Cleaning supplies, paper products, toiletries, pet food
other - Anything that doesn't fit above categories

Item: "{name}"

Return ONLY the category value (one word: produce, meat, dairy, bakery, frozen, pantry, beverages, snacks, household, or other). No explanation, just the category word.
"""

_IMPORT_PROMPT = """\
You are a recipe parser. Extract the recipe information from this text/HTML and return it in the following JSON format:

{{
  "name": "Recipe name",
  "description": "Brief description",
  "ingredients": ["ingredient 1", "ingredient 2"],
  "instructions": ["step 1", "step 2"],
  "prepTime": "prep time in minutes (number only)",
  "cookTime": "cook time in minutes (number only)",
  "servings": "number of servings (number only)",
  "imageUrl": "main recipe image URL if available",
  "sourceUrl": "recipe URL if present in the text"
}}

Important:
- Extract ingredient names clearly (e.g., "chicken breast", "olive oil", "salt")
- Keep ingredients simple and searchable
- If any field is not available, use null

Here's the recipe text/HTML:
{text}
"""


def _decode(text: str, what: str):
    try:
        return parse_json_text(text)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Failed to parse {what}: {e}") from e


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


class GroceryAssistant:
    """Stateless request/response wrappers around an ``AIBackend``."""

    def __init__(self, backend: AIBackend) -> None:
        self._backend = backend

    async def extract_receipt(
        self, image_bytes: bytes, mime_type: str = "image/jpeg"
    ) -> ParseResult:
        """Run the extraction prompt on a receipt image.

        Transport errors propagate; a malformed answer comes back as a
        ``ParseResult`` carrying the error.
        """
        text = await self._backend.generate(
            RECEIPT_PROMPT,
            RECEIPT_SETTINGS,
            images=[ImagePart(data=image_bytes, mime_type=mime_type)],
        )
        logger.debug("Receipt extraction response: %s", text)
        return parse_receipt_response(text)

    async def generate_recipes(
        self, ingredients: list[str], include_partial_matches: bool = True
    ) -> list[RecipeSuggestion]:
        """Suggest recipes for the given ingredients."""
        prompt = _RECIPE_PROMPT.format(
            ingredients=", ".join(ingredients),
            partial_hint=_PARTIAL_HINT if include_partial_matches else _STRICT_HINT,
        )
        text = await self._backend.generate(prompt, RECIPE_SETTINGS)
        data = _decode(text, "recipe suggestions")
        if not isinstance(data, list):
            raise ResponseParseError("Failed to parse recipe suggestions: expected a JSON array")

        recipes: list[RecipeSuggestion] = []
        for raw in data:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            recipes.append(
                RecipeSuggestion(
                    name=str(raw["name"]),
                    description=str(raw.get("description") or ""),
                    matched_ingredients=_str_list(raw.get("matchedIngredients")),
                    missing_ingredients=_str_list(raw.get("missingIngredients")),
                    recipe_url=raw.get("recipeUrl") or None,
                    difficulty=raw.get("difficulty") or None,
                    cooking_time=to_optional_int(raw.get("cookingTime")),
                )
            )
        return recipes

    async def analyze_pantry_photo(
        self, image_bytes: bytes, mime_type: str = "image/jpeg"
    ) -> list[str]:
        """Return the ingredient names visible in a pantry photo."""
        text = await self._backend.generate(
            _PHOTO_PROMPT,
            PHOTO_SETTINGS,
            images=[ImagePart(data=image_bytes, mime_type=mime_type)],
        )
        data = _decode(text, "pantry photo response")
        if not isinstance(data, list):
            raise ResponseParseError("Failed to parse pantry photo response: expected a JSON array")
        return _str_list(data)

    async def categorize_item(self, name: str) -> str:
        """Return one of ``SHOPPING_CATEGORIES`` for an item name.

        Never raises: any failure falls back to ``'other'``.
        """
        try:
            text = await self._backend.generate(
                _CATEGORY_PROMPT.format(name=name), CATEGORY_SETTINGS
            )
        except Exception as e:
            logger.warning("categorize_item failed for %r, falling back to 'other': %s", name, e)
            return "other"

        category = (text or "").strip().strip(".\"'`").lower()
        if category in SHOPPING_CATEGORIES:
            return category
        return "other"

    async def parse_recipe_text(self, text: str) -> Recipe:
        """Extract a structured recipe from pasted text or HTML."""
        prompt = _IMPORT_PROMPT.format(text=text[:MAX_IMPORT_CHARS])
        answer = await self._backend.generate(prompt, IMPORT_SETTINGS)
        data = _decode(answer, "recipe")
        if not isinstance(data, dict) or not data.get("name"):
            raise ResponseParseError("No recipe data extracted")
        return Recipe(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            ingredients=_str_list(data.get("ingredients")),
            instructions=_str_list(data.get("instructions")),
            prep_time=to_optional_int(data.get("prepTime")),
            cook_time=to_optional_int(data.get("cookTime")),
            servings=to_optional_int(data.get("servings")),
            image_url=data.get("imageUrl") or None,
            source_url=data.get("sourceUrl") or None,
        )
