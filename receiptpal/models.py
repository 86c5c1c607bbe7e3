"""Data models for receipts, pantry, shopping list, households and recipes."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class AnalysisStatus(str, Enum):
    """Lifecycle stage of AI extraction for a receipt."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    FAILED_RETRYABLE = "failed_retryable"


# Categories the extraction prompt may assign to receipt line items
RECEIPT_CATEGORIES: list[str] = [
    "grocery",
    "produce",
    "meat",
    "dairy",
    "bakery",
    "frozen",
    "beverages",
    "snacks",
    "household",
    "personal care",
    "health",
    "other",
]

# Categories for pantry and shopping-list items, in display order
SHOPPING_CATEGORIES: list[str] = [
    "produce",
    "meat",
    "dairy",
    "bakery",
    "frozen",
    "pantry",
    "beverages",
    "snacks",
    "household",
    "other",
]

CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")

PANTRY_SOURCES: tuple[str, ...] = ("manual", "photo", "receipt")


@dataclass
class StoreInfo:
    name: str = ""
    location: str | None = None
    date: str | None = None  # YYYY-MM-DD


@dataclass
class ReceiptItem:
    """A single line item extracted from a receipt."""

    name: str
    category: str = "other"
    quantity: float = 1.0
    unit_price: float = 0.0
    total_price: float = 0.0
    keywords: list[str] = field(default_factory=list)


@dataclass
class Summary:
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0


@dataclass
class ReceiptMetadata:
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    processing_error: str | None = None
    processed_at: str | None = None
    confidence: str | None = None


@dataclass
class Receipt:
    """One uploaded receipt image and everything extracted from it."""

    user_id: str
    image_url: str
    image_path: str
    id: int | None = None
    household_id: int | None = None
    store_info: StoreInfo = field(default_factory=StoreInfo)
    items: list[ReceiptItem] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)
    metadata: ReceiptMetadata = field(default_factory=ReceiptMetadata)
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    added_to_pantry: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def status(self) -> AnalysisStatus:
        return self.metadata.analysis_status

    @property
    def effective_date(self) -> str | None:
        """Purchase date from the receipt, else the upload date."""
        if self.store_info.date:
            return self.store_info.date
        if self.created_at:
            return self.created_at[:10]
        return None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["metadata"]["analysis_status"] = self.metadata.analysis_status.value
        return data


@dataclass
class PantryItem:
    user_id: str
    name: str
    source: str = "manual"  # manual | photo | receipt
    category: str | None = None
    id: int | None = None
    household_id: int | None = None
    receipt_id: int | None = None
    store_name: str | None = None
    created_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ShoppingItem:
    user_id: str
    name: str
    id: int | None = None
    household_id: int | None = None
    quantity: str | None = None
    notes: str | None = None
    category: str | None = None
    checked: bool = False
    from_recipe: str | None = None
    manual: bool = True
    estimated_price: float | None = None
    created_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class User:
    id: str
    email: str | None = None
    display_name: str | None = None
    household_id: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Household:
    name: str
    invite_code: str
    created_by: str
    id: int | None = None
    members: list[str] = field(default_factory=list)
    created_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RecipeSuggestion:
    """A recipe proposed by the AI for a set of ingredients."""

    name: str
    description: str = ""
    matched_ingredients: list[str] = field(default_factory=list)
    missing_ingredients: list[str] = field(default_factory=list)
    recipe_url: str | None = None
    difficulty: str | None = None
    cooking_time: int | None = None  # minutes

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Recipe:
    """An imported or saved recipe."""

    name: str
    description: str = ""
    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    prep_time: int | None = None
    cook_time: int | None = None
    servings: int | None = None
    image_url: str | None = None
    source_url: str | None = None
    matched_ingredients: list[str] = field(default_factory=list)
    missing_ingredients: list[str] = field(default_factory=list)
    id: int | None = None
    user_id: str | None = None
    saved_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def validate_receipt(receipt: Receipt) -> list[str]:
    """Return a list of validation errors (empty when the receipt is valid)."""
    errors: list[str] = []

    if not receipt.user_id:
        errors.append("User ID is required")
    if not receipt.image_url:
        errors.append("Image URL is required")
    if not receipt.image_path:
        errors.append("Image path is required")

    total = receipt.summary.total
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        errors.append("Total must be a number")
    elif total < 0:
        errors.append("Total cannot be negative")

    for index, item in enumerate(receipt.items, start=1):
        if not item.name:
            errors.append(f"Item {index}: name is required")
        price = item.total_price
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            errors.append(f"Item {index}: total price must be a number")

    return errors
