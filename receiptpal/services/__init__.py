"""Application services operating on the database, blob storage and AI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..ai import create_backend
from ..analysis import ReceiptAnalyzer
from ..assistant import GroceryAssistant
from ..db import Database
from ..storage import BlobStorage
from .households import HouseholdService, generate_invite_code
from .pantry import PantryService
from .receipts import ReceiptService
from .recipes import RecipeService
from .shopping import ShoppingListService
from .users import UserService, is_visible

if TYPE_CHECKING:
    from ..ai import AIBackend
    from ..config import AppConfig


@dataclass
class Services:
    """Every service wired against one database, blob store and AI backend."""

    database: Database
    storage: BlobStorage
    assistant: GroceryAssistant
    analyzer: ReceiptAnalyzer
    users: UserService
    receipts: ReceiptService
    pantry: PantryService
    shopping: ShoppingListService
    households: HouseholdService
    recipes: RecipeService

    def close(self) -> None:
        self.database.close()


def build_services(
    config: AppConfig,
    *,
    database: Database | None = None,
    storage: BlobStorage | None = None,
    backend: AIBackend | None = None,
) -> Services:
    """Construct services from configuration; any part can be injected."""
    database = database or Database(config.database.path)
    storage = storage or BlobStorage(
        root_dir=config.storage.root_dir,
        base_url=config.storage.base_url,
        max_file_size=config.storage.max_file_size,
        accepted_types=config.storage.accepted_types,
    )
    assistant = GroceryAssistant(backend or create_backend(config))
    analyzer = ReceiptAnalyzer(database.receipts, storage, assistant)
    pantry = PantryService(database, assistant)
    return Services(
        database=database,
        storage=storage,
        assistant=assistant,
        analyzer=analyzer,
        users=UserService(database),
        receipts=ReceiptService(database, storage, analyzer, pantry),
        pantry=pantry,
        shopping=ShoppingListService(database, assistant),
        households=HouseholdService(database),
        recipes=RecipeService(database, assistant),
    )


__all__ = [
    "HouseholdService",
    "PantryService",
    "ReceiptService",
    "RecipeService",
    "Services",
    "ShoppingListService",
    "UserService",
    "build_services",
    "generate_invite_code",
    "is_visible",
]
