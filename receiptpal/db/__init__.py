"""SQLite database module for receipts, pantry, shopping list, households and recipes."""

from __future__ import annotations

from pathlib import Path

from .households import HouseholdDB, UserDB
from .pantry import PantryDB
from .receipts import ReceiptDB
from .recipes import RecipeDB
from .schema import ensure_schema
from .shopping import ShoppingDB


class Database:
    """All table classes opened against one database file."""

    def __init__(self, db_path: str | Path) -> None:
        self.path = db_path
        self.receipts = ReceiptDB(db_path)
        self.pantry = PantryDB(db_path)
        self.shopping = ShoppingDB(db_path)
        self.households = HouseholdDB(db_path)
        self.users = UserDB(db_path)
        self.recipes = RecipeDB(db_path)

    def close(self) -> None:
        for table in (
            self.receipts,
            self.pantry,
            self.shopping,
            self.households,
            self.users,
            self.recipes,
        ):
            table.close()


__all__ = [
    "Database",
    "HouseholdDB",
    "PantryDB",
    "ReceiptDB",
    "RecipeDB",
    "ShoppingDB",
    "UserDB",
    "ensure_schema",
]
