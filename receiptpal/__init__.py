"""Grocery receipt tracker with AI receipt extraction."""

from .ai import AIBackend, GenerationSettings, ImagePart, create_backend
from .analysis import ReceiptAnalyzer
from .assistant import GroceryAssistant
from .config import (
    AIConfig,
    AppConfig,
    DatabaseConfig,
    ServerConfig,
    StorageConfig,
    load_config,
)
from .models import (
    AnalysisStatus,
    Household,
    PantryItem,
    Receipt,
    ReceiptItem,
    Recipe,
    RecipeSuggestion,
    ShoppingItem,
)
from .parsing import ParseResult, parse_receipt_response

__all__ = [
    "AIBackend",
    "GenerationSettings",
    "ImagePart",
    "create_backend",
    "ReceiptAnalyzer",
    "GroceryAssistant",
    "AppConfig",
    "AIConfig",
    "DatabaseConfig",
    "StorageConfig",
    "ServerConfig",
    "load_config",
    "AnalysisStatus",
    "Receipt",
    "ReceiptItem",
    "PantryItem",
    "ShoppingItem",
    "Household",
    "Recipe",
    "RecipeSuggestion",
    "ParseResult",
    "parse_receipt_response",
]
