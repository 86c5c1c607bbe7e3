"""TOML configuration loader for receiptpal."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


@dataclass
class GeminiConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class ClaudeConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class AIConfig:
    backend: str = "gemini"
    gemini: GeminiConfig = field(default_factory=GeminiConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)


@dataclass
class DatabaseConfig:
    path: str = "~/.config/receiptpal/receiptpal.db"


@dataclass
class StorageConfig:
    root_dir: str = "~/.config/receiptpal/blobs"
    base_url: str = "/images"
    max_file_size: int = 10 * 1024 * 1024
    accepted_types: list[str] = field(default_factory=lambda: [
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
    ])


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    allow_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ])


@dataclass
class AppConfig:
    ai: AIConfig = field(default_factory=AIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys and the database path can be overridden via environment
    variables.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    ai = raw.get("ai", {})
    dbs = raw.get("database", {})
    sto = raw.get("storage", {})
    srv = raw.get("server", {})

    gemini_cfg = ai.get("gemini", {})
    claude_cfg = ai.get("claude", {})

    # Resolve API keys: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    # Database path: environment variable → config file
    db_path = os.environ.get("RECEIPTPAL_DB_PATH") or dbs.get(
        "path", DatabaseConfig().path
    )

    return AppConfig(
        ai=AIConfig(
            backend=ai.get("backend", "gemini"),
            gemini=GeminiConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            claude=ClaudeConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        database=DatabaseConfig(path=db_path),
        storage=StorageConfig(
            root_dir=sto.get("root_dir", StorageConfig().root_dir),
            base_url=sto.get("base_url", "/images"),
            max_file_size=sto.get("max_file_size", 10 * 1024 * 1024),
            accepted_types=sto.get(
                "accepted_types", StorageConfig().accepted_types
            ),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8000),
            allow_origins=srv.get(
                "allow_origins", ServerConfig().allow_origins
            ),
        ),
    )
