from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent

STORAGE_KEY = "bookstore_chatbot_context"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the model, bookstore APIs, and context limits."""
    gemini_api_key: str
    gemini_model: str
    bookstore_api_url: str
    bookstore_api_token: Optional[str]
    storage_path: Path
    prompts_dir: Path
    max_context_messages: int
    review_limit: int
    max_orders: int
    fallback_item_limit: int
    request_timeout: float


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid integer/float env values raise ValueError.
    If Removed: App cannot configure the model, storage, or window sizes.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve storage path, then build Settings.
    storage_path = os.getenv("CHAT_STORAGE_PATH")
    if storage_path:
        storage_file = Path(storage_path)
    else:
        storage_file = (BASE_DIR / "data" / "chat_storage.json").resolve()

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        bookstore_api_url=os.getenv("BOOKSTORE_API_URL", "http://localhost:8765").rstrip("/"),
        bookstore_api_token=os.getenv("BOOKSTORE_API_TOKEN") or None,
        storage_path=storage_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        max_context_messages=_positive_int("MAX_CONTEXT_MESSAGES", 20),
        review_limit=_positive_int("REVIEW_LIMIT", 3),
        max_orders=_positive_int("MAX_ORDERS", 5),
        fallback_item_limit=_positive_int("FALLBACK_ITEM_LIMIT", 3),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "15")),
    )


def _positive_int(name: str, default: int) -> int:
    value = int(os.getenv(name, str(default)))
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value}")
    return value
