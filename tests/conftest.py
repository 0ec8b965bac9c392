from decimal import Decimal
from types import SimpleNamespace
from typing import List, Optional

import pytest

from bookbot.catalog_context import CatalogContextBuilder
from bookbot.config import BASE_DIR, Settings
from bookbot.models import CatalogItem, Review


class FakeModel:
    """Stand-in for genai.GenerativeModel that records prompts."""

    def __init__(self, reply: Optional[str] = "", error: Optional[BaseException] = None, on_call=None):
        self.reply = reply
        self.error = error
        self.on_call = on_call
        self.prompts: List[str] = []

    def generate_content(self, prompt, generation_config=None):
        self.prompts.append(prompt)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        gemini_api_key="test-key",
        gemini_model="gemini-2.0-flash",
        bookstore_api_url="http://bookstore.test",
        bookstore_api_token=None,
        storage_path=tmp_path / "chat_storage.json",
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        max_context_messages=20,
        review_limit=3,
        max_orders=5,
        fallback_item_limit=3,
        request_timeout=5.0,
    )


@pytest.fixture
def scifi_items():
    return [
        CatalogItem(
            item_id="p-1",
            name="Dune",
            category="Science Fiction",
            price=Decimal("15"),
            description="Desert planet epic.",
            available_count=4,
            average_rating=4.6,
            rating_count=120,
        ),
        CatalogItem(
            item_id="p-2",
            name="Foundation",
            category="Science Fiction",
            price=Decimal("18"),
            description="The fall and rise of a galactic empire.",
            available_count=2,
            average_rating=4.3,
            rating_count=80,
        ),
        CatalogItem(
            item_id="p-3",
            name="Clean Code",
            category="Programming",
            price=Decimal("32.5"),
            description="A handbook of agile software craftsmanship.",
            available_count=0,
            average_rating=4.1,
            rating_count=45,
        ),
    ]


@pytest.fixture
def scifi_context(scifi_items):
    reviews = {
        "p-1": [
            Review(author="Ana", rating=5, message="A classic."),
            Review(author="Ben", rating=4, message="Slow start."),
        ],
    }
    return CatalogContextBuilder().build(scifi_items, reviews)
