from __future__ import annotations

import logging
import time
from typing import Dict, List

from .catalog_context import CatalogContext
from .models import FailureKind, Message, Sender, format_price, format_rating
from .utils import detect_locale, has_any_term, normalize_text

logger = logging.getLogger("bookbot.fallback")

DEFAULT_FALLBACK_ITEM_LIMIT = 3
SUPPORT_EMAIL = "support@bookstore.com"

FAILURE_MESSAGES: Dict[FailureKind, Dict[str, str]] = {
    FailureKind.RATE_LIMITED: {
        "en": "Sorry, I'm getting too many requests right now. Please try again in a few minutes.",
        "vi": "Xin lỗi, hiện tôi đang nhận quá nhiều yêu cầu. Bạn vui lòng thử lại sau vài phút nhé.",
    },
    FailureKind.UNAUTHORIZED: {
        "en": f"Sorry, there was an authentication error on our side. Please contact support at {SUPPORT_EMAIL}.",
        "vi": f"Xin lỗi, hệ thống đang gặp lỗi xác thực. Bạn vui lòng liên hệ CSKH qua email {SUPPORT_EMAIL}.",
    },
    FailureKind.BAD_REQUEST: {
        "en": "Sorry, I couldn't process your request. Please try rephrasing your question.",
        "vi": "Xin lỗi, tôi chưa xử lý được yêu cầu này. Bạn thử diễn đạt lại câu hỏi giúp tôi nhé.",
    },
    FailureKind.UNAVAILABLE: {
        "en": "Sorry, I'm having trouble connecting right now. Please try again later.",
        "vi": "Xin lỗi, tôi đang gặp sự cố kết nối tạm thời. Bạn vui lòng thử lại sau nhé.",
    },
}

ORDER_HELP = {
    "en": (
        "To check your orders in the meantime, you can:\n"
        "1. Open your Profile page to see your order history\n"
        f"2. Contact customer support at {SUPPORT_EMAIL}"
    ),
    "vi": (
        "Trong lúc chờ, bạn có thể kiểm tra đơn hàng bằng cách:\n"
        "1. Vào trang Profile để xem lịch sử đơn hàng\n"
        f"2. Liên hệ CSKH qua email: {SUPPORT_EMAIL}"
    ),
}

SUGGESTION_HEADER = {
    "en": "Here are some books from our inventory:",
    "vi": "Đây là một số sách đang có trong kho:",
}
EMPTY_INVENTORY_NOTE = {
    "en": "You can also browse the full collection on our home page.",
    "vi": "Bạn cũng có thể xem toàn bộ sách trên trang chủ.",
}

ORDER_TERMS = [
    "order",
    "orders",
    "delivery",
    "shipping",
    "tracking",
    "cart",
    "don hang",
    "giao hang",
    "gio hang",
    "van chuyen",
]
CATALOG_TERMS = [
    "book",
    "books",
    "novel",
    "novels",
    "author",
    "authors",
    "genre",
    "genres",
    "title",
    "titles",
    "fiction",
    "read",
    "reading",
    "recommend",
    "recommendation",
    "recommendations",
    "suggest",
    "price",
    "cheap",
    "buy",
    "sach",
    "truyen",
    "tieu thuyet",
    "tac gia",
    "the loai",
    "goi y",
    "gia",
]


class FallbackAdvisor:
    """Build a local, catalog-grounded reply when the model call fails."""

    def __init__(self, item_limit: int = DEFAULT_FALLBACK_ITEM_LIMIT) -> None:
        self._item_limit = item_limit

    def advise(self, kind: FailureKind, catalog: CatalogContext, last_user_text: str) -> Message:
        """Purpose: Produce the fallback assistant message for a failed turn.
        Inputs/Outputs: Inputs are the failure kind, catalog context and the user's
            last message; returns a Message flagged is_fallback.
        Side Effects / State: None; no network access.
        Dependencies: Uses FAILURE_MESSAGES, detect_locale and the catalog items.
        Failure Modes: None; unknown kinds use the UNAVAILABLE wording.
        If Removed: Provider errors would leave the user without a reply.
        Testing Notes: Compare RATE_LIMITED and UNAUTHORIZED texts for the same input.
        """
        locale = detect_locale(last_user_text)
        normalized = normalize_text(last_user_text)
        messages = FAILURE_MESSAGES.get(kind, FAILURE_MESSAGES[FailureKind.UNAVAILABLE])
        sections: List[str] = [messages[locale]]

        route = "plain"
        if has_any_term(normalized, ORDER_TERMS):
            sections.append(ORDER_HELP[locale])
            route = "order_help"
        elif has_any_term(normalized, CATALOG_TERMS):
            sections.append(self._suggestions(catalog, locale))
            route = "suggestions"

        logger.info("fallback kind=%s locale=%s route=%s", kind.value, locale, route)
        return Message(
            sender=Sender.ASSISTANT,
            text="\n\n".join(sections),
            created_at=time.time(),
            is_fallback=True,
        )

    def _suggestions(self, catalog: CatalogContext, locale: str) -> str:
        picks = catalog.items[: self._item_limit]
        if not picks:
            return EMPTY_INVENTORY_NOTE[locale]
        lines = [SUGGESTION_HEADER[locale]]
        for item in picks:
            lines.append(f"- **{item.name}**: {format_price(item.price)}, {format_rating(item.average_rating)}")
        return "\n".join(lines)
