from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Sender(str, Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Persisted chat message; list position is the conversation order."""
    sender: Sender
    text: str
    created_at: float = 0.0
    is_fallback: bool = False


class Review(BaseModel):
    """Customer review surfaced into the catalog context."""
    author: str = "Anonymous"
    rating: int = Field(ge=1, le=5)
    message: str = ""

    @field_validator("rating", mode="before")
    @classmethod
    def _coerce_rating(cls, value: object) -> int:
        # The review API stores ratings as floats; clamp into the 1-5 scale.
        try:
            rating = int(round(float(value)))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"invalid rating: {value!r}") from exc
        return min(5, max(1, rating))


class CatalogItem(BaseModel):
    """Immutable snapshot of a catalog entry and its recent reviews."""
    model_config = {"frozen": True}

    item_id: str
    name: str
    category: str = ""
    price: Decimal = Decimal("0")
    description: str = ""
    available_count: int = Field(default=0, ge=0)
    average_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    rating_count: int = Field(default=0, ge=0)
    image_ref: Optional[str] = None
    reviews: List[Review] = Field(default_factory=list)


class CartLine(BaseModel):
    """Item currently sitting in the shopper's cart."""
    name: str
    qty: int = Field(default=0, ge=0)
    unit_price: Decimal = Decimal("0")

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.qty


class OrderLine(BaseModel):
    name: str
    qty: int = Field(default=0, ge=0)


class Order(BaseModel):
    """Past order; placed_on is already formatted for display by the caller."""
    order_id: str
    status: str
    total: Decimal = Decimal("0")
    items: List[OrderLine] = Field(default_factory=list)
    placed_on: Optional[str] = None
    shipping_address: Optional[str] = None
    payment_method: Optional[str] = None


class SessionContext(BaseModel):
    """Cart and order data; both collections stay empty for anonymous sessions."""
    is_authenticated: bool = False
    cart_items: List[CartLine] = Field(default_factory=list)
    orders: List[Order] = Field(default_factory=list)

    @model_validator(mode="after")
    def _drop_private_data_when_anonymous(self) -> "SessionContext":
        if not self.is_authenticated:
            self.cart_items = []
            self.orders = []
        return self

    @property
    def cart_total(self) -> Decimal:
        return sum((line.subtotal for line in self.cart_items), Decimal("0"))


class FailureKind(str, Enum):
    """Classified provider failure."""
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"


class ChatOutcome(BaseModel):
    """Result of one provider call: either reply text or a classified failure."""
    text: Optional[str] = None
    failure: Optional[FailureKind] = None
    http_status: Optional[int] = None

    @classmethod
    def success(cls, text: str) -> "ChatOutcome":
        return cls(text=text)

    @classmethod
    def fail(cls, kind: FailureKind, http_status: Optional[int] = None) -> "ChatOutcome":
        return cls(failure=kind, http_status=http_status)

    @property
    def ok(self) -> bool:
        return self.failure is None


class ChatRequest(BaseModel):
    """Request payload for chat API."""
    message: str


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    reply: str
    rendered_html: str
    is_fallback: bool
    context_truncated: bool
    messages: List[Message]


class HistoryResponse(BaseModel):
    """Visible conversation plus the truncation notice flag."""
    messages: List[Message]
    context_truncated: bool
    notice: Optional[str] = None


def format_price(value: Decimal) -> str:
    return f"${Decimal(value):.2f}"


def format_rating(value: float) -> str:
    return f"{value:.1f}/5"
