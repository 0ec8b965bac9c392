from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError

from .models import CartLine, CatalogItem, Order, OrderLine, Review, SessionContext

logger = logging.getLogger("bookbot.catalog_client")

CATALOG_PATH = "/api/catalog/products"
REVIEW_PATH = "/api/catalog/review"
CART_PATH = "/api/order/cart"
ORDERS_PATH = "/api/order/order/myorders"
CATALOG_PAGE_SIZE = 1000


class CatalogClient:
    """Read-only client for the bookstore gateway (catalog, reviews, cart, orders)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    # -- Low-level helpers --

    async def _get_json(self, path: str, params: Optional[dict] = None, token: Optional[str] = None) -> Any:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = await self._client.get(path, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    # -- Catalog methods --

    async def fetch_catalog(self) -> List[CatalogItem]:
        """Fetch the whole catalog in one page.

        HTTP errors and a payload without a page.content list propagate to the caller;
        malformed entries inside the list are skipped.
        """
        data = await self._get_json(CATALOG_PATH, params={"page": 0, "size": CATALOG_PAGE_SIZE})
        page = data.get("page") if isinstance(data, dict) else None
        content = page.get("content") if isinstance(page, dict) else None
        if not isinstance(content, list):
            raise ValueError("catalog payload has no page.content list")
        items: List[CatalogItem] = []
        for raw in content:
            item = parse_catalog_item(raw)
            if item is not None:
                items.append(item)
        logger.info("catalog fetched items=%s", len(items))
        return items

    async def fetch_reviews(self, item_id: str) -> List[Review]:
        """Fetch reviews for one item, newest first as returned by the API."""
        data = await self._get_json(REVIEW_PATH, params={"productId": item_id})
        reviews: List[Review] = []
        for raw in data if isinstance(data, list) else []:
            review = parse_review(raw)
            if review is not None:
                reviews.append(review)
        return reviews

    async def fetch_all_reviews(self, items: Sequence[CatalogItem]) -> Dict[str, List[Review]]:
        """Purpose: Fetch reviews for every item concurrently, tolerating per-item failures.
        Inputs/Outputs: Input is the catalog items; returns a map of item_id to reviews
            for the fetches that succeeded.
        Side Effects / State: One GET per item, all in flight together.
        Dependencies: Uses asyncio.gather with return_exceptions=True.
        Failure Modes: Failed items are logged as PartialContextDegradation and left out.
        If Removed: One bad review endpoint would block the whole catalog context.
        Testing Notes: Make one item's endpoint fail and check the other still has reviews.
        """
        results = await asyncio.gather(
            *(self.fetch_reviews(item.item_id) for item in items),
            return_exceptions=True,
        )
        reviews_by_item: Dict[str, List[Review]] = {}
        for item, result in zip(items, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "event=PartialContextDegradation item=%s error=%s",
                    item.item_id,
                    result,
                )
                continue
            reviews_by_item[item.item_id] = result
        return reviews_by_item

    async def load_snapshot(self) -> Tuple[List[CatalogItem], Dict[str, List[Review]]]:
        items = await self.fetch_catalog()
        reviews_by_item = await self.fetch_all_reviews(items)
        return items, reviews_by_item

    # -- Session methods --

    async def fetch_session(self, token: Optional[str]) -> SessionContext:
        """Fetch cart and orders for a signed-in user; anonymous without a token.

        The two requests settle independently: a failed one leaves its collection
        empty and is logged as PartialContextDegradation. When both fail, the cart
        error propagates.
        """
        if not token:
            return SessionContext(is_authenticated=False)
        cart_data, orders_data = await asyncio.gather(
            self._get_json(CART_PATH, token=token),
            self._get_json(ORDERS_PATH, token=token),
            return_exceptions=True,
        )
        if isinstance(cart_data, BaseException) and isinstance(orders_data, BaseException):
            logger.warning("session orders fetch failed error=%s", orders_data)
            raise cart_data
        if isinstance(cart_data, BaseException):
            logger.warning("event=PartialContextDegradation part=cart error=%s", cart_data)
            cart_data = None
        if isinstance(orders_data, BaseException):
            logger.warning("event=PartialContextDegradation part=orders error=%s", orders_data)
            orders_data = None
        return SessionContext(
            is_authenticated=True,
            cart_items=parse_cart(cart_data),
            orders=parse_orders(orders_data),
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def parse_catalog_item(raw: Any) -> Optional[CatalogItem]:
    if not isinstance(raw, dict):
        logger.warning("skipping malformed catalog item type=%s", type(raw).__name__)
        return None
    try:
        return CatalogItem(
            item_id=str(raw["productId"]),
            name=raw.get("productName") or "Untitled",
            category=raw.get("productCategory") or "",
            price=_decimal(raw.get("price")),
            description=raw.get("description") or "",
            available_count=max(0, int(raw.get("availableItemCount") or 0)),
            average_rating=min(5.0, max(0.0, float(raw.get("averageRating") or 0.0))),
            rating_count=max(0, int(raw.get("noOfRatings") or 0)),
            image_ref=_optional_str(raw.get("imageId")),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as exc:
        logger.warning("skipping malformed catalog item error=%s", exc)
        return None


def parse_review(raw: Any) -> Optional[Review]:
    if not isinstance(raw, dict):
        logger.warning("skipping malformed review type=%s", type(raw).__name__)
        return None
    try:
        return Review(
            author=raw.get("userName") or "Anonymous",
            rating=raw.get("ratingValue"),
            message=raw.get("reviewMessage") or "",
        )
    except ValidationError as exc:
        logger.warning("skipping malformed review error=%s", exc)
        return None


def parse_cart(raw: Any) -> List[CartLine]:
    if not isinstance(raw, dict):
        return []
    lines: List[CartLine] = []
    for entry in _dict_entries(raw.get("cartItems")):
        try:
            lines.append(
                CartLine(
                    name=entry.get("productName") or "Unknown Product",
                    qty=max(0, int(entry.get("quantity") or 0)),
                    unit_price=_decimal(entry.get("itemPrice", entry.get("price"))),
                )
            )
        except (TypeError, ValueError, ValidationError) as exc:
            logger.warning("skipping malformed cart line error=%s", exc)
    return lines


def parse_orders(raw: Any) -> List[Order]:
    orders: List[Order] = []
    for entry in _dict_entries(raw):
        try:
            orders.append(parse_order(entry))
        except (TypeError, ValueError, ValidationError) as exc:
            logger.warning("skipping malformed order error=%s", exc)
    # Newest first so the session builder keeps the most recent ones.
    return sorted(orders, key=lambda order: order.placed_on or "", reverse=True)


def parse_order(raw: Dict[str, Any]) -> Order:
    shipping = raw.get("shippingAddress")
    payment = raw.get("paymentMethod")
    return Order(
        order_id=str(raw.get("orderId", "")),
        status=raw.get("orderStatus") or "UNKNOWN",
        total=_decimal(raw.get("totalOrderAmount")),
        items=[
            OrderLine(name=item.get("productName") or "Unknown Product", qty=int(item.get("orderItemQty") or 0))
            for item in _dict_entries(raw.get("orderItemResponseList"))
        ],
        placed_on=_format_date(raw.get("createdAt")),
        shipping_address=shipping.get("addressLine1") if isinstance(shipping, dict) else None,
        payment_method=payment.get("paymentType") if isinstance(payment, dict) else None,
    )


def _dict_entries(value: Any) -> List[Dict[str, Any]]:
    # Non-list payloads and non-object entries are dropped.
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _format_date(value: Any) -> Optional[str]:
    # Dates are fixed here, once, so prompt composition stays deterministic.
    if not value:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value)
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return text[:10]


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
