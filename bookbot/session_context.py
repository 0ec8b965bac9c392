from __future__ import annotations

from typing import List, Optional

from .models import Order, SessionContext, format_price

DEFAULT_MAX_ORDERS = 5
FREE_SHIPPING_THRESHOLD = "$50"

ANONYMOUS_BLOCK = (
    "User is NOT signed in. Cart contents and order history are unavailable; "
    "the user must sign in before cart or order details can be discussed."
)

SESSION_RULES = """RULES FOR CART AND ORDER QUESTIONS:
1. If the user asks about their cart or orders and is NOT signed in, politely ask them to sign in first, and keep answering book questions normally.
2. For order status, quote the status from the order history above; never guess a status.
3. To place an order: browse books, add them to the cart, review the cart, proceed to checkout.
4. For tracking, point the user to the order details on their profile page.
5. To cancel or modify an order, the user must contact customer support.
6. If the cart is empty, suggest browsing the book collection.
7. Mention the free shipping threshold ({threshold}) when the cart total is close to it."""


class SessionContextBuilder:
    """Render cart and order data into a bounded block for the prompt."""

    def __init__(self, max_orders: int = DEFAULT_MAX_ORDERS) -> None:
        if max_orders < 0:
            raise ValueError("max_orders must not be negative")
        self._max_orders = max_orders

    def build(self, session: Optional[SessionContext]) -> Optional[str]:
        """Purpose: Summarize cart/order state, or the sign-in requirement.
        Inputs/Outputs: Input is an optional SessionContext; returns block text or None.
        Side Effects / State: None; pure function.
        Dependencies: Uses format_price and the SessionContext model.
        Failure Modes: None; empty collections render explicit placeholder lines.
        If Removed: The model cannot answer cart or order questions.
        Testing Notes: Anonymous sessions must never list cart or order lines.
        """
        if session is None:
            return None
        rules = SESSION_RULES.format(threshold=FREE_SHIPPING_THRESHOLD)
        if not session.is_authenticated:
            return f"{ANONYMOUS_BLOCK}\n\n{rules}"

        lines: List[str] = ["User is signed in."]
        lines.append("")
        lines.extend(self._cart_lines(session))
        lines.append("")
        lines.extend(self._order_lines(session.orders))
        return "\n".join(lines) + f"\n\n{rules}"

    def _cart_lines(self, session: SessionContext) -> List[str]:
        count = len(session.cart_items)
        lines = [f"Shopping cart: {count} item(s), total {format_price(session.cart_total)}."]
        if not session.cart_items:
            lines.append("Cart is empty.")
            return lines
        for line in session.cart_items:
            lines.append(
                f"- {line.name}: {line.qty}x at {format_price(line.unit_price)} "
                f"(subtotal {format_price(line.subtotal)})"
            )
        return lines

    def _order_lines(self, orders: List[Order]) -> List[str]:
        if not orders:
            return ["Order history: No orders yet."]
        shown = orders[: self._max_orders]
        header = f"Order history: {len(orders)} order(s)"
        if len(shown) < len(orders):
            header += f", showing the {len(shown)} most recent"
        lines = [header + "."]
        for order in shown:
            items = ", ".join(f"{item.name} ({item.qty}x)" for item in order.items) or "no items listed"
            lines.append(f"- Order ID: {order.order_id}")
            if order.placed_on:
                lines.append(f"  Date: {order.placed_on}")
            lines.append(f"  Status: {order.status}")
            lines.append(f"  Total: {format_price(order.total)}")
            lines.append(f"  Items: {items}")
            if order.shipping_address:
                lines.append(f"  Shipping Address: {order.shipping_address}")
            if order.payment_method:
                lines.append(f"  Payment Method: {order.payment_method}")
        return lines
