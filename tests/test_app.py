import httpx
from fastapi.testclient import TestClient

from conftest import FakeModel
from bookbot.app import _bearer_token, create_app
from bookbot.catalog_client import CatalogClient
from bookbot.conversation_store import SEED_GREETING
from bookbot.gemini_client import GeminiClient
from bookbot.storage import MemoryStorage

CATALOG = {
    "page": {
        "content": [
            {"productId": "p-1", "productName": "Dune", "price": 15, "averageRating": 4.6, "availableItemCount": 4},
            {"productId": "p-2", "productName": "Foundation", "price": 18, "averageRating": 4.3},
        ]
    }
}


def _bookstore(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/catalog/products":
        return httpx.Response(200, json=CATALOG)
    if path == "/api/catalog/review":
        return httpx.Response(200, json=[])
    if path == "/api/order/cart":
        return httpx.Response(200, json={"cartItems": []})
    if path == "/api/order/order/myorders":
        return httpx.Response(200, json=[])
    return httpx.Response(404)


def _app(settings, model):
    return create_app(
        settings=settings,
        storage=MemoryStorage(),
        client=GeminiClient(settings, model=model),
        catalog_client=CatalogClient(settings.bookstore_api_url, transport=httpx.MockTransport(_bookstore)),
    )


def test_startup_loads_catalog(settings):
    with TestClient(_app(settings, FakeModel(reply="hi"))) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["catalog_items"] == 2


def test_chat_round_trip(settings):
    model = FakeModel(reply="I recommend **Dune**.")
    with TestClient(_app(settings, model)) as client:
        response = client.post("/api/chat", json={"message": "Any sci-fi?"})
        history = client.get("/api/messages").json()

    body = response.json()
    assert response.status_code == 200
    assert body["reply"] == "I recommend **Dune**."
    assert body["rendered_html"] == "<p>I recommend <strong>Dune</strong>.</p>"
    assert body["is_fallback"] is False
    assert [message["sender"] for message in body["messages"]] == ["assistant", "user", "assistant"]
    assert history["context_truncated"] is False
    assert history["notice"] is None
    assert "- Title: Dune" in model.prompts[0]


def test_blank_message_is_unprocessable(settings):
    with TestClient(_app(settings, FakeModel(reply="unused"))) as client:
        response = client.post("/api/chat", json={"message": "  "})

    assert response.status_code == 422


def test_delete_resets_history(settings):
    with TestClient(_app(settings, FakeModel(reply="ok"))) as client:
        client.post("/api/chat", json={"message": "hello"})
        response = client.delete("/api/messages")

    assert [message["text"] for message in response.json()["messages"]] == [SEED_GREETING]


def test_refresh_uses_bearer_token(settings):
    with TestClient(_app(settings, FakeModel(reply="ok"))) as client:
        anonymous = client.post("/api/context/refresh").json()
        signed_in = client.post("/api/context/refresh", headers={"Authorization": "Bearer abc"}).json()

    assert anonymous == {"catalog_items": 2, "authenticated": False}
    assert signed_in == {"catalog_items": 2, "authenticated": True}


def test_bearer_token_parsing():
    assert _bearer_token("Bearer abc") == "abc"
    assert _bearer_token("Basic abc") is None
    assert _bearer_token(None) is None


def _broken_bookstore(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/api/catalog/products":
        return httpx.Response(200, json={"page": []})
    if path == "/api/order/cart":
        return httpx.Response(200, json={"cartItems": [None, "x"]})
    if path == "/api/order/order/myorders":
        return httpx.Response(200, json=[{"orderId": 7, "orderStatus": "NEW", "orderItemResponseList": [None]}])
    return httpx.Response(404)


def test_malformed_bookstore_payloads_do_not_break_startup_or_refresh(settings):
    app = create_app(
        settings=settings,
        storage=MemoryStorage(),
        client=GeminiClient(settings, model=FakeModel(reply="ok")),
        catalog_client=CatalogClient(settings.bookstore_api_url, transport=httpx.MockTransport(_broken_bookstore)),
    )

    with TestClient(app) as client:
        health = client.get("/api/health")
        refreshed = client.post("/api/context/refresh", headers={"Authorization": "Bearer abc"})
        chat = client.post("/api/chat", json={"message": "hello"})

    assert health.status_code == 200
    assert health.json()["catalog_items"] == 0
    assert refreshed.status_code == 200
    assert refreshed.json() == {"catalog_items": 0, "authenticated": True}
    assert app.state.assistant.session.cart_items == []
    assert [order.order_id for order in app.state.assistant.session.orders] == ["7"]
    assert chat.status_code == 200
