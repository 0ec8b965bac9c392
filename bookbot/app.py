from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException

from .assistant import AssistantBusyError, BookAssistant
from .catalog_client import CatalogClient
from .catalog_context import CatalogContextBuilder
from .config import BASE_DIR, Settings, load_settings
from .conversation_store import ConversationStore
from .fallback import FallbackAdvisor
from .gemini_client import GeminiClient
from .models import ChatRequest, ChatResponse, HistoryResponse, SessionContext
from .prompt_composer import PromptComposer
from .session_context import SessionContextBuilder
from .storage import JsonFileStorage, Storage

logger = logging.getLogger("bookbot.app")

ENV_PATH = BASE_DIR / ".env"


def configure_logging() -> None:
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("bookbot").setLevel(log_level)


class ContextLoader:
    """Fetch catalog, reviews and session data and install them on the assistant."""

    def __init__(
        self,
        assistant: BookAssistant,
        catalog_client: CatalogClient,
        builder: CatalogContextBuilder,
    ) -> None:
        self._assistant = assistant
        self._catalog_client = catalog_client
        self._builder = builder

    async def refresh(self, token: Optional[str]) -> None:
        """Purpose: Rebuild the catalog and session context from the bookstore APIs.
        Inputs/Outputs: Input is an optional bearer token; no return value.
        Side Effects / State: Replaces the assistant's catalog/session snapshots.
        Dependencies: Uses CatalogClient.load_snapshot/fetch_session and the builder.
        Failure Modes: A catalog outage keeps the previous catalog; a session outage
            falls back to an anonymous session. Both are logged, neither raises.
        If Removed: The assistant answers without grounding data.
        Testing Notes: Serve a failing catalog endpoint and verify the app still starts.
        """
        catalog = self._assistant.catalog
        try:
            items, reviews_by_item = await self._catalog_client.load_snapshot()
            catalog = self._builder.build(items, reviews_by_item)
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("catalog refresh failed; keeping items=%s error=%s", len(catalog.items), exc)
        try:
            session = await self._catalog_client.fetch_session(token)
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("session fetch failed; treating user as signed out error=%s", exc)
            session = SessionContext(is_authenticated=False)
        self._assistant.update_context(catalog, session)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    client: Optional[GeminiClient] = None,
    catalog_client: Optional[CatalogClient] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application and wire every assistant component.
    Inputs/Outputs: Optional overrides for settings, storage, chat client and catalog
        client; returns the FastAPI app.
    Side Effects / State: Loads .env, configures logging, opens the storage file.
    Dependencies: Uses load_settings, BookAssistant and ContextLoader.
    Failure Modes: GeminiClient raises ValueError when GEMINI_API_KEY is missing.
    If Removed: The storefront widget has no backend.
    Testing Notes: Inject MemoryStorage, a fake-model client and a MockTransport.
    """
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH, override=True)
    configure_logging()
    settings = settings or load_settings()

    store = ConversationStore(
        storage if storage is not None else JsonFileStorage(settings.storage_path),
        max_context_messages=settings.max_context_messages,
    )
    composer = PromptComposer(settings.prompts_dir, SessionContextBuilder(settings.max_orders))
    assistant = BookAssistant(
        store=store,
        composer=composer,
        client=client or GeminiClient(settings),
        advisor=FallbackAdvisor(settings.fallback_item_limit),
    )
    catalog_client = catalog_client or CatalogClient(settings.bookstore_api_url, settings.request_timeout)
    loader = ContextLoader(assistant, catalog_client, CatalogContextBuilder(settings.review_limit))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # startup: catalog and reviews must settle before the first prompt.
        await loader.refresh(settings.bookstore_api_token)
        yield
        assistant.close()
        await catalog_client.close()

    app = FastAPI(title="BookBot Product Assistant", version="0.1.0", lifespan=lifespan)
    app.state.assistant = assistant
    app.state.settings = settings

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "catalog_items": len(assistant.catalog.items), "busy": assistant.busy}

    @app.post("/api/chat", response_model=ChatResponse)
    def chat(request: ChatRequest) -> ChatResponse:
        """Run one chat turn. Blank input is 422, a concurrent send is 409."""
        try:
            result = assistant.send_user_message(request.message)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except AssistantBusyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return ChatResponse(
            reply=result.reply.text,
            rendered_html=result.rendered.to_html(),
            is_fallback=result.reply.is_fallback,
            context_truncated=result.context_truncated,
            messages=assistant.get_visible_messages(),
        )

    @app.get("/api/messages", response_model=HistoryResponse)
    def get_messages() -> HistoryResponse:
        return HistoryResponse(
            messages=assistant.get_visible_messages(),
            context_truncated=assistant.context_truncated,
            notice=assistant.truncation_notice(),
        )

    @app.delete("/api/messages", response_model=HistoryResponse)
    def clear_messages() -> HistoryResponse:
        assistant.clear_history()
        return HistoryResponse(messages=assistant.get_visible_messages(), context_truncated=False)

    @app.post("/api/context/refresh")
    async def refresh_context(authorization: Optional[str] = Header(default=None)) -> dict:
        token = _bearer_token(authorization) or settings.bookstore_api_token
        await loader.refresh(token)
        session = assistant.session
        return {
            "catalog_items": len(assistant.catalog.items),
            "authenticated": bool(session and session.is_authenticated),
        }

    return app


def _bearer_token(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def run() -> None:
    uvicorn.run(create_app(), host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))
