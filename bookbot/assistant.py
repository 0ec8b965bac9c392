"""BookBot turn orchestration.

Role:
    Drives one chat turn end to end and exposes the operations the storefront
    widget needs: send a message, list visible messages, clear the history, and
    read the context-truncation notice flag.

Turn steps:
    Compose:
        Builds the prompt from the policy, catalog context, optional session
        context and the windowed conversation (which already holds the new user
        message).
    Send:
        One Gemini call; the result is a ChatOutcome, never an exception.
    Render:
        Success only. The raw reply becomes the assistant message and is rendered.
    Fallback:
        Failure only. FallbackAdvisor builds a local reply flagged is_fallback.
    Finalize:
        Appends the reply, unless the assistant was closed while the call was in
        flight, in which case the reply is discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .catalog_context import CatalogContext
from .conversation_store import ConversationStore
from .fallback import FallbackAdvisor
from .gemini_client import GeminiClient
from .models import ChatOutcome, FailureKind, Message, Sender, SessionContext
from .pipeline import TurnPipeline, TurnStep, trace_entry
from .prompt_composer import PromptComposer
from .renderer import RenderedReply, render

logger = logging.getLogger("bookbot.assistant")


class AssistantBusyError(RuntimeError):
    """Raised when a message is sent while another turn is still running."""


@dataclass
class TurnContext:
    """Mutable state passed through the turn steps."""
    user_text: str
    conversation: List[Message]
    catalog: CatalogContext
    session: Optional[SessionContext] = None
    prompt: str = ""
    outcome: Optional[ChatOutcome] = None
    reply: Optional[Message] = None
    rendered: Optional[RenderedReply] = None
    delivered: bool = False
    trace: List[Dict[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.outcome.ok

    def log(self, step: str, detail: str, status: str = "success") -> None:
        self.trace.append(trace_entry(step, detail, status))


@dataclass
class TurnResult:
    """What the caller needs to display after a turn."""
    reply: Message
    rendered: RenderedReply
    outcome: ChatOutcome
    delivered: bool
    context_truncated: bool
    trace: List[Dict[str, str]] = field(default_factory=list)


class BookAssistant:
    def __init__(
        self,
        store: ConversationStore,
        composer: PromptComposer,
        client: GeminiClient,
        advisor: Optional[FallbackAdvisor] = None,
        catalog: Optional[CatalogContext] = None,
        session: Optional[SessionContext] = None,
    ) -> None:
        """Purpose: Wire the turn components and build the step pipeline.
        Inputs/Outputs: Inputs are the store, composer, chat client, fallback advisor
            and the initial catalog/session snapshots; no return value.
        Side Effects / State: Creates the busy lock used to reject concurrent sends.
        Dependencies: Uses TurnPipeline/TurnStep and the step methods on this class.
        Failure Modes: None at init.
        If Removed: Nothing drives the chat turn.
        Testing Notes: Instantiate with a fake client and MemoryStorage.
        """
        self._store = store
        self._composer = composer
        self._client = client
        self._advisor = advisor or FallbackAdvisor()
        self._catalog = catalog or CatalogContext()
        self._session = session
        self._busy = threading.Lock()
        self._closed = False
        self._pipeline = TurnPipeline(
            [
                TurnStep("compose", self._step_compose),
                TurnStep("send", self._step_send),
                TurnStep("render", self._step_render, skip_if=lambda ctx: not ctx.succeeded),
                TurnStep("fallback", self._step_fallback, skip_if=lambda ctx: ctx.succeeded),
                TurnStep("finalize", self._step_finalize, always_run=True),
            ]
        )

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def catalog(self) -> CatalogContext:
        return self._catalog

    @property
    def session(self) -> Optional[SessionContext]:
        return self._session

    @property
    def context_truncated(self) -> bool:
        return self._store.is_truncated

    def truncation_notice(self) -> Optional[str]:
        if not self._store.is_truncated:
            return None
        return f"Note: Only the last {self._store.max_context_messages} messages are used to maintain context."

    def update_context(self, catalog: CatalogContext, session: Optional[SessionContext] = None) -> None:
        self._catalog = catalog
        self._session = session
        logger.info(
            "context updated items=%s authenticated=%s",
            len(catalog.items),
            bool(session and session.is_authenticated),
        )

    def send_user_message(self, text: str) -> TurnResult:
        """Purpose: Run one full chat turn for the user's message.
        Inputs/Outputs: Input is the raw user text; returns a TurnResult.
        Side Effects / State: Appends the user message and exactly one assistant reply.
        Dependencies: Uses ConversationStore, TurnPipeline and the step methods.
        Failure Modes: ValueError for blank input; AssistantBusyError while a turn
            is running. Provider errors never escape; they become fallback replies.
        If Removed: The chat endpoint cannot answer.
        Testing Notes: Send once with a fake client and expect three logged messages.
        """
        cleaned = (text or "").strip()
        if not cleaned:
            raise ValueError("message must not be empty")
        if not self._busy.acquire(blocking=False):
            raise AssistantBusyError("a message is already being answered")
        try:
            self._store.append(Message(sender=Sender.USER, text=cleaned, created_at=time.time()))
            context = TurnContext(
                user_text=cleaned,
                conversation=self._store.windowed(),
                catalog=self._catalog,
                session=self._session,
            )
            logger.info("turn start chars=%s window=%s", len(cleaned), len(context.conversation))
            self._pipeline.run(context)
        finally:
            self._busy.release()

        return TurnResult(
            reply=context.reply,
            rendered=context.rendered,
            outcome=context.outcome,
            delivered=context.delivered,
            context_truncated=self._store.is_truncated,
            trace=context.trace,
        )

    def get_visible_messages(self) -> List[Message]:
        return self._store.messages()

    def clear_history(self) -> None:
        self._store.reset()

    def close(self) -> None:
        # Replies that arrive after close are dropped in the finalize step.
        self._closed = True

    def _step_compose(self, context: TurnContext) -> None:
        context.prompt = self._composer.build(context.catalog, context.conversation, context.session)

    def _step_send(self, context: TurnContext) -> None:
        context.outcome = self._client.send(context.prompt)

    def _step_render(self, context: TurnContext) -> None:
        context.reply = Message(sender=Sender.ASSISTANT, text=context.outcome.text, created_at=time.time())
        context.rendered = render(context.reply.text)

    def _step_fallback(self, context: TurnContext) -> None:
        kind = context.outcome.failure if context.outcome else FailureKind.UNAVAILABLE
        context.reply = self._advisor.advise(kind, context.catalog, context.user_text)
        context.rendered = render(context.reply.text)

    def _step_finalize(self, context: TurnContext) -> None:
        if self._closed:
            logger.info("turn result discarded reason=closed")
            return
        self._store.append(context.reply)
        context.delivered = True
        logger.info(
            "turn done fallback=%s messages=%s truncated=%s",
            context.reply.is_fallback,
            len(self._store),
            self._store.is_truncated,
        )
