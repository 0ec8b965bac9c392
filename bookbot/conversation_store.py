from __future__ import annotations

import json
import logging
import time
from typing import List

from pydantic import ValidationError

from .config import STORAGE_KEY
from .models import Message, Sender
from .storage import Storage

logger = logging.getLogger("bookbot.conversation")

SEED_GREETING = (
    "Hello! I'm your personal book advisor. I can help you find books from our current "
    "inventory. What kind of books are you interested in?"
)
DEFAULT_MAX_CONTEXT_MESSAGES = 20


def seed_message() -> Message:
    return Message(sender=Sender.ASSISTANT, text=SEED_GREETING, created_at=time.time())


class ConversationStore:
    """Ordered chat log with a read-time context window and per-append persistence."""

    def __init__(
        self,
        storage: Storage,
        key: str = STORAGE_KEY,
        max_context_messages: int = DEFAULT_MAX_CONTEXT_MESSAGES,
    ) -> None:
        """Purpose: Initialize the store and restore the persisted conversation.
        Inputs/Outputs: Inputs are the Storage capability, storage key and window cap.
        Side Effects / State: Calls restore(), which may write the seed greeting.
        Dependencies: Uses Storage get/set and the Message model.
        Failure Modes: Raises ValueError for a non-positive window cap.
        If Removed: The assistant has no history and cannot build prompts.
        Testing Notes: Build over MemoryStorage and verify the seed greeting exists.
        """
        if max_context_messages <= 0:
            raise ValueError("max_context_messages must be positive")
        self._storage = storage
        self._key = key
        self._max_context_messages = max_context_messages
        self._log: List[Message] = []
        self.restore()

    @property
    def max_context_messages(self) -> int:
        return self._max_context_messages

    def restore(self) -> None:
        """Purpose: Load the last persisted snapshot, or fall back to the seed greeting.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Replaces the in-memory log; persists the seed when falling back.
        Dependencies: Uses json.loads and Message validation.
        Failure Modes: Never raises for malformed data; corruption is logged and reset.
        If Removed: Conversations are not carried across restarts.
        Testing Notes: Store garbage under the key and verify exactly one seed message.
        """
        # Decode the stored list; anything unexpected is treated as no history.
        try:
            raw = self._storage.get(self._key)
        except OSError:
            logger.warning("event=PersistenceCorrupt key=%s reason=storage_unreadable", self._key)
            raw = None
        messages: List[Message] = []
        if raw:
            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise ValueError("conversation snapshot is not a list")
                messages = [Message.model_validate(entry) for entry in data]
            except (ValueError, TypeError, ValidationError) as exc:
                logger.warning("event=PersistenceCorrupt key=%s reason=%s", self._key, exc)
                messages = []
        if messages:
            self._log = messages
            logger.debug("restored key=%s messages=%s", self._key, len(messages))
            return
        self._log = [seed_message()]
        self._persist_quietly()

    def append(self, message: Message) -> None:
        """Purpose: Append a message and persist the log immediately.
        Inputs/Outputs: Input is a Message; no return value.
        Side Effects / State: Mutates the log and writes one storage snapshot.
        Dependencies: Uses _persist.
        Failure Modes: Storage write errors propagate to the caller.
        If Removed: Chat turns are never recorded.
        Testing Notes: Append N messages and verify order and stored JSON.
        """
        self._log.append(message)
        self._persist()

    def messages(self) -> List[Message]:
        return list(self._log)

    def windowed(self) -> List[Message]:
        return list(self._log[-self._max_context_messages:])

    @property
    def is_truncated(self) -> bool:
        return len(self._log) > self._max_context_messages

    def reset(self) -> None:
        # Idempotent: every call leaves exactly the seed greeting.
        self._log = [seed_message()]
        self._persist()
        logger.info("conversation reset key=%s", self._key)

    def __len__(self) -> int:
        return len(self._log)

    def _persist(self) -> None:
        payload = json.dumps([message.model_dump(mode="json") for message in self._log], ensure_ascii=False)
        self._storage.set(self._key, payload)

    def _persist_quietly(self) -> None:
        try:
            self._persist()
        except OSError as exc:
            logger.warning("event=PersistenceCorrupt key=%s reason=seed_not_saved detail=%s", self._key, exc)
