from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .catalog_context import CatalogContext
from .models import Message, Sender, SessionContext
from .session_context import SessionContextBuilder

logger = logging.getLogger("bookbot.prompt")

POLICY_FILE = "system_policy.txt"
SPEAKER_LABELS = {Sender.USER: "User", Sender.ASSISTANT: "Assistant"}
CLOSING_INSTRUCTION = (
    "Reply as the Assistant to the most recent User message, following every rule above "
    "and using only books from the INVENTORY section."
)


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text with BOM and trailing whitespace removed.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; reads the filesystem.
    Dependencies: Uses Path.read_bytes.
    Failure Modes: Missing files raise OSError; undecodable bytes are dropped.
    If Removed: The composer has no policy preamble.
    Testing Notes: Validate BOM stripping on a file written with utf-8-sig.
    """
    # Undecodable bytes are dropped.
    text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").rstrip()


class PromptComposer:
    """Assemble the grounded prompt for one turn from policy, context and history."""

    def __init__(
        self,
        prompts_dir: Path,
        session_builder: Optional[SessionContextBuilder] = None,
    ) -> None:
        """Purpose: Load the policy preamble once and keep the session builder.
        Inputs/Outputs: Inputs are the prompts directory and an optional builder.
        Side Effects / State: Reads the policy file from disk.
        Dependencies: Uses load_prompt and SessionContextBuilder.
        Failure Modes: A missing policy file raises OSError at construction.
        If Removed: No prompt can be built and every turn falls back.
        Testing Notes: Point prompts_dir at a temp directory with a custom policy.
        """
        self._policy = load_prompt(prompts_dir / POLICY_FILE)
        self._session_builder = session_builder or SessionContextBuilder()

    @property
    def policy(self) -> str:
        return self._policy

    def build(
        self,
        catalog: CatalogContext,
        conversation: Sequence[Message],
        session: Optional[SessionContext] = None,
    ) -> str:
        """Purpose: Compose the full prompt string for the language model.
        Inputs/Outputs: Inputs are the catalog context, the windowed conversation and
            an optional session context; returns the prompt text.
        Side Effects / State: None; identical inputs produce identical output.
        Dependencies: Uses CatalogContext.render and SessionContextBuilder.build.
        Failure Modes: None beyond malformed inputs raising from the models.
        If Removed: ChatClient has nothing to send.
        Testing Notes: Build twice from the same snapshots and compare strings.
        """
        sections: List[str] = [
            self._policy,
            "INVENTORY:\n" + catalog.render(),
        ]
        session_block = self._session_builder.build(session)
        if session_block is not None:
            sections.append("SESSION:\n" + session_block)
        sections.append("CONVERSATION (oldest first):\n" + serialize_conversation(conversation))
        sections.append(CLOSING_INSTRUCTION)
        prompt = "\n\n".join(sections)
        logger.debug(
            "prompt composed chars=%s items=%s messages=%s session=%s",
            len(prompt),
            len(catalog.items),
            len(conversation),
            session_block is not None,
        )
        return prompt


def serialize_conversation(conversation: Sequence[Message]) -> str:
    if not conversation:
        return "(no messages yet)"
    return "\n".join(f"{SPEAKER_LABELS[message.sender]}: {message.text.strip()}" for message in conversation)
