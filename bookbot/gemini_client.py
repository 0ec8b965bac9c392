from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from .config import Settings
from .models import ChatOutcome, FailureKind

logger = logging.getLogger("bookbot.gemini")

RATE_LIMIT_STATUSES = {429}
UNAUTHORIZED_STATUSES = {401, 403}
BAD_REQUEST_STATUSES = {400, 413, 422}


class GeminiClient:
    """Single-call Gemini wrapper that returns classified outcomes instead of raising."""

    def __init__(
        self,
        settings: Settings,
        model: Optional[Any] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 2048,
    ) -> None:
        """Purpose: Configure the Gemini SDK and build the fixed-model instance.
        Inputs/Outputs: Inputs are Settings and an optional prebuilt model; no return value.
        Side Effects / State: Configures the SDK global API key when no model is supplied.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: Turns can only ever produce fallback replies.
        Testing Notes: Pass a fake model exposing generate_content to avoid network calls.
        """
        self._model_name = _normalize_model_name(settings.gemini_model)
        if not self._model_name:
            raise ValueError("GEMINI_MODEL is required")
        self._generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if model is not None:
            self._model = model
            return
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._model = genai.GenerativeModel(self._model_name)

    @property
    def model_name(self) -> str:
        return self._model_name

    def send(self, prompt: str) -> ChatOutcome:
        """Purpose: Send one prompt and classify the result.
        Inputs/Outputs: Input is the composed prompt; returns a ChatOutcome.
        Side Effects / State: One outbound provider call; never retried.
        Dependencies: Uses GenerativeModel.generate_content and classify_exception.
        Failure Modes: None raised; every provider error becomes a Failure outcome.
        If Removed: The assistant cannot reach the language model.
        Testing Notes: Raise TooManyRequests from a fake model and expect RATE_LIMITED.
        """
        try:
            response = self._model.generate_content(prompt, generation_config=self._generation_config)
            text = _response_text(response)
        except Exception as exc:  # provider SDK raises many unrelated types
            kind, status = classify_exception(exc)
            logger.warning(
                "model=%s outcome=failure kind=%s status=%s error=%s",
                self._model_name,
                kind.value,
                status,
                exc,
            )
            return ChatOutcome.fail(kind, status)
        if not text:
            logger.warning("model=%s outcome=failure kind=unavailable reason=empty_reply", self._model_name)
            return ChatOutcome.fail(FailureKind.UNAVAILABLE)
        logger.info("model=%s outcome=success chars=%s", self._model_name, len(text))
        return ChatOutcome.success(text)


def classify_exception(exc: BaseException) -> Tuple[FailureKind, Optional[int]]:
    """Purpose: Map a provider exception to a FailureKind and optional HTTP status.
    Inputs/Outputs: Input is the raised exception; returns (kind, status).
    Side Effects / State: None; pure function.
    Dependencies: Uses google.api_core exception classes and status codes.
    Failure Modes: Unknown exceptions map to UNAVAILABLE.
    If Removed: The fallback advisor cannot tailor its reply.
    Testing Notes: Cover each exception family plus a bare status-carrying error.
    """
    # Exception classes first, then any HTTP-like status the error carries.
    status = _http_status(exc)
    if isinstance(exc, (google_exceptions.TooManyRequests, google_exceptions.ResourceExhausted)):
        return FailureKind.RATE_LIMITED, status or 429
    if isinstance(exc, (google_exceptions.Unauthenticated, google_exceptions.Unauthorized)):
        return FailureKind.UNAUTHORIZED, status or 401
    if isinstance(exc, (google_exceptions.PermissionDenied, google_exceptions.Forbidden)):
        return FailureKind.UNAUTHORIZED, status or 403
    if isinstance(exc, (google_exceptions.InvalidArgument, google_exceptions.BadRequest)):
        # Gemini rejects a bad key with 400 INVALID_ARGUMENT / API_KEY_INVALID.
        if _mentions_invalid_key(exc):
            return FailureKind.UNAUTHORIZED, status or 400
        return FailureKind.BAD_REQUEST, status or 400
    if isinstance(exc, (BlockedPromptException, StopCandidateException, _UnreadableReply)):
        return FailureKind.BAD_REQUEST, status
    if status in RATE_LIMIT_STATUSES:
        return FailureKind.RATE_LIMITED, status
    if status in UNAUTHORIZED_STATUSES:
        return FailureKind.UNAUTHORIZED, status
    if status in BAD_REQUEST_STATUSES:
        return FailureKind.BAD_REQUEST, status
    return FailureKind.UNAVAILABLE, status


class _UnreadableReply(Exception):
    """Raised when the SDK response has no readable text part."""


def _response_text(response: Any) -> str:
    # response.text raises ValueError when the candidate was blocked or has no parts.
    try:
        text: Optional[str] = getattr(response, "text", None)
    except ValueError as exc:
        raise _UnreadableReply(str(exc)) from exc
    return (text or "").strip()


def _mentions_invalid_key(exc: BaseException) -> bool:
    message = str(exc).lower()
    return "api key" in message or "api_key_invalid" in message


def _http_status(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return int(code)
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return int(status_code)
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return int(status_code)
    return None


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip the "models/" prefix and whitespace from a model name."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
