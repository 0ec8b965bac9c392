import dataclasses

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import FakeModel
from bookbot.gemini_client import GeminiClient, classify_exception
from bookbot.models import FailureKind


class _BlockedResponse:
    @property
    def text(self):
        raise ValueError("The response.text quick accessor requires a valid Part")


class _BlockedModel:
    def generate_content(self, prompt, generation_config=None):
        return _BlockedResponse()


class _HttpError(Exception):
    def __init__(self, status_code):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def test_success_returns_stripped_text(settings):
    model = FakeModel(reply="  Try **Dune**.  \n")
    client = GeminiClient(settings, model=model)

    outcome = client.send("prompt text")

    assert outcome.ok
    assert outcome.text == "Try **Dune**."
    assert model.prompts == ["prompt text"]


def test_send_makes_exactly_one_call_even_on_failure(settings):
    model = FakeModel(error=google_exceptions.ServiceUnavailable("backend down"))
    client = GeminiClient(settings, model=model)

    outcome = client.send("prompt")

    assert not outcome.ok
    assert outcome.failure == FailureKind.UNAVAILABLE
    assert len(model.prompts) == 1


@pytest.mark.parametrize(
    "error, kind, status",
    [
        (google_exceptions.TooManyRequests("quota exceeded"), FailureKind.RATE_LIMITED, 429),
        (google_exceptions.ResourceExhausted("quota exceeded"), FailureKind.RATE_LIMITED, 429),
        (google_exceptions.Unauthenticated("credentials rejected"), FailureKind.UNAUTHORIZED, 401),
        (google_exceptions.PermissionDenied("no access"), FailureKind.UNAUTHORIZED, 403),
        (google_exceptions.InvalidArgument("API key not valid. Please pass a valid API key."), FailureKind.UNAUTHORIZED, 400),
        (google_exceptions.InvalidArgument("Request contains an invalid argument."), FailureKind.BAD_REQUEST, 400),
        (google_exceptions.InternalServerError("boom"), FailureKind.UNAVAILABLE, 500),
        (google_exceptions.DeadlineExceeded("slow"), FailureKind.UNAVAILABLE, 504),
        (TimeoutError("timed out"), FailureKind.UNAVAILABLE, None),
        (_HttpError(429), FailureKind.RATE_LIMITED, 429),
        (_HttpError(401), FailureKind.UNAUTHORIZED, 401),
        (_HttpError(422), FailureKind.BAD_REQUEST, 422),
        (_HttpError(502), FailureKind.UNAVAILABLE, 502),
    ],
)
def test_classify_exception(error, kind, status):
    assert classify_exception(error) == (kind, status)


def test_rate_limit_outcome_carries_status(settings):
    client = GeminiClient(settings, model=FakeModel(error=google_exceptions.TooManyRequests("slow down")))

    outcome = client.send("prompt")

    assert outcome.failure == FailureKind.RATE_LIMITED
    assert outcome.http_status == 429


def test_unreadable_reply_is_bad_request(settings):
    outcome = GeminiClient(settings, model=_BlockedModel()).send("prompt")

    assert outcome.failure == FailureKind.BAD_REQUEST


def test_empty_reply_is_unavailable(settings):
    outcome = GeminiClient(settings, model=FakeModel(reply="   ")).send("prompt")

    assert outcome.failure == FailureKind.UNAVAILABLE


def test_missing_api_key_fails_at_construction(settings):
    with pytest.raises(ValueError):
        GeminiClient(dataclasses.replace(settings, gemini_api_key=""))


def test_model_name_prefix_is_normalized(settings):
    client = GeminiClient(dataclasses.replace(settings, gemini_model="models/gemini-2.0-flash"), model=FakeModel())

    assert client.model_name == "gemini-2.0-flash"
