import asyncio
import base64
import json

import pytest

from salesiq.core.errors import (
    EncodingError,
    MalformedResponseError,
    ProviderError,
    ProviderErrorKind,
)
from salesiq.services.analysis_client import (
    ANALYSIS_PROMPT,
    RESPONSE_SCHEMA,
    AnalysisClient,
    AnalysisProvider,
    classify_provider_error,
    parse_analysis,
)

from conftest import FakeProvider


class _ApiError(Exception):
    """Shaped like google.genai.errors.APIError."""

    def __init__(self, code, status, message):
        super().__init__(f"{code} {status}. {message}")
        self.code = code
        self.status = status
        self.message = message


PAYLOAD = base64.b64encode(b"RIFF fake audio bytes").decode("ascii")


def test_fake_provider_satisfies_protocol():
    assert isinstance(FakeProvider(), AnalysisProvider)


def test_analyze_sends_audio_prompt_and_schema(fake_provider):
    client = AnalysisClient(fake_provider)
    result = asyncio.run(client.analyze(PAYLOAD, "audio/wav"))

    assert result.call_type.value == "discovery"
    assert client.requests_issued == 1
    call = fake_provider.calls[0]
    assert call["bytes"] == len(b"RIFF fake audio bytes")
    assert call["mime_type"] == "audio/wav"
    assert call["prompt"] == ANALYSIS_PROMPT
    assert call["schema"] is RESPONSE_SCHEMA


def test_schema_requires_core_sections():
    assert set(RESPONSE_SCHEMA["required"]) == {"callType", "summary", "transcript", "sentiment", "coaching"}
    objection = RESPONSE_SCHEMA["properties"]["objections"]["items"]
    assert objection["properties"]["rebuttalQuality"]["enum"] == ["strong", "weak", "missed"]


def test_invalid_base64_is_encoding_error(fake_provider):
    client = AnalysisClient(fake_provider)
    with pytest.raises(EncodingError):
        asyncio.run(client.analyze("not base64!!", "audio/wav"))
    assert fake_provider.calls == []
    assert client.requests_issued == 0


@pytest.mark.parametrize("reply", [None, "", "   ", "not json", "{\"summary\": \"only\"}", "[]"])
def test_malformed_replies(reply):
    provider = FakeProvider(reply=reply)
    # An explicit None means "use the canned reply" in FakeProvider
    provider.reply = reply
    client = AnalysisClient(provider)
    with pytest.raises(MalformedResponseError):
        asyncio.run(client.analyze(PAYLOAD, "audio/wav"))
    assert client.requests_issued == 1


def test_parse_analysis_accepts_canned(canned_result):
    result = parse_analysis(json.dumps(canned_result))
    assert len(result.transcript) == 4


@pytest.mark.parametrize(
    "error, kind",
    [
        (_ApiError(413, "INVALID_ARGUMENT", "Request payload too large"), ProviderErrorKind.TOO_LARGE),
        (_ApiError(400, "INVALID_ARGUMENT", "The input exceeds the maximum number of tokens"), ProviderErrorKind.TOO_LARGE),
        (_ApiError(429, "RESOURCE_EXHAUSTED", "Quota exceeded"), ProviderErrorKind.RATE_LIMITED),
        (_ApiError(400, "INVALID_ARGUMENT", "Unsupported MIME type: audio/x-foo"), ProviderErrorKind.UNSUPPORTED_MEDIA),
        (_ApiError(400, "INVALID_ARGUMENT", "Request blocked due to safety"), ProviderErrorKind.CONTENT_FILTERED),
        (_ApiError(500, "INTERNAL", "Internal error encountered"), ProviderErrorKind.GENERIC),
        (ConnectionError("connection reset by peer"), ProviderErrorKind.GENERIC),
    ],
)
def test_classify_provider_error(error, kind):
    assert classify_provider_error(error) is kind


def test_provider_failure_becomes_provider_error():
    provider = FakeProvider(error=_ApiError(429, "RESOURCE_EXHAUSTED", "rate limit"))
    client = AnalysisClient(provider)
    with pytest.raises(ProviderError) as info:
        asyncio.run(client.analyze(PAYLOAD, "audio/wav"))
    assert info.value.kind is ProviderErrorKind.RATE_LIMITED
    assert "too many requests" in info.value.user_message


def test_provider_kinds_have_distinct_messages():
    messages = {ProviderError(kind).user_message for kind in ProviderErrorKind}
    assert len(messages) == len(ProviderErrorKind)


def test_application_errors_pass_through():
    provider = FakeProvider(error=ProviderError(ProviderErrorKind.CONTENT_FILTERED, "blocked"))
    client = AnalysisClient(provider)
    with pytest.raises(ProviderError) as info:
        asyncio.run(client.analyze(PAYLOAD, "audio/wav"))
    assert info.value.kind is ProviderErrorKind.CONTENT_FILTERED


def test_each_call_is_one_request(fake_provider):
    client = AnalysisClient(fake_provider)
    asyncio.run(client.analyze(PAYLOAD, "audio/wav"))
    asyncio.run(client.analyze(PAYLOAD, "audio/mpeg"))
    assert client.requests_issued == 2
    assert [c["mime_type"] for c in fake_provider.calls] == ["audio/wav", "audio/mpeg"]
