# tests/test_intent_parser.py
import asyncio
import json
from datetime import datetime, timezone

import pytest

from tempo.core.errors import (
    IntentEmptyOutputError,
    IntentMalformedOutputError,
    IntentMissingFieldsError,
    IntentRateLimitError,
    IntentTimeoutError,
    IntentUpstreamError,
    ValidationError,
)
from tempo.core.llm.client import IntentParser
from tempo.core.llm.prompts import build_context_prompt
from tempo.core.llm.providers import get_llm_provider
from tempo.core.llm.providers.base import BaseLLMProvider
from tempo.core.llm.providers.stub import StubLLMProvider
from tempo.core.llm.schemas import REQUIRED_INTENT_KEYS, check_intent_shape

NOW = datetime(2025, 6, 6, 9, 30, tzinfo=timezone.utc)

FULL_INTENT = {
    "action": "CREATE",
    "startDate": "2025-06-07",
    "endDate": "2025-06-07",
    "timeStart": "13:00",
    "timeEnd": "14:00",
    "title": "Lunch",
    "location": "Cafe",
    "contacts": ["Sam"],
    "recurrence": "none",
    "notes": None,
    "isPrivate": False,
}


class FakeProvider(BaseLLMProvider):
    name = "fake"

    def __init__(self, content=None, exc=None, delay=0.0):
        self.content = content
        self.exc = exc
        self.delay = delay
        self.prompts = []

    async def complete_json(self, system_prompt, user_message):
        self.prompts.append(system_prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.content


def parser_for(content=None, exc=None):
    return IntentParser(provider=FakeProvider(content, exc=exc), timeout=1.0)


@pytest.mark.asyncio
async def test_parse_full_intent():
    provider = FakeProvider(json.dumps(FULL_INTENT))
    intent = await IntentParser(provider=provider, timeout=1.0).parse(
        "Lunch with Sam tomorrow at 1pm", now=NOW, timezone_name="Europe/Berlin", contacts=["Sam", "Kim"]
    )

    assert intent.action == "CREATE"
    assert intent.start_date == "2025-06-07"
    assert intent.contacts == ["Sam"]
    assert intent.model_dump(by_alias=True)["isPrivate"] is False
    # Reference time is rendered in the user's zone
    assert "2025-06-06T11:30:00+02:00" in provider.prompts[0]
    assert "Known contacts: Sam, Kim" in provider.prompts[0]


@pytest.mark.asyncio
async def test_parse_normalizes_action_case_and_ignores_extra_keys():
    payload = dict(FULL_INTENT, action="delete", confidence=0.9)
    intent = await parser_for(json.dumps(payload)).parse("cancel lunch", now=NOW)
    assert intent.action == "DELETE"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [None, "", "   "])
async def test_empty_output(content):
    with pytest.raises(IntentEmptyOutputError) as exc_info:
        await parser_for(content).parse("hello there", now=NOW)
    assert exc_info.value.details["kind"] == "empty_output"
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["not json", "[1, 2]", '"just a string"'])
async def test_malformed_output(content):
    with pytest.raises(IntentMalformedOutputError):
        await parser_for(content).parse("show my week", now=NOW)


@pytest.mark.asyncio
async def test_missing_fields_carries_report():
    payload = {k: v for k, v in FULL_INTENT.items() if k not in ("timeEnd", "isPrivate")}
    payload["mood"] = "happy"

    with pytest.raises(IntentMissingFieldsError) as exc_info:
        await parser_for(json.dumps(payload)).parse("lunch", now=NOW)

    report = exc_info.value.report
    assert set(report.missing) == {"timeEnd", "isPrivate"}
    assert report.unexpected == ("mood",)
    assert exc_info.value.details["missing"] == list(report.missing)


@pytest.mark.asyncio
async def test_wrong_value_type_is_malformed():
    payload = dict(FULL_INTENT, action="EXPLODE")
    with pytest.raises(IntentMalformedOutputError) as exc_info:
        await parser_for(json.dumps(payload)).parse("lunch", now=NOW)
    assert exc_info.value.details["errors"]


@pytest.mark.asyncio
async def test_slow_provider_times_out():
    parser = IntentParser(provider=FakeProvider(json.dumps(FULL_INTENT), delay=0.5), timeout=0.05)
    with pytest.raises(IntentTimeoutError) as exc_info:
        await parser.parse("lunch", now=NOW)
    assert exc_info.value.details["provider"] == "fake"


@pytest.mark.asyncio
async def test_unexpected_provider_exception_becomes_upstream_error():
    with pytest.raises(IntentUpstreamError) as exc_info:
        await parser_for(exc=ConnectionResetError("peer reset")).parse("lunch", now=NOW)
    assert type(exc_info.value) is IntentUpstreamError
    assert "peer reset" in exc_info.value.message


@pytest.mark.asyncio
async def test_classified_provider_errors_pass_through():
    error = IntentRateLimitError("quota", provider="fake")
    with pytest.raises(IntentRateLimitError) as exc_info:
        await parser_for(exc=error).parse("lunch", now=NOW)
    assert exc_info.value is error


@pytest.mark.asyncio
@pytest.mark.parametrize("zone", ["Mars/Olympus", "America", 5, ["UTC"]])
async def test_unknown_timezone(zone):
    with pytest.raises(ValidationError):
        await parser_for(json.dumps(FULL_INTENT)).parse("lunch", now=NOW, timezone_name=zone)


def test_check_intent_shape():
    report = check_intent_shape(FULL_INTENT)
    assert report.ok
    assert report.missing == () and report.unexpected == ()
    assert not check_intent_shape({}).ok
    assert check_intent_shape({}).missing == REQUIRED_INTENT_KEYS


def test_context_prompt_skips_blank_contacts():
    prompt = build_context_prompt(NOW, "UTC", ["", "  ", "Ana"])
    assert prompt.endswith("Known contacts: Ana")
    assert "(Friday)" in prompt


# ---- Stub provider ----

@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message, action",
    [
        ("Schedule a dentist visit", "CREATE"),
        ("Cancel the standup", "DELETE"),
        ("Move lunch to 2pm", "UPDATE"),
        ("What's on tomorrow?", "GET"),
    ],
)
async def test_stub_provider_end_to_end(message, action):
    assert isinstance(get_llm_provider(), StubLLMProvider)
    intent = await IntentParser(timeout=1.0).parse(message, now=NOW)
    assert intent.action == action
    assert (intent.title is None) is (action == "GET")
