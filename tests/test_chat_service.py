# tests/test_chat_service.py
import json

import pytest

from tempo.config import settings
from tempo.core.chat.service import (
    FALLBACK_REPLY,
    GREETING_REPLY,
    ChatService,
    describe_intent,
    generate_message_id,
    validate_permissions,
)
from tempo.core.errors import IntentTimeoutError, ValidationError
from tempo.core.llm.client import IntentParser
from tempo.core.llm.providers.base import BaseLLMProvider
from tempo.core.llm.schemas import CalendarIntent
from tempo.core.users.models import User


class RecordingProvider(BaseLLMProvider):
    name = "recording"

    def __init__(self, content=None, exc=None):
        self.content = content
        self.exc = exc
        self.calls = []

    async def complete_json(self, system_prompt, user_message):
        self.calls.append((system_prompt, user_message))
        if self.exc is not None:
            raise self.exc
        return self.content


def intent_json(**overrides):
    data = {
        "action": "CREATE", "startDate": "2025-06-07", "endDate": "2025-06-07",
        "timeStart": "13:00", "timeEnd": "14:00", "title": "Lunch", "location": None,
        "contacts": ["Sam"], "recurrence": None, "notes": None, "isPrivate": False,
    }
    data.update(overrides)
    return json.dumps(data)


def make_chat(provider):
    return ChatService(IntentParser(provider=provider, timeout=1.0))


USER = User(id=1, external_id="user-1", email="user1@example.com")


@pytest.mark.asyncio
@pytest.mark.parametrize("greeting", ["hi", "Hello!", "  hey. "])
async def test_greeting_short_circuits(greeting):
    provider = RecordingProvider(intent_json())
    reply = await make_chat(provider).process_message(USER, greeting)

    assert reply.type == "text"
    assert reply.message == GREETING_REPLY
    assert reply.metadata == {"greeting": True}
    assert provider.calls == []


@pytest.mark.asyncio
async def test_calendar_action_reply():
    provider = RecordingProvider(intent_json())
    reply = await make_chat(provider).process_message(
        USER, "Lunch with Sam tomorrow at 1pm",
        context={"timezone": "Europe/Paris", "contacts": [{"name": "Sam"}, "Kim", {"phone": "1"}]},
    )

    assert reply.type == "calendar_action"
    assert reply.message == 'I\'ll create an event "Lunch" on 2025-06-07 at 13:00 until 14:00 with Sam.'
    assert reply.metadata["calendarIntent"]["startDate"] == "2025-06-07"
    assert reply.user.id == "user-1"
    assert reply.timestamp.endswith("Z")
    dumped = reply.model_dump(by_alias=True)
    assert dumped["messageId"].startswith("msg_")
    system_prompt, user_message = provider.calls[0]
    assert user_message == "Lunch with Sam tomorrow at 1pm"
    assert "[Timezone: Europe/Paris]" in system_prompt
    assert "Known contacts: Sam, Kim" in system_prompt


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, kind",
    [
        (None, "empty_output"),
        ("{not json", "malformed_output"),
        (json.dumps({"action": "GET"}), "missing_fields"),
    ],
)
async def test_output_failures_fall_back_to_text(content, kind):
    reply = await make_chat(RecordingProvider(content)).process_message(USER, "what now")

    assert reply.type == "text"
    assert reply.message == FALLBACK_REPLY
    assert reply.metadata["fallback"] is True
    assert reply.metadata["errorKind"] == kind


@pytest.mark.asyncio
async def test_transport_failures_propagate():
    chat = make_chat(RecordingProvider(exc=IntentTimeoutError("slow", provider="recording")))
    with pytest.raises(IntentTimeoutError):
        await chat.process_message(USER, "show my week")


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", None, 42])
async def test_message_required(message):
    with pytest.raises(ValidationError):
        await make_chat(RecordingProvider(intent_json())).process_message(USER, message)


@pytest.mark.asyncio
async def test_message_too_long():
    too_long = "a" * (settings.CHAT_MAX_MESSAGE_LENGTH + 1)
    with pytest.raises(ValidationError) as exc_info:
        await make_chat(RecordingProvider(intent_json())).process_message(USER, too_long)
    assert exc_info.value.details["maxLength"] == settings.CHAT_MAX_MESSAGE_LENGTH


@pytest.mark.asyncio
async def test_invalid_permissions_rejected():
    chat = make_chat(RecordingProvider(intent_json()))
    with pytest.raises(ValidationError):
        await chat.process_message(USER, "show my week", permissions={"camera": "granted"})

    reply = await chat.process_message(USER, "show my week", permissions={"calendar": "granted"})
    assert reply.type == "calendar_action"


def test_validate_permissions():
    assert validate_permissions({})
    assert validate_permissions({"calendar": "granted", "contacts": "denied", "location": "prompt"})
    assert not validate_permissions({"calendar": "yes"})
    assert not validate_permissions(["calendar"])


@pytest.mark.parametrize(
    "fields, expected",
    [
        ({"action": "CREATE", "title": "Gym", "start_date": "2025-06-07", "end_date": "2025-06-09"},
         'I\'ll create an event "Gym" from 2025-06-07 to 2025-06-09.'),
        ({"action": "CREATE"},
         "I understand you want to create an event. Could you provide more details like the title and date?"),
        ({"action": "GET", "start_date": "2025-06-07", "end_date": "2025-06-08"},
         "I'll show you your schedule from 2025-06-07 to 2025-06-08."),
        ({"action": "GET", "start_date": "2025-06-07"}, "I'll show you your schedule for 2025-06-07."),
        ({"action": "GET"}, "I'll show you your calendar."),
        ({"action": "UPDATE", "title": "Standup"},
         'I\'ll help you update the event "Standup". What changes would you like to make?'),
        ({"action": "DELETE"},
         "I understand you want to delete an event. Which event would you like to remove?"),
    ],
)
def test_describe_intent(fields, expected):
    assert describe_intent(CalendarIntent(**fields)) == expected


def test_message_ids_are_unique():
    assert generate_message_id() != generate_message_id()


@pytest.mark.asyncio
@pytest.mark.parametrize("zone", [5, "America", ["UTC"], "Mars/Olympus"])
async def test_bad_timezone_is_a_validation_error(zone):
    provider = RecordingProvider(intent_json())
    with pytest.raises(ValidationError):
        await make_chat(provider).process_message(USER, "show my week", context={"timezone": zone})
    assert provider.calls == []
