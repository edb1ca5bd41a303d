# /app/tempo/core/chat/service.py

from __future__ import annotations

import logging
import re
import secrets
import time
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from tempo.config import settings
from tempo.core.errors import (
    IntentEmptyOutputError,
    IntentMalformedOutputError,
    IntentMissingFieldsError,
    ValidationError,
)
from tempo.core.llm.client import IntentParser
from tempo.core.llm.schemas import CalendarIntent
from tempo.core.timeutils import isoformat, utcnow
from tempo.core.users.models import User

log = logging.getLogger(__name__)

GREETING_RE = re.compile(r"^(hi|hello|hey|yo|sup|howdy|hola|bonjour|hallo)(!|\.)?$")

GREETING_REPLY = (
    "Hello! I'm here to help with your calendar. You can say things like "
    "'Create lunch with Sam tomorrow at 1pm' or 'Show my events for Friday'."
)
FALLBACK_REPLY = "I understand your message. How can I help you with your calendar or other tasks?"

PERMISSION_KEYS = ("calendar", "contacts", "notifications", "location")
PERMISSION_VALUES = ("granted", "denied", "prompt", "default")

# Output-shape failures degrade to a text reply; transport failures propagate.
_DEGRADABLE = (IntentEmptyOutputError, IntentMalformedOutputError, IntentMissingFieldsError)


class ChatUser(BaseModel):
    id: str
    email: Optional[str] = None


class ChatReply(BaseModel):
    message: str
    type: str
    timestamp: str
    message_id: str = Field(..., serialization_alias="messageId")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    user: ChatUser


def generate_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def describe_intent(intent: CalendarIntent) -> str:
    """Human-readable confirmation of what the assistant understood."""
    title, start, end = intent.title, intent.start_date, intent.end_date
    if intent.action == "CREATE":
        if title and start:
            time_str = f" at {intent.time_start}" if intent.time_start else ""
            end_time_str = (
                f" until {intent.time_end}" if intent.time_end and intent.time_end != intent.time_start else ""
            )
            contact_str = f" with {', '.join(intent.contacts)}" if intent.contacts else ""
            if not end or start == end:
                return f'I\'ll create an event "{title}" on {start}{time_str}{end_time_str}{contact_str}.'
            return f'I\'ll create an event "{title}" from {start} to {end}{time_str}{end_time_str}{contact_str}.'
        return "I understand you want to create an event. Could you provide more details like the title and date?"
    if intent.action == "GET":
        if start and end and start != end:
            return f"I'll show you your schedule from {start} to {end}."
        if start:
            return f"I'll show you your schedule for {start}."
        return "I'll show you your calendar."
    if intent.action == "UPDATE":
        if title:
            return f'I\'ll help you update the event "{title}". What changes would you like to make?'
        return "I understand you want to update an event. Which event would you like to modify?"
    if intent.action == "DELETE":
        if title:
            return f'I\'ll help you delete the event "{title}".'
        return "I understand you want to delete an event. Which event would you like to remove?"
    return "I understand your calendar request. How can I help you further?"  # pragma: no cover


def _contact_names(context: Optional[Mapping[str, Any]]) -> List[str]:
    names: List[str] = []
    for item in (context or {}).get("contacts") or []:
        if isinstance(item, str):
            names.append(item)
        elif isinstance(item, Mapping) and isinstance(item.get("name"), str):
            names.append(item["name"])
    return names


def validate_permissions(permissions: Any) -> bool:
    if not isinstance(permissions, Mapping):
        return False
    return all(k in PERMISSION_KEYS and v in PERMISSION_VALUES for k, v in permissions.items())


class ChatService:
    """
    Chat flow: greeting short-circuit, then intent extraction.

    The intent is described back to the user, not executed; ``CalendarIntent``
    in the reply metadata is the hand-off point for an executor.
    """

    def __init__(self, parser: IntentParser):
        self.parser = parser

    # ---- Public business-methods ----

    async def process_message(
        self,
        user: User,
        message: Any,
        context: Optional[Mapping[str, Any]] = None,
        permissions: Optional[Mapping[str, Any]] = None,
    ) -> ChatReply:
        """
        Builds the assistant's reply to one chat message.

        Args:
            user (User): Authenticated user.
            message: Raw message text.
            context (Mapping | None, optional): Client context, may carry ``contacts`` and ``timezone``.
            permissions (Mapping | None, optional): Client permission states.

        Returns:
            ChatReply: Reply with type ``text`` or ``calendar_action``.

        Raises:
            ValidationError: Empty or too long message, bad permissions or timezone.
            IntentTimeoutError, IntentUpstreamError: The language model could not be reached.
        """
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Message is required and must be a non-empty string")
        if len(message) > settings.CHAT_MAX_MESSAGE_LENGTH:
            raise ValidationError(
                f"Message is too long (max {settings.CHAT_MAX_MESSAGE_LENGTH} characters)",
                {"maxLength": settings.CHAT_MAX_MESSAGE_LENGTH},
            )
        if permissions is not None and not validate_permissions(permissions):
            raise ValidationError("Invalid permissions structure")

        log.info("Processing chat message of user %s (length=%d)", user.external_id, len(message))
        normalized = message.strip().lower()
        if GREETING_RE.match(normalized):
            return self._reply(user, GREETING_REPLY, "text", {"greeting": True})

        contacts = _contact_names(context)
        timezone_name = (context or {}).get("timezone") or "UTC"
        if not isinstance(timezone_name, str):
            raise ValidationError("context.timezone must be an IANA zone name", {"timezone": repr(timezone_name)})
        try:
            intent = await self.parser.parse(message.strip(), timezone_name=timezone_name, contacts=contacts)
        except _DEGRADABLE as e:
            log.warning("Calendar intent parsing failed (%s), using fallback response", e.details.get("kind"))
            return self._reply(
                user, FALLBACK_REPLY, "text",
                {"fallback": True, "error": e.message, "errorKind": e.details.get("kind")},
            )

        return self._reply(
            user,
            describe_intent(intent),
            "calendar_action",
            {"calendarIntent": intent.model_dump(by_alias=True)},
        )

    @staticmethod
    def _reply(user: User, text: str, kind: str, metadata: Dict[str, Any]) -> ChatReply:
        return ChatReply(
            message=text,
            type=kind,
            timestamp=isoformat(utcnow()),
            message_id=generate_message_id(),
            metadata=metadata,
            user=ChatUser(id=user.external_id, email=user.email),
        )
