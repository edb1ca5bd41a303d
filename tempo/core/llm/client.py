# /app/tempo/core/llm/client.py

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError as PydanticValidationError

from tempo.config import settings
from tempo.core.errors import (
    IntentEmptyOutputError,
    IntentError,
    IntentMalformedOutputError,
    IntentMissingFieldsError,
    IntentTimeoutError,
    IntentUpstreamError,
    ValidationError,
)
from tempo.core.timeutils import utcnow

from .prompts import build_system_prompt
from .providers import get_llm_provider
from .providers.base import BaseLLMProvider
from .schemas import CalendarIntent, check_intent_shape

log = logging.getLogger(__name__)


class IntentParser:
    """
    Turns a free-text chat message into a ``CalendarIntent`` through the
    configured LLM provider.

    Every failure is raised as one ``IntentError`` subclass so that callers
    can decide between retrying and surfacing it to the user.
    """

    def __init__(self, provider: Optional[BaseLLMProvider] = None, timeout: Optional[float] = None):
        # The factory returns the cached provider instance ('stub', 'gemini', ...)
        self.provider: BaseLLMProvider = provider or get_llm_provider()
        self.timeout: float = timeout if timeout is not None else settings.INTENT_TIMEOUT_SECONDS
        log.debug("IntentParser using provider: %s (timeout=%.1fs)", self.provider.name, self.timeout)

    async def parse(
        self,
        text: str,
        now: Optional[datetime] = None,
        timezone_name: str = "UTC",
        contacts: Optional[Sequence[str]] = None,
    ) -> CalendarIntent:
        """
        Extracts a calendar intent from ``text``.

        Args:
            text (str): User message.
            now (datetime | None, optional): Reference instant. Defaults to the current time.
            timezone_name (str, optional): IANA zone of the user, used for relative dates.
            contacts (Sequence[str] | None, optional): Known contact names.

        Returns:
            CalendarIntent: The validated intent.

        Raises:
            ValidationError: Unknown timezone.
            IntentTimeoutError: The provider did not answer within ``timeout`` seconds.
            IntentUpstreamError: The provider call failed (auth and rate-limit are subclasses).
            IntentEmptyOutputError: The provider answered with nothing.
            IntentMalformedOutputError: The answer is not a usable JSON object.
            IntentMissingFieldsError: The JSON object lacks required keys.
        """
        # Directory names ("America") surface as OSError, non-strings as TypeError
        try:
            zone = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError, OSError, TypeError) as e:
            raise ValidationError(f"Unknown timezone: {timezone_name}") from e
        local_now = (now or utcnow()).astimezone(zone)
        system_prompt = build_system_prompt(local_now, timezone_name, contacts)

        started = time.monotonic()
        log.info(
            "Intent request started: provider=%s, message length=%d, contacts=%d",
            self.provider.name, len(text or ""), len(contacts or ()),
        )
        try:
            # wait_for cancels the provider call on timeout
            content = await asyncio.wait_for(
                self.provider.complete_json(system_prompt, text or ""), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            log.warning("Intent request timed out after %.1fs", self.timeout)
            raise IntentTimeoutError(f"No answer within {self.timeout:.1f}s", provider=self.provider.name) from e
        except IntentError:
            raise
        except Exception as e:
            log.exception("Intent request failed in provider %s", self.provider.name)
            raise IntentUpstreamError(str(e) or type(e).__name__, provider=self.provider.name) from e
        latency_ms = (time.monotonic() - started) * 1000

        if content is None or not content.strip():
            log.error("Intent request returned empty content after %.0fms", latency_ms)
            raise IntentEmptyOutputError("Language model returned no content", provider=self.provider.name)

        try:
            payload = json.loads(content)
        except ValueError as e:
            log.error("Intent request returned invalid JSON (length=%d)", len(content))
            raise IntentMalformedOutputError("Language model returned invalid JSON", provider=self.provider.name) from e
        if not isinstance(payload, dict):
            raise IntentMalformedOutputError("Language model returned JSON that is not an object",
                                             provider=self.provider.name)

        report = check_intent_shape(payload)
        if not report.ok:
            log.error("Intent is missing keys %s (unexpected: %s)", report.missing, report.unexpected)
            raise IntentMissingFieldsError(report, provider=self.provider.name)
        if report.unexpected:
            log.debug("Intent carries extra keys, ignored: %s", report.unexpected)

        try:
            intent = CalendarIntent.model_validate(payload)
        except PydanticValidationError as e:
            raise IntentMalformedOutputError(
                "Language model returned values of the wrong type",
                provider=self.provider.name,
                details={"errors": [err.get("msg") for err in e.errors()]},
            ) from e

        log.info("Intent parsed in %.0fms: action=%s", latency_ms, intent.action)
        return intent
