# /app/tempo/core/llm/providers/stub.py

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from .base import BaseLLMProvider

log = logging.getLogger(__name__)

_ACTION_WORDS = (
    ("DELETE", re.compile(r"\b(delete|cancel|remove)\b", re.I)),
    ("UPDATE", re.compile(r"\b(update|move|reschedule|change)\b", re.I)),
    ("CREATE", re.compile(r"\b(create|add|schedule|book|set up)\b", re.I)),
)


class StubLLMProvider(BaseLLMProvider):
    """Deterministic answers without network access, handy in unit tests and local dev."""
    name = "stub"

    async def complete_json(self, system_prompt: str, user_message: str) -> Optional[str]:
        log.debug("StubLLMProvider: complete_json called")
        action = "GET"
        for candidate, pattern in _ACTION_WORDS:
            if pattern.search(user_message):
                action = candidate
                break
        intent = {
            "action": action,
            "startDate": None,
            "endDate": None,
            "timeStart": None,
            "timeEnd": None,
            "title": user_message.strip()[:80] if action != "GET" else None,
            "location": None,
            "contacts": [],
            "recurrence": None,
            "notes": None,
            "isPrivate": False,
        }
        return json.dumps(intent)
