# /app/tempo/core/llm/providers/base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers (ASYNC)."""
    name: str  # provider name (e.g. 'stub', 'gemini')

    @abstractmethod
    async def complete_json(self, system_prompt: str, user_message: str) -> Optional[str]:
        """
        Sends one request that must be answered with a JSON object.

        Returns the raw text of the answer (``None`` or ``""`` when the model
        produced nothing). Transport failures are raised as
        ``IntentUpstreamError`` subclasses; timeouts are enforced by the caller.
        """
        ...


__all__ = ["BaseLLMProvider"]
