# /app/tempo/core/llm/providers/gemini.py

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import GenerateContentResponse, GenerationConfig, SafetySettingDict

from tempo.config import settings
from tempo.core.errors import (
    IntentAuthError,
    IntentRateLimitError,
    IntentTimeoutError,
    IntentUpstreamError,
)

from .base import BaseLLMProvider

log = logging.getLogger(__name__)


class GeminiLLMProvider(BaseLLMProvider):
    name = "gemini"

    DEFAULT_SAFETY_SETTINGS: List[SafetySettingDict] = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    ]

    def __init__(self, model_name: Optional[str] = None) -> None:
        if not settings.GEMINI_API_KEY:
            raise RuntimeError("GEMINI_API_KEY is not configured")
        self.model_name = model_name or settings.GEMINI_MODEL
        self.safety_settings = self.DEFAULT_SAFETY_SETTINGS
        # Low temperature: extraction, not conversation
        self.generation_config = GenerationConfig(
            temperature=0.1,
            candidate_count=1,
            response_mime_type="application/json",
        )
        genai.configure(api_key=settings.GEMINI_API_KEY)
        log.info("GeminiLLMProvider initialized with model %s", self.model_name)

    async def complete_json(self, system_prompt: str, user_message: str) -> Optional[str]:
        # The system prompt carries the current datetime, so the model object is per call.
        model = genai.GenerativeModel(
            model_name=self.model_name,
            system_instruction=system_prompt,
            safety_settings=self.safety_settings,
        )
        log.debug("Gemini complete_json: user message length=%d", len(user_message))
        try:
            response: GenerateContentResponse = await model.generate_content_async(
                contents=user_message or "",
                generation_config=self.generation_config,
            )
        except google_exceptions.ResourceExhausted as e:
            raise IntentRateLimitError(str(e), provider=self.name, details=self._status(e)) from e
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            raise IntentAuthError(str(e), provider=self.name, details=self._status(e)) from e
        except google_exceptions.DeadlineExceeded as e:
            raise IntentTimeoutError(str(e), provider=self.name) from e
        except google_exceptions.GoogleAPIError as e:
            raise IntentUpstreamError(str(e), provider=self.name, details=self._status(e)) from e

        return self._extract_text(response)

    @staticmethod
    def _status(exc: Exception) -> Dict[str, int]:
        code = getattr(exc, "code", None)
        return {"upstreamStatus": int(code)} if isinstance(code, int) else {}

    @staticmethod
    def _extract_text(response: GenerateContentResponse) -> Optional[str]:
        if response.prompt_feedback and response.prompt_feedback.block_reason:
            log.warning("Gemini: prompt blocked by safety settings: %s", response.prompt_feedback.block_reason.name)
            return None
        if not response.candidates:
            log.warning("Gemini: response has no candidates.")
            return None
        candidate = response.candidates[0]
        if not candidate.content or not candidate.content.parts:
            finish_reason = candidate.finish_reason.name if candidate.finish_reason else "UNKNOWN"
            log.warning("Gemini: candidate has no content. Finish reason: %s", finish_reason)
            return None
        return "".join(part.text for part in candidate.content.parts if getattr(part, "text", None))
