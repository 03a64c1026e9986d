"""Gemini backend: single-shot ``generate_content`` with the history as contents."""

import logging
import os
from collections.abc import Sequence

import httpx
from google import genai
from google.genai import errors, types

from src.services.llm import ChatMessage, GenerationTimeout, LLMError, OnSubmit, TransientLLMError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiBackend:
    """Calls the Gemini API for chat replies and documents."""

    def __init__(self, client: genai.Client | None = None, model: str | None = None) -> None:
        if client is None:
            api_key = os.environ.get("GEMINI_API_KEY", "").strip()
            if not api_key:
                raise ValueError("GEMINI_API_KEY environment variable is not set")
            client = genai.Client(api_key=api_key)
        self._client = client
        self._model = model or os.environ.get("GEMINI_CHAT_MODEL", "").strip() or DEFAULT_MODEL

    def generate(
        self,
        history: Sequence[ChatMessage],
        prompt: str,
        timeout: float,
        *,
        instructions: str | None = None,
        on_submit: OnSubmit | None = None,
    ) -> str:
        # Gemini calls the assistant side "model".
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))
        config = types.GenerateContentConfig(
            system_instruction=instructions,
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )

        logger.info("sending %d message(s) to Gemini model %s", len(contents), self._model)
        try:
            response = self._client.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )
        except errors.ServerError as exc:
            raise TransientLLMError(f"Gemini request failed: {exc}") from exc
        except errors.APIError as exc:
            if exc.code == 429:
                raise TransientLLMError(f"Gemini rate limited: {exc}") from exc
            raise LLMError(f"Gemini request failed: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise GenerationTimeout(f"Gemini request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientLLMError(f"Gemini connection error: {exc}") from exc

        text = (response.text or "").strip()
        if not text:
            raise LLMError("Gemini returned an empty response")
        logger.info("Gemini response received (%d chars)", len(text))
        return text
