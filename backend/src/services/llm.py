"""LLM backend interface, shared types and backend selection.

Every backend turns ``(history, prompt)`` into one completion string within a
deadline. Callers never branch on which backend they hold.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class ModelType(StrEnum):
    OPENAI = "openai"
    TXAGENT = "txagent"
    GEMINI = "gemini"


class AssistantType(StrEnum):
    SHORTAGE = "shortage"
    DOCUMENT = "document"


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" | "assistant"
    content: str


class LLMError(Exception):
    """Raised when an LLM call fails in a way that retrying will not fix."""


class TransientLLMError(LLMError):
    """Raised for network errors, rate limits and upstream 5xx responses."""


class GenerationTimeout(TransientLLMError):
    """Raised when a generation does not finish within its deadline."""


OnSubmit = Callable[[str], None]


class LLMBackend(Protocol):
    def generate(
        self,
        history: Sequence[ChatMessage],
        prompt: str,
        timeout: float,
        *,
        instructions: str | None = None,
        on_submit: OnSubmit | None = None,
    ) -> str:
        """Return the completion for *prompt* given the prior *history*.

        *on_submit* is called with the upstream handle once one exists.
        Raises GenerationTimeout when *timeout* seconds pass without a result.
        """
        ...


def get_backend(
    model_type: ModelType | str,
    assistant_type: AssistantType | str = AssistantType.DOCUMENT,
) -> LLMBackend:
    """Build the backend for *model_type*.

    Raises ValueError for an unknown model type or missing credentials.
    """
    try:
        model = ModelType(model_type)
    except ValueError:
        raise ValueError(f"Unknown model type: {model_type!r}") from None

    if model is ModelType.OPENAI:
        from src.services.openai_assistant import OpenAIAssistantBackend

        return OpenAIAssistantBackend(assistant_type=AssistantType(assistant_type))
    if model is ModelType.TXAGENT:
        from src.services.runpod import RunPodBackend

        return RunPodBackend()
    from src.services.gemini import GeminiBackend

    return GeminiBackend()
