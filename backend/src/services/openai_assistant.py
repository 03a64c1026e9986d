"""OpenAI Assistants backend: thread + run, polled until the run settles."""

import logging
import os
import time
from collections.abc import Callable, Sequence

import openai
from openai import OpenAI

from src.services.llm import (
    AssistantType,
    ChatMessage,
    GenerationTimeout,
    LLMError,
    OnSubmit,
    TransientLLMError,
)

logger = logging.getLogger(__name__)

_ASSISTANT_ENV = {
    AssistantType.SHORTAGE: "OPENAI_SHORTAGE_ASSISTANT_ID",
    AssistantType.DOCUMENT: "OPENAI_DOCUMENT_ASSISTANT_ID",
}
_FAILED_RUN_STATES = {"failed", "cancelled", "expired", "incomplete"}
_TRANSIENT_ERRORS = (openai.APIConnectionError, openai.RateLimitError, openai.InternalServerError)


class OpenAIAssistantBackend:
    """Runs a prompt on a configured OpenAI assistant and returns its reply."""

    def __init__(
        self,
        assistant_type: AssistantType = AssistantType.DOCUMENT,
        *,
        client: OpenAI | None = None,
        assistant_id: str | None = None,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        env_name = _ASSISTANT_ENV[assistant_type]
        self._assistant_id = assistant_id or os.environ.get(env_name, "").strip()
        if not self._assistant_id:
            raise ValueError(f"{env_name} environment variable is not set")
        if client is None:
            api_key = os.environ.get("OPENAI_API_KEY", "").strip()
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable is not set")
            client = OpenAI(api_key=api_key)
        self._client = client
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def generate(
        self,
        history: Sequence[ChatMessage],
        prompt: str,
        timeout: float,
        *,
        instructions: str | None = None,
        on_submit: OnSubmit | None = None,
    ) -> str:
        deadline = self._clock() + timeout
        messages = [{"role": m.role, "content": m.content} for m in history]
        messages.append({"role": "user", "content": prompt})
        try:
            thread = self._client.beta.threads.create(messages=messages)
            run = self._client.beta.threads.runs.create(
                thread_id=thread.id,
                assistant_id=self._assistant_id,
                additional_instructions=instructions,
            )
            if on_submit is not None:
                on_submit(f"{thread.id}/{run.id}")
            logger.info("OpenAI run %s started on thread %s", run.id, thread.id)

            while run.status != "completed":
                if run.status in _FAILED_RUN_STATES:
                    detail = run.last_error.message if run.last_error else run.status
                    raise LLMError(f"OpenAI run {run.id} {run.status}: {detail}")
                if self._clock() >= deadline:
                    self._cancel(thread.id, run.id)
                    raise GenerationTimeout(f"OpenAI run {run.id} did not finish within {timeout:.0f}s")
                self._sleep(self._poll_interval)
                run = self._client.beta.threads.runs.retrieve(run.id, thread_id=thread.id)

            page = self._client.beta.threads.messages.list(thread_id=thread.id, order="desc", limit=1)
        except _TRANSIENT_ERRORS as exc:
            raise TransientLLMError(f"OpenAI request failed: {exc}") from exc
        except openai.OpenAIError as exc:
            raise LLMError(f"OpenAI request failed: {exc}") from exc

        for message in page.data:
            if message.role != "assistant":
                continue
            parts = [block.text.value for block in message.content if block.type == "text"]
            text = "\n".join(parts).strip()
            if text:
                logger.info("OpenAI reply received (%d chars)", len(text))
                return text
        raise LLMError("OpenAI run completed without an assistant reply")

    def _cancel(self, thread_id: str, run_id: str) -> None:
        try:
            self._client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except openai.OpenAIError as exc:
            logger.warning("could not cancel OpenAI run %s: %s", run_id, exc)
