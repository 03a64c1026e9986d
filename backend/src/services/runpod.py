"""RunPod serverless backend for the TxAgent model.

Submits an OpenAI-style chat request to ``/run`` and polls ``/status/{id}``
until the job settles. The endpoint returns its output in several shapes;
:func:`extract_output` reduces all of them to plain text.
"""

import logging
import os
import time
from collections.abc import Callable, Sequence

import httpx

from src.services.llm import ChatMessage, GenerationTimeout, LLMError, OnSubmit, TransientLLMError

logger = logging.getLogger(__name__)

RUNPOD_BASE_URL = "https://api.runpod.ai/v2"
DEFAULT_MODEL = "mims-harvard/TxAgent-T1-Llama-3.1-8B"
DEFAULT_SYSTEM_PROMPT = (
    "You are TxAgent, a specialized AI assistant for pharmaceutical professionals. "
    "You help clinicians and decision makers understand the impact of drug shortages "
    "and develop response strategies."
)

_IN_PROGRESS = {"IN_QUEUE", "IN_PROGRESS"}
_TERMINAL_FAILURES = {"FAILED", "CANCELLED", "TIMED_OUT"}


def _token_text(token: object) -> str:
    if isinstance(token, str):
        return token
    if isinstance(token, dict):
        return str(token.get("text") or token.get("content") or "")
    return ""


def extract_output(output: object) -> str:
    """Reduce a RunPod ``output`` value to the generated text.

    Handles plain strings, ``{"choices": [{"message": {"content": ...}}]}``,
    ``{"choices": [{"tokens": [...]}]}``, ``{"tokens": [...]}``,
    ``{"message": {"content": ...}}``, ``{"content": ...}`` and lists of any of these.
    """
    if output is None:
        return ""
    if isinstance(output, str):
        return output
    if isinstance(output, list):
        return "".join(extract_output(item) for item in output)
    if isinstance(output, dict):
        choices = output.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0]
            if isinstance(first, dict):
                message = first.get("message")
                if isinstance(message, dict) and message.get("content"):
                    return str(message["content"])
                if isinstance(first.get("tokens"), list):
                    return "".join(_token_text(t) for t in first["tokens"])
                if first.get("text"):
                    return str(first["text"])
        if isinstance(output.get("tokens"), list):
            return "".join(_token_text(t) for t in output["tokens"])
        message = output.get("message")
        if isinstance(message, dict) and message.get("content"):
            return str(message["content"])
        if output.get("content"):
            return str(output["content"])
        if output.get("text"):
            return str(output["text"])
    raise LLMError(f"Could not extract text from RunPod output of type {type(output).__name__}")


class RunPodBackend:
    """Calls the TxAgent model hosted on a RunPod serverless endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        endpoint_id: str | None = None,
        model: str | None = None,
        *,
        client: httpx.Client | None = None,
        poll_interval: float = 2.0,
        max_tokens: int = 2200,
        temperature: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        api_key = api_key or os.environ.get("RUNPOD_API_KEY", "").strip()
        endpoint_id = endpoint_id or os.environ.get("RUNPOD_ENDPOINT_ID", "").strip()
        if not api_key:
            raise ValueError("RUNPOD_API_KEY environment variable is not set")
        if not endpoint_id:
            raise ValueError("RUNPOD_ENDPOINT_ID environment variable is not set")
        self._model = model or os.environ.get("TXAGENT_MODEL", "").strip() or DEFAULT_MODEL
        self._base_url = f"{RUNPOD_BASE_URL}/{endpoint_id}"
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._client = client or httpx.Client(timeout=30.0)
        self._poll_interval = poll_interval
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._sleep = sleep
        self._clock = clock

    def _request(self, method: str, path: str, **kwargs: object) -> dict[str, object]:
        try:
            response = self._client.request(method, f"{self._base_url}{path}", headers=self._headers, **kwargs)  # type: ignore[arg-type]
        except httpx.TimeoutException as exc:
            raise GenerationTimeout(f"RunPod request timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientLLMError(f"RunPod request failed: {exc}") from exc
        if response.status_code == 429 or response.status_code >= 500:
            raise TransientLLMError(f"RunPod returned {response.status_code}: {response.text[:200]}")
        if response.status_code >= 400:
            raise LLMError(f"RunPod returned {response.status_code}: {response.text[:200]}")
        data = response.json()
        if not isinstance(data, dict):
            raise LLMError("RunPod returned a non-object response")
        return data

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
        messages = [{"role": "system", "content": instructions or DEFAULT_SYSTEM_PROMPT}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": prompt})
        payload = {
            "input": {
                "model": self._model,
                "messages": messages,
                "max_tokens": self._max_tokens,
                "temperature": self._temperature,
            }
        }

        data = self._request("POST", "/run", json=payload)
        run_id = str(data.get("id") or "")
        if not run_id:
            raise LLMError("RunPod did not return a job id")
        if on_submit is not None:
            on_submit(run_id)
        logger.info("RunPod job %s submitted (model %s)", run_id, self._model)

        status = str(data.get("status", "IN_QUEUE"))
        while status in _IN_PROGRESS:
            if self._clock() >= deadline:
                self._cancel(run_id)
                raise GenerationTimeout(f"RunPod job {run_id} did not finish within {timeout:.0f}s")
            self._sleep(self._poll_interval)
            data = self._request("GET", f"/status/{run_id}")
            status = str(data.get("status", ""))

        if status == "COMPLETED":
            text = extract_output(data.get("output")).strip()
            if not text:
                raise LLMError(f"RunPod job {run_id} returned empty output")
            logger.info("RunPod job %s completed (%d chars)", run_id, len(text))
            return text
        if status in _TERMINAL_FAILURES:
            detail = data.get("error") or status.lower()
            if status == "FAILED":
                raise LLMError(f"RunPod job {run_id} failed: {detail}")
            raise TransientLLMError(f"RunPod job {run_id} {detail}")
        raise LLMError(f"RunPod job {run_id} returned unexpected status {status!r}")

    def _cancel(self, run_id: str) -> None:
        try:
            self._request("POST", f"/cancel/{run_id}")
        except LLMError as exc:
            logger.warning("could not cancel RunPod job %s: %s", run_id, exc)
