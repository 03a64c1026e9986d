"""Deadline-bounded LLM calls with exponential backoff between tries."""

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

from src.services.llm import ChatMessage, GenerationTimeout, LLMBackend, OnSubmit, TransientLLMError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_TIMEOUT_SECONDS = float(os.environ.get("DOCUMENT_TIMEOUT_SECONDS", "180"))
CHAT_TIMEOUT_SECONDS = float(os.environ.get("CHAT_TIMEOUT_SECONDS", "45"))
BACKOFF_BASE_SECONDS = 2.5
MAX_TRIES = 3


def call_with_timeout(fn: Callable[[], T], timeout: float) -> T:
    """Run *fn* and return its result, or raise GenerationTimeout after *timeout* seconds.

    The call runs on a daemon thread. On timeout the thread is abandoned, so the
    caller gets control back, and the process can still exit, even if *fn*
    never returns. Backends get the same deadline and stop on their own.
    """
    outcome: queue.Queue[tuple[bool, object]] = queue.Queue(maxsize=1)

    def run() -> None:
        try:
            outcome.put((True, fn()))
        except BaseException as exc:
            outcome.put((False, exc))

    threading.Thread(target=run, name="llm-call", daemon=True).start()
    try:
        ok, value = outcome.get(timeout=timeout)
    except queue.Empty:
        raise GenerationTimeout(f"LLM call did not return within {timeout:.0f}s") from None
    if not ok:
        assert isinstance(value, BaseException)
        raise value
    return value  # type: ignore[return-value]


def backoff_delay(retry_index: int) -> float:
    """Seconds to wait before retry number *retry_index* (0-based): 2.5, 5, 10, ..."""
    return BACKOFF_BASE_SECONDS * 2**retry_index


def generate_with_retry(
    backend: LLMBackend,
    history: Sequence[ChatMessage],
    prompt: str,
    timeout: float,
    *,
    instructions: str | None = None,
    on_submit: OnSubmit | None = None,
    max_tries: int = MAX_TRIES,
    on_retry: Callable[[TransientLLMError, int], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Generate with *backend*, retrying transient failures with backoff.

    ``on_retry(exc, retry_index)`` runs before each retry and may return False
    to stop retrying, in which case *exc* is raised. Non-transient errors are
    raised immediately.
    """
    retry_index = 0
    while True:
        try:
            return call_with_timeout(
                lambda: backend.generate(
                    history,
                    prompt,
                    timeout,
                    instructions=instructions,
                    on_submit=on_submit,
                ),
                timeout,
            )
        except TransientLLMError as exc:
            if retry_index + 1 >= max_tries:
                logger.warning("LLM call failed after %d tries: %s", retry_index + 1, exc)
                raise
            if on_retry is not None and not on_retry(exc, retry_index):
                logger.info("retry vetoed after try %d: %s", retry_index + 1, exc)
                raise
            delay = backoff_delay(retry_index)
            logger.warning("LLM call failed (try %d/%d): %s; retrying in %.1fs", retry_index + 1, max_tries, exc, delay)
            sleep(delay)
            retry_index += 1
