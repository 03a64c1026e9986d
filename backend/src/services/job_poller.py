"""Client-side status poller: waits for a job to settle, cancellable."""

import logging
import threading
import time
import uuid
from collections.abc import Callable

import httpx

from src.models.job import JobStatus
from src.schemas.job import JobStatusResponse

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[uuid.UUID], JobStatusResponse]

_SETTLED = {JobStatus.COMPLETED, JobStatus.FAILED}


class PollTimeoutError(Exception):
    """Raised when a job has not settled within the poller's maximum wait."""


class PollCancelledError(Exception):
    """Raised when the caller cancels a wait before the job settles."""


def http_fetcher(base_url: str, client: httpx.Client | None = None) -> StatusFetcher:
    """Build a fetcher that reads ``GET {base_url}/jobs/{id}``.

    A supplied *client* is used as is and must already carry the base URL.
    """
    http = client or httpx.Client(base_url=base_url, timeout=10.0)

    def fetch(job_id: uuid.UUID) -> JobStatusResponse:
        response = http.get(f"/jobs/{job_id}")
        response.raise_for_status()
        return JobStatusResponse.model_validate(response.json())

    return fetch


class JobStatusPoller:
    def __init__(
        self,
        fetch_status: StatusFetcher,
        interval: float = 5.0,
        max_wait: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_status = fetch_status
        self._interval = interval
        self._max_wait = max_wait
        self._clock = clock

    def wait(self, job_id: uuid.UUID, cancel: threading.Event | None = None) -> JobStatusResponse:
        """Poll until the job is completed or failed.

        Raises PollCancelledError as soon as *cancel* is set and PollTimeoutError
        once ``max_wait`` seconds have passed. Fetch errors are logged and retried
        on the next tick.
        """
        cancel = cancel or threading.Event()
        deadline = self._clock() + self._max_wait
        while True:
            if cancel.is_set():
                raise PollCancelledError(f"Stopped waiting for job {job_id}")
            try:
                status = self._fetch_status(job_id)
            except httpx.HTTPError as exc:
                logger.warning("status check for job %s failed: %s", job_id, exc)
            else:
                if status.status in _SETTLED:
                    logger.info("job %s settled as %s", job_id, status.status.value)
                    return status
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise PollTimeoutError(f"Job {job_id} did not finish within {self._max_wait:.0f}s")
            # Event.wait doubles as the sleep so cancellation is immediate.
            if cancel.wait(min(self._interval, remaining)):
                raise PollCancelledError(f"Stopped waiting for job {job_id}")
