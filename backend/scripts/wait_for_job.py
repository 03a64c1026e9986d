"""Wait for a document job to finish by polling the API.

Usage:
    python scripts/wait_for_job.py JOB_ID [--base-url http://localhost:8000] [--interval 5] [--max-wait 300]
"""

import argparse
import logging
import signal
import sys
import threading
import uuid
from pathlib import Path

_BACKEND_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

from src.services.job_poller import (  # noqa: E402
    JobStatusPoller,
    PollCancelledError,
    PollTimeoutError,
    http_fetcher,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def main() -> int:
    parser = argparse.ArgumentParser(description="Poll a document job until it completes or fails.")
    parser.add_argument("job_id", type=uuid.UUID)
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--interval", type=float, default=5.0)
    parser.add_argument("--max-wait", type=float, default=300.0)
    args = parser.parse_args()

    cancel = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: cancel.set())

    poller = JobStatusPoller(http_fetcher(args.base_url), interval=args.interval, max_wait=args.max_wait)
    try:
        status = poller.wait(args.job_id, cancel)
    except PollTimeoutError as exc:
        print(f"TIMEOUT  {exc}", file=sys.stderr)
        return 2
    except PollCancelledError as exc:
        print(f"CANCELLED  {exc}", file=sys.stderr)
        return 130

    if status.message:
        print(f"{status.status.value.upper()}  {status.message}")
    else:
        print(f"{status.status.value.upper()}  {len(status.result or '')} chars")
    return 0 if status.result else 1


if __name__ == "__main__":
    sys.exit(main())
