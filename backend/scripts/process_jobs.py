"""Drain the document job queue: claim and process jobs until none are left.

Meant to be run from cron or a CI schedule; each iteration is one worker
invocation, so several copies can run side by side safely.

Usage:
    python scripts/process_jobs.py [--max-jobs N] [--db-url URL]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

load_dotenv(_BACKEND_DIR.parent / ".env")

_pre = argparse.ArgumentParser(add_help=False)
_pre.add_argument("--db-url", default=None)
_pre_args, _ = _pre.parse_known_args()
if _pre_args.db_url:
    os.environ["DATABASE_URL"] = _pre_args.db_url

from src.db import get_session_factory  # noqa: E402
from src.services.worker import DocumentWorker  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def main() -> int:
    parser = argparse.ArgumentParser(description="Process pending document generation jobs.")
    parser.add_argument("--db-url", default=None, help="Database URL (defaults to $DATABASE_URL)")
    parser.add_argument("--max-jobs", type=int, default=1, help="Stop after this many jobs (default: 1)")
    args = parser.parse_args()

    worker = DocumentWorker()
    factory = get_session_factory()
    exit_code = 0
    for _ in range(args.max_jobs):
        db = factory()
        try:
            result = worker.process_next(db)
        finally:
            db.close()
        print(f"{result.status:10} {result.message}")
        if result.status == "error":
            exit_code = 1
        if result.status in ("idle", "error"):
            break
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
