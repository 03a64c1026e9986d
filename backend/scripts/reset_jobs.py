"""Operator recovery: reset one job, or every stale job, to ``pending``.

A job reset by id gets a fresh attempt budget; use this to re-run a job that
ended up ``failed``.

Usage:
    python scripts/reset_jobs.py --job-id UUID [--db-url URL]
    python scripts/reset_jobs.py --all-stale [--minutes 5] [--db-url URL]
"""

import argparse
import logging
import os
import sys
import uuid
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
from src.services import job_store  # noqa: E402
from src.services.job_store import JobNotFoundError  # noqa: E402
from src.services.reclaimer import DEFAULT_STALE_MINUTES, reclaim_stale_jobs  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset document generation jobs to pending.")
    parser.add_argument("--db-url", default=None, help="Database URL (defaults to $DATABASE_URL)")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--job-id", type=uuid.UUID, help="Reset this job (any status)")
    target.add_argument("--all-stale", action="store_true", help="Reset every stale processing job")
    parser.add_argument("--minutes", type=float, default=DEFAULT_STALE_MINUTES)
    args = parser.parse_args()

    db = get_session_factory()()
    try:
        if args.job_id is not None:
            try:
                job = job_store.reset_job(db, args.job_id)
            except JobNotFoundError as exc:
                print(f"ERROR  {exc}", file=sys.stderr)
                return 1
            print(f"  RESET  {job.id}  ({job.drug_name})")
            return 0
        result = reclaim_stale_jobs(db, args.minutes)
        print(f"Done: {result.count} stale job(s) reset.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
