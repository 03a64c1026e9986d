"""Reset document jobs stuck in ``processing`` back to ``pending``.

Usage:
    python scripts/reclaim_stale_jobs.py [--minutes 5] [--db-url URL]
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
from src.services.reclaimer import DEFAULT_STALE_MINUTES, reclaim_stale_jobs  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def main() -> None:
    parser = argparse.ArgumentParser(description="Reclaim stale document generation jobs.")
    parser.add_argument("--db-url", default=None, help="Database URL (defaults to $DATABASE_URL)")
    parser.add_argument(
        "--minutes",
        type=float,
        default=DEFAULT_STALE_MINUTES,
        help=f"Processing jobs idle for longer than this are reset (default: {DEFAULT_STALE_MINUTES})",
    )
    args = parser.parse_args()

    db = get_session_factory()()
    try:
        result = reclaim_stale_jobs(db, args.minutes)
    finally:
        db.close()
    for job_id in result.job_ids:
        print(f"  RESET  {job_id}")
    print(f"Done: {result.count} job(s) reset.")


if __name__ == "__main__":
    main()
