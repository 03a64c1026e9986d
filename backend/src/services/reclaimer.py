"""Stale-job reclaimer — returns abandoned ``processing`` jobs to the queue."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta

from sqlalchemy.orm import Session

from src.services import job_store

logger = logging.getLogger(__name__)

DEFAULT_STALE_MINUTES = 5


@dataclass
class ReclaimResult:
    job_ids: list[uuid.UUID] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.job_ids)


def reclaim_stale_jobs(db: Session, older_than_minutes: float = DEFAULT_STALE_MINUTES) -> ReclaimResult:
    """Reset every job stuck in processing for more than *older_than_minutes*."""
    job_ids = job_store.reclaim_stale(db, timedelta(minutes=older_than_minutes))
    for job_id in job_ids:
        logger.info("reclaimed stale job %s", job_id)
    if job_ids:
        logger.warning("reclaimed %d stale job(s)", len(job_ids))
    else:
        logger.info("no stale jobs older than %s minute(s)", older_than_minutes)
    return ReclaimResult(job_ids=job_ids)
