"""Celery task for the duplicate sweep."""

from __future__ import annotations

import uuid

from celery import shared_task

from ingestion.db.models import Base, JobStage
from ingestion.db.session import get_engine, session_scope
from ingestion.models.domain import SweepResult
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.services.sweeper import sweep_duplicates
from ingestion.utils.logging import get_logger


def sweep_core(dry_run: bool = False) -> SweepResult:
    Base.metadata.create_all(bind=get_engine())
    trace_id = str(uuid.uuid4())
    logger = get_logger(__name__)
    logger.info("sweep.start", extra={"trace_id": trace_id, "dry_run": dry_run})
    with session_scope() as session, JobRunRecorder(
        session, stage=JobStage.SWEEP, task_name="sweep_duplicates", trace_id=trace_id
    ) as job:
        result = sweep_duplicates(session, dry_run=dry_run)
        job.items_seen = result.duplicate_row_count
        job.items_written = result.deleted_count or 0
    return result


@shared_task(name="ingestion.tasks.sweep.sweep_duplicates_task")
def sweep_duplicates_task(dry_run: bool = False) -> dict:  # pragma: no cover - wrapper
    return sweep_core(dry_run).model_dump(by_alias=True)
