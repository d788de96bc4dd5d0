"""Whole-store duplicate sweep.

Groups every content row by ``(platform, coalesce(native id, source url))``,
keeps the most recently published row of each group (latest ``created_at``
breaks ties) and deletes the rest with one set-based statement.
"""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ingestion.db.models import Content
from ingestion.models.domain import SweepResult
from ingestion.services.identity import sweep_group_key
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


def _ranked_rows():
    group_key = sweep_group_key()
    rank = func.row_number().over(
        partition_by=(Content.platform_id, group_key),
        order_by=(Content.published_at.desc(), Content.created_at.desc(), Content.id.desc()),
    )
    return select(Content.id.label("id"), rank.label("rn")).subquery("ranked")


def count_duplicate_groups(session: Session) -> int:
    group_key = sweep_group_key()
    groups = (
        select(Content.platform_id, group_key.label("group_key"))
        .group_by(Content.platform_id, group_key)
        .having(func.count() > 1)
        .subquery("dup_groups")
    )
    return int(session.scalar(select(func.count()).select_from(groups)) or 0)


def sweep_duplicates(session: Session, *, dry_run: bool = True) -> SweepResult:
    ranked = _ranked_rows()
    redundant_ids = select(ranked.c.id).where(ranked.c.rn > 1)

    group_count = count_duplicate_groups(session)
    row_count = int(session.scalar(select(func.count()).select_from(redundant_ids.subquery())) or 0)

    if dry_run or row_count == 0:
        logger.info(
            "sweep.scanned",
            extra={"dry_run": dry_run, "duplicate_groups": group_count, "duplicate_rows": row_count},
        )
        return SweepResult(
            duplicate_group_count=group_count,
            duplicate_row_count=row_count,
            deleted_count=None if dry_run else 0,
            dry_run=dry_run,
        )

    result = session.execute(
        delete(Content).where(Content.id.in_(redundant_ids)).execution_options(synchronize_session=False)
    )
    deleted = max(result.rowcount or 0, 0)
    logger.info(
        "sweep.deleted",
        extra={"duplicate_groups": group_count, "duplicate_rows": row_count, "deleted": deleted},
    )
    return SweepResult(
        duplicate_group_count=group_count,
        duplicate_row_count=row_count,
        deleted_count=deleted,
        dry_run=False,
    )
