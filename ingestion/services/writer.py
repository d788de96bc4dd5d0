"""Idempotent bulk persistence of accepted candidates."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from ingestion.db.models import Content
from ingestion.models.domain import CandidateItem
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)

_INSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class WriteResult:
    inserted: int
    skipped: int


def _row(item: CandidateItem, now: datetime) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4(),
        "platform_id": item.platform_id,
        "content_type": item.content_type.value,
        "platform_content_id": item.platform_content_id,
        "author_name": item.author_name,
        "author_id": item.author_id,
        "author_avatar": item.author_avatar,
        "body": item.body,
        "body_md5": item.body_md5,
        "summary": item.summary,
        "published_at": item.published_at,
        "source_url": item.source_url,
        "keyword_tags": list(item.keyword_tags),
        "like_count": item.like_count,
        "comment_count": item.comment_count,
        "replied": False,
        "created_at": now,
        "updated_at": now,
    }


def write_contents(session: Session, items: Sequence[CandidateItem], *, chunk_size: int = 500) -> WriteResult:
    """Insert ``items``, skipping rows that hit a unique index.

    Conflicts are the storage-level net under identity resolution (concurrent
    imports of overlapping items); they are counted, never raised.
    """
    if not items:
        return WriteResult(inserted=0, skipped=0)

    dialect = session.get_bind().dialect.name
    try:
        build_insert = _INSERT_BUILDERS[dialect]
    except KeyError as exc:
        raise RuntimeError(f"지원하지 않는 데이터베이스 방언입니다: {dialect}") from exc

    now = datetime.now(timezone.utc)
    rows: List[Dict[str, Any]] = [_row(item, now) for item in items]
    inserted = 0
    for start in range(0, len(rows), chunk_size):
        chunk = rows[start : start + chunk_size]
        stmt = build_insert(Content).values(chunk).on_conflict_do_nothing()
        result = session.execute(stmt)
        inserted += max(result.rowcount or 0, 0)

    skipped = len(rows) - inserted
    if skipped:
        logger.info("writer.conflicts_skipped", extra={"skipped": skipped, "submitted": len(rows)})
    return WriteResult(inserted=inserted, skipped=skipped)
