from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select, text
from sqlalchemy.orm import Session, sessionmaker

from ingestion.db.models import Base, Content, Platform
from ingestion.services.sweeper import count_duplicate_groups, sweep_duplicates

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def session(tmp_path: Path):
    engine = create_engine(f"sqlite:///{tmp_path / 'sweep.db'}", future=True)
    Base.metadata.create_all(bind=engine)
    # Legacy stores predate the unique indexes and may already hold duplicates.
    with engine.begin() as conn:
        conn.execute(text("DROP INDEX uq_contents_platform_content_id"))
        conn.execute(text("DROP INDEX uq_contents_platform_source_url"))
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    with SessionLocal() as s:  # type: Session
        yield s
    engine.dispose()


def _platform(session: Session, slug: str) -> uuid.UUID:
    platform = Platform(slug=slug, name=slug)
    session.add(platform)
    session.flush()
    return platform.id


def _content(session: Session, platform_id, native, url, *, hours: int = 0, created_minutes: int = 0) -> Content:
    row = Content(
        platform_id=platform_id,
        content_type="post",
        platform_content_id=native,
        author_name="a",
        body="b",
        body_md5="0" * 32,
        published_at=BASE_TIME + timedelta(hours=hours),
        source_url=url,
        keyword_tags=[],
        created_at=BASE_TIME + timedelta(minutes=created_minutes),
    )
    session.add(row)
    session.flush()
    return row


def _seed(session: Session):
    zhihu = _platform(session, "zhihu")
    bili = _platform(session, "bilibili")
    old = _content(session, zhihu, "1", "https://www.zhihu.com/question/1", hours=0)
    newest = _content(session, zhihu, "1", "https://www.zhihu.com/question/1?a", hours=5)
    middle = _content(session, zhihu, "1", "https://www.zhihu.com/question/1?b", hours=2)
    # url-only group, tie on published_at broken by created_at
    first = _content(session, zhihu, None, "https://www.zhihu.com/question/2", created_minutes=1)
    later = _content(session, zhihu, None, "https://www.zhihu.com/question/2", created_minutes=9)
    # same native id on another platform is not a duplicate
    other = _content(session, bili, "1", "https://www.bilibili.com/video/BV1")
    session.commit()
    return {"old": old, "newest": newest, "middle": middle, "first": first, "later": later, "other": other}


def test_dry_run_counts_without_deleting(session: Session):
    _seed(session)

    result = sweep_duplicates(session, dry_run=True)

    assert result.dry_run
    assert result.duplicate_group_count == 2
    assert result.duplicate_row_count == 3
    assert result.deleted_count is None
    assert len(session.scalars(select(Content)).all()) == 6


def test_sweep_keeps_latest_of_each_group(session: Session):
    rows = _seed(session)

    result = sweep_duplicates(session, dry_run=False)
    session.commit()

    assert result.deleted_count == 3
    remaining = set(session.scalars(select(Content.id)))
    assert remaining == {rows["newest"].id, rows["later"].id, rows["other"].id}
    assert count_duplicate_groups(session) == 0

    again = sweep_duplicates(session, dry_run=False)
    assert again.duplicate_row_count == 0
    assert again.deleted_count == 0


def test_sweep_empty_store(session: Session):
    result = sweep_duplicates(session, dry_run=False)
    assert result.duplicate_group_count == 0
    assert result.deleted_count == 0
