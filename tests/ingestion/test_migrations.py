from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ingestion.db.models import Content, JobRun, JobStage, JobStatus, Platform


@pytest.fixture()
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'ingestion.db'}"


def _upgrade_database(db_url: str) -> None:
    cfg = Config("alembic.ini")
    cfg.set_main_option("script_location", "ingestion/db/migrations")
    cfg.set_main_option("sqlalchemy.url", db_url)
    cfg.attributes["configure_logger"] = False
    command.upgrade(cfg, "head")


def test_migrations_create_expected_tables(sqlite_url: str) -> None:
    _upgrade_database(sqlite_url)
    engine = create_engine(sqlite_url, future=True)
    inspector = inspect(engine)

    tables = set(inspector.get_table_names())
    assert {"platforms", "platform_auths", "contents", "reply_templates", "job_runs"}.issubset(tables)

    content_columns = {column["name"] for column in inspector.get_columns("contents")}
    assert {"platform_content_id", "source_url", "body_md5", "keyword_tags", "replied"}.issubset(content_columns)

    unique_indexes = {ix["name"] for ix in inspector.get_indexes("contents") if ix["unique"]}
    assert {"uq_contents_platform_content_id", "uq_contents_platform_source_url"} <= unique_indexes

    job_columns = {column["name"] for column in inspector.get_columns("job_runs")}
    assert {"stage", "status", "keyword", "platform", "items_written"}.issubset(job_columns)


def _content(platform_id, native, url) -> Content:
    return Content(
        platform_id=platform_id,
        content_type="post",
        platform_content_id=native,
        author_name="a",
        body="b",
        body_md5="0" * 32,
        published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        source_url=url,
        keyword_tags=["SCI"],
    )


def test_models_roundtrip(sqlite_url: str) -> None:
    _upgrade_database(sqlite_url)
    engine = create_engine(sqlite_url, future=True)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    with SessionLocal() as session:  # type: Session
        platform = Platform(slug="zhihu", name="知乎")
        session.add(platform)
        session.flush()
        content = _content(platform.id, "1", "https://www.zhihu.com/question/1")
        job = JobRun(stage=JobStage.COLLECT, status=JobStatus.RUNNING, task_name="collect_keyword")
        session.add_all([content, job])
        session.commit()
        session.refresh(content)
        session.refresh(job)

        assert content.created_at is not None
        assert content.replied is False
        assert content.keyword_tags == ["SCI"]
        assert job.items_written == 0
        assert job.created_at <= job.updated_at

        session.add(_content(platform.id, "2", "https://www.zhihu.com/question/1"))
        with pytest.raises(IntegrityError):
            session.commit()
