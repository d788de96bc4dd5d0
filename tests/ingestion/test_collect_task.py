from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List

import pytest
import redis
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ingestion.connectors.base import TransientError
from ingestion.db.models import Base, Content, JobRun, JobStage, JobStatus
from ingestion.db.session import get_engine
from ingestion.models.domain import CollectedItem, ContentType
from ingestion.services.deduplicator import InMemoryKeyStore
from ingestion.settings import reset_settings_cache
from ingestion.tasks import collect as collect_mod
from ingestion.tasks import sweep as sweep_mod


@pytest.fixture(autouse=True)
def _set_env(monkeypatch, tmp_path: Path):
    # Configure settings to use local SQLite file
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("POSTGRES_DSN", f"sqlite:///{tmp_path / 'collect.db'}")
    monkeypatch.setenv(
        "COLLECTION_SCHEDULES",
        json.dumps([
            {"keyword": "SCI", "platform": "zhihu", "interval_minutes": 30, "enabled": True}
        ]),
    )
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture()
def keystore(monkeypatch) -> InMemoryKeyStore:
    store = InMemoryKeyStore()
    monkeypatch.setattr(collect_mod, "_build_keystore", lambda _logger: store)
    return store


def _item(native: str) -> CollectedItem:
    return CollectedItem(
        platform_slug="zhihu",
        content_type=ContentType.POST,
        platform_content_id=native,
        author_name="知乎用户",
        body=f"问题 {native}",
        source_url=f"https://www.zhihu.com/question/{native}",
        published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        keyword_tags=["SCI"],
    )


class _FakeConnector:
    def __init__(self, items: List[CollectedItem], fail_after: int | None = None) -> None:
        self._items = items
        self._fail_after = fail_after

    def fetch(self, keyword: str) -> Iterator[CollectedItem]:
        for index, item in enumerate(self._items):
            if self._fail_after is not None and index >= self._fail_after:
                raise TransientError("rate limited")
            yield item


def _install_factory(monkeypatch, connector) -> None:
    monkeypatch.setattr(collect_mod, "CONNECTOR_FACTORY", lambda platform: connector)


def _session() -> Session:
    SessionLocal = sessionmaker(bind=get_engine(), expire_on_commit=False, future=True)
    return SessionLocal()


def _latest_job(session: Session) -> JobRun:
    return session.execute(select(JobRun).order_by(JobRun.started_at.desc())).scalars().first()


def test_collect_core_imports_and_skips_recent(monkeypatch, keystore):
    _install_factory(monkeypatch, _FakeConnector([_item("1"), _item("2")]))

    saved = collect_mod.collect_core("SCI", "zhihu")
    assert saved == 2
    assert keystore.has("zhihu:post:1")

    # second run: everything was imported recently
    saved_again = collect_mod.collect_core("SCI", "zhihu")
    assert saved_again == 0

    with _session() as session:
        rows = session.execute(select(Content)).scalars().all()
        assert len(rows) == 2
        jr = _latest_job(session)
        assert jr is not None and jr.status == JobStatus.SUCCEEDED
        assert jr.stage == JobStage.COLLECT
        assert jr.keyword == "SCI" and jr.platform == "zhihu"


def test_collect_core_keeps_partial_results(monkeypatch, keystore):
    _install_factory(monkeypatch, _FakeConnector([_item("1"), _item("2"), _item("3")], fail_after=2))

    saved = collect_mod.collect_core("SCI", "zhihu")

    assert saved == 2
    assert not keystore.has("zhihu:post:3")
    with _session() as session:
        jr = _latest_job(session)
        assert jr.status == JobStatus.SUCCEEDED
        assert jr.items_seen == 2 and jr.items_written == 2


def test_collect_core_failure_records_jobrun(monkeypatch, keystore):
    class _FailConnector:
        def fetch(self, keyword: str):
            raise RuntimeError("boom")

    _install_factory(monkeypatch, _FailConnector())

    with pytest.raises(RuntimeError):
        collect_mod.collect_core("SCI", "zhihu")

    with _session() as session:
        jr = _latest_job(session)
        assert jr is not None and jr.status == JobStatus.FAILED
        assert jr.error_message == "boom"


def test_build_keystore_falls_back_to_memory(monkeypatch):
    class _DownRedis:
        def ping(self):
            raise redis.exceptions.ConnectionError("refused")

    monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, *a, **kw: _DownRedis()))

    store = collect_mod._build_keystore(collect_mod.get_logger("test"))

    assert isinstance(store, InMemoryKeyStore)


def test_sweep_core_records_jobrun():
    Base.metadata.create_all(bind=get_engine())

    result = sweep_mod.sweep_core(dry_run=True)

    assert result.dry_run and result.duplicate_row_count == 0
    with _session() as session:
        jr = _latest_job(session)
        assert jr.stage == JobStage.SWEEP
        assert jr.status == JobStatus.SUCCEEDED
