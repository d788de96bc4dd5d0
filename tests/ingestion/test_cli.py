from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import func, select

from ingestion import cli
from ingestion.connectors.base import PermanentError
from ingestion.db.models import Content
from ingestion.db.session import session_scope
from ingestion.models.domain import CollectedItem, ContentType
from ingestion.settings import reset_settings_cache


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("POSTGRES_DSN", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("COLLECTOR_KEYWORDS", "SCI,专利")
    reset_settings_cache()
    yield
    reset_settings_cache()


class _FakeConnector:
    platform = "zhihu"

    def __init__(self) -> None:
        self.calls = []

    def fetch(self, keyword, limit=None, *, comments_per_post=None, seen=None):
        self.calls.append((keyword, limit, comments_per_post))
        # the same question shows up for every keyword; the shared store drops repeats
        for native in ("1", f"{keyword}-2"):
            item = CollectedItem(
                platform_slug="zhihu",
                content_type=ContentType.POST,
                platform_content_id=native,
                author_name="知乎用户",
                body=f"{keyword} {native}",
                source_url=f"https://www.zhihu.com/question/{native}",
                published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
                keyword_tags=[keyword],
            )
            if seen is not None and seen.has(item.adapter_key):
                continue
            if seen is not None:
                seen.add(item.adapter_key)
            yield item


@pytest.fixture()
def connector(monkeypatch) -> _FakeConnector:
    fake = _FakeConnector()

    def build(slug, **kwargs):
        if slug != "zhihu":
            raise PermanentError(f"no collector: {slug}")
        return fake

    monkeypatch.setattr(cli, "build_connector", build)
    return fake


def test_cli_writes_payload_file(tmp_path: Path, connector: _FakeConnector):
    out = tmp_path / "output.json"

    code = cli.main(["--platforms", "zhihu,douyin", "--per-keyword", "7", "--comments-per-post", "0", "--out", str(out)])

    assert code == 0
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert [p["platformContentId"] for p in payload] == ["1", "SCI-2", "专利-2"]
    assert payload[0]["platformSlug"] == "zhihu"
    assert payload[0]["publishedAt"].startswith("2025-01-01")
    assert connector.calls == [("SCI", 7, 0), ("专利", 7, 0)]


def test_cli_import_flag_persists(tmp_path: Path, connector: _FakeConnector):
    out = tmp_path / "output.json"

    code = cli.main(["--keywords", "论文", "--platforms", "zhihu", "--out", str(out), "--import"])

    assert code == 0
    with session_scope() as session:
        assert session.scalar(select(func.count()).select_from(Content)) == 2
