from __future__ import annotations

import re

import pytest

pytest.importorskip("pytest_httpx")

from ingestion.connectors.base import PermanentError, TransientError
from ingestion.connectors.bilibili import BilibiliConnector
from ingestion.models.domain import ContentType
from ingestion.settings import reset_settings_cache

SEARCH = re.compile(r"https://api\.bilibili\.com/x/web-interface/search/type\?.*")


def _reply_url(aid: int) -> re.Pattern[str]:
    return re.compile(rf"https://api\.bilibili\.com/x/v2/reply\?.*oid={aid}(&.*)?$")


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("POSTGRES_DSN", "sqlite:///./var/dev.db")
    monkeypatch.setenv("COLLECTOR_MAX_RETRIES", "2")
    monkeypatch.setenv("COLLECTOR_PAGE_SIZE", "20")
    monkeypatch.setenv("BILIBILI_COOKIE", "SESSDATA=abc")
    reset_settings_cache()
    yield
    reset_settings_cache()


def _search_payload():
    return {
        "code": 0,
        "data": {
            "numPages": 1,
            "result": [
                {
                    "aid": 101,
                    "bvid": "BV1xx411c7mD",
                    "title": '如何写<em class="keyword">SCI</em>论文',
                    "author": "up主",
                    "mid": 42,
                    "pubdate": 1700000000,
                    "like": 10,
                    "review": 3,
                },
                {"aid": 102, "bvid": "", "title": "no bvid"},
            ],
        },
    }


def test_bilibili_collects_posts_and_comments(httpx_mock):
    httpx_mock.add_response(method="GET", url=SEARCH, json=_search_payload())
    httpx_mock.add_response(
        method="GET",
        url=_reply_url(101),
        json={
            "code": 0,
            "data": {
                "replies": [
                    {
                        "rpid": 9001,
                        "ctime": 1700000100,
                        "like": 2,
                        "rcount": 1,
                        "content": {"message": "求资源"},
                        "member": {"uname": "路人", "mid": "7", "avatar": "https://i0.hdslb.com/a.jpg"},
                    },
                    {"rpid": 9002, "content": {"message": "   "}},
                ]
            },
        },
    )

    connector = BilibiliConnector()
    items = list(connector.fetch("SCI", limit=5, comments_per_post=2))

    assert [i.content_type for i in items] == [ContentType.POST, ContentType.COMMENT]
    post, comment = items
    assert post.body == "如何写SCI论文"
    assert post.source_url == "https://www.bilibili.com/video/BV1xx411c7mD"
    assert post.author_id == "42"
    assert post.comment_count == 3
    assert comment.platform_content_id == "9001"
    assert comment.source_url == (
        "https://www.bilibili.com/video/BV1xx411c7mD?comment_on=1&comment_root_id=9001#reply9001"
    )
    assert comment.author_avatar == "https://i0.hdslb.com/a.jpg"

    search_request = httpx_mock.get_requests()[0]
    assert search_request.headers["Cookie"] == "SESSDATA=abc"
    assert search_request.url.params["keyword"] == "SCI"


def test_bilibili_comment_failure_keeps_post(httpx_mock):
    httpx_mock.add_response(method="GET", url=SEARCH, json=_search_payload())
    httpx_mock.add_response(method="GET", url=_reply_url(101), status_code=500)

    connector = BilibiliConnector()
    items = list(connector.fetch("SCI", limit=5, comments_per_post=3))

    assert len(items) == 1
    assert items[0].content_type is ContentType.POST


def test_bilibili_skips_comments_when_disabled(httpx_mock):
    httpx_mock.add_response(method="GET", url=SEARCH, json=_search_payload())

    items = list(BilibiliConnector().fetch("SCI", comments_per_post=0))

    assert len(items) == 1
    assert len(httpx_mock.get_requests()) == 1


def test_bilibili_risk_control_is_transient(httpx_mock):
    for _ in range(2):
        httpx_mock.add_response(method="GET", url=SEARCH, json={"code": -412, "message": "request was banned"})

    with pytest.raises(TransientError):
        list(BilibiliConnector().fetch("SCI", comments_per_post=0))
    assert len(httpx_mock.get_requests()) == 2


def test_bilibili_api_error_is_permanent(httpx_mock):
    httpx_mock.add_response(method="GET", url=SEARCH, json={"code": -400, "message": "bad request"})

    with pytest.raises(PermanentError):
        list(BilibiliConnector().fetch("SCI", comments_per_post=0))
    assert len(httpx_mock.get_requests()) == 1
