from __future__ import annotations

import json
import uuid

import httpx
import pytest

pytest.importorskip("pytest_httpx")

from ingestion.db.models import Content
from ingestion.settings import Settings

from api import replies
from api.replies import ReplyFailed, ZhihuReplySender


def _settings() -> Settings:
    return Settings(
        redis_url="redis://localhost:6379/0",
        postgres_dsn="sqlite:///./var/dev.db",
        zhihu_api_base="https://api.zhihu.test/",
    )


def _content(kind: str = "post") -> Content:
    return Content(id=uuid.uuid4(), content_type=kind, platform_content_id="222", source_url="https://www.zhihu.com/question/1/answer/222")


def test_zhihu_sender_posts_comment(httpx_mock):
    httpx_mock.add_response(method="POST", url="https://api.zhihu.test/comments", json={"id": 1})

    ZhihuReplySender(_settings()).send(_content(), "tok", "感谢分享")

    request = httpx_mock.get_requests()[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"content": "感谢分享", "target_type": "answer", "target_id": "222"}


def test_zhihu_sender_maps_failures(httpx_mock):
    httpx_mock.add_response(method="POST", url="https://api.zhihu.test/comments", status_code=500)

    with pytest.raises(ReplyFailed) as exc:
        ZhihuReplySender(_settings()).send(_content("comment"), "tok", "hi")
    assert exc.value.status_code == 502


def test_default_sender_closes_its_client(httpx_mock, monkeypatch):
    httpx_mock.add_response(method="POST", url="https://api.zhihu.test/comments", json={"id": 1})
    opened: list[httpx.Client] = []

    class _TrackingClient(httpx.Client):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            opened.append(self)

    monkeypatch.setattr(replies.httpx, "Client", _TrackingClient)

    replies.ZhihuReplySender(_settings()).send(_content(), "tok", "hi")

    assert len(opened) == 1
    assert opened[0].is_closed


def test_injected_client_stays_open(httpx_mock):
    httpx_mock.add_response(method="POST", url="https://api.zhihu.test/comments", json={"id": 1})

    with httpx.Client() as client:
        sender = ZhihuReplySender(_settings(), client=client)
        sender.send(_content(), "tok", "hi")
        assert not client.is_closed
