"""Quick reply through an authorized platform account."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, Mapping, Protocol

import httpx
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from ingestion.db.models import Content
from ingestion.repositories.platforms import get_platform_auth
from ingestion.settings import Settings, get_settings

from .repositories import get_content_row, mark_replied

logger = logging.getLogger(__name__)


class ReplyError(Exception):
    status_code = 500

    def __init__(self, detail: str, platform: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.platform = platform


class ContentNotFound(ReplyError):
    status_code = 404


class PlatformNotAuthorized(ReplyError):
    status_code = 403


class ReplyNotSupported(ReplyError):
    status_code = 501


class ReplyFailed(ReplyError):
    status_code = 502


class ReplySender(Protocol):
    def send(self, content: Content, access_token: str, text: str) -> None: ...


class ZhihuReplySender:
    """Posts a comment through the zhihu open API with the stored OAuth token.

    An injected client is left open for its owner; otherwise each send opens
    and closes its own.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        config = settings or get_settings()
        self._base = config.zhihu_api_base.rstrip("/")
        self._timeout = float(config.reply_timeout_seconds)
        self._client = client

    def send(self, content: Content, access_token: str, text: str) -> None:
        if self._client is not None:
            self._post(self._client, content, access_token, text)
            return
        with httpx.Client(timeout=self._timeout) as client:
            self._post(client, content, access_token, text)

    def _post(self, client: httpx.Client, content: Content, access_token: str, text: str) -> None:
        target_type = "comment" if content.content_type == "comment" else "answer"
        body = {
            "content": text,
            "target_type": target_type,
            "target_id": content.platform_content_id or str(content.id),
        }
        try:
            resp = client.post(
                f"{self._base}/comments",
                json=body,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as exc:
            raise ReplyFailed(f"Zhihu API error: {exc}", platform="zhihu") from exc
        if resp.status_code >= 400:
            raise ReplyFailed(f"Zhihu API error: {resp.status_code}", platform="zhihu")


def default_senders() -> Dict[str, ReplySender]:
    return {"zhihu": ZhihuReplySender()}


def send_reply(
    session: Session,
    content_id: uuid.UUID,
    text: str,
    *,
    senders: Mapping[str, ReplySender] | None = None,
) -> datetime:
    """Reply to a stored content record and mark it replied.

    Raises a :class:`ReplyError` subclass carrying the HTTP status to report.
    """
    try:
        content = get_content_row(session, content_id)
    except NoResultFound as exc:
        raise ContentNotFound("Content not found") from exc

    platform = content.platform
    auth = get_platform_auth(session, platform.id)
    if auth is None or not auth.access_token:
        raise PlatformNotAuthorized("Platform not authorized", platform=platform.slug)

    registry = senders if senders is not None else default_senders()
    sender = registry.get(platform.slug)
    if sender is None:
        raise ReplyNotSupported("Reply not implemented for this platform", platform=platform.slug)

    sender.send(content, auth.access_token, text)
    replied_at = mark_replied(session, content)
    logger.info("reply.sent", extra={"content_id": str(content_id), "platform": platform.slug})
    return replied_at
