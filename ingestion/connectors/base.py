"""Connector abstraction, errors, and helpers."""

from __future__ import annotations

import html
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

import httpx

from ingestion.models.domain import CollectedItem
from ingestion.services.deduplicator import InMemoryKeyStore, KeyStore
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

T = TypeVar("T")

_TAGS = re.compile(r"<[^>]+>")
_SPACES = re.compile(r"\s+")


class ConnectorError(Exception):
    """Base connector error."""


class TransientError(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup)."""


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics)."""


def strip_html(value: str | None) -> str:
    text = _TAGS.sub("", value or "")
    return _SPACES.sub(" ", html.unescape(text)).strip()


def from_epoch(value: Any) -> datetime:
    """Platform epoch seconds to an aware datetime; missing values fall back to now."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        seconds = 0
    if seconds <= 0:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


class BaseConnector(ABC):
    """Per-platform collector producing :class:`CollectedItem` records lazily.

    ``fetch`` holds no state between calls; callers that want dedup across
    several keywords of one run pass the same ``seen`` keystore to each call.
    """

    platform: str

    def __init__(self, settings: Optional[Settings] = None, *, headless: Optional[bool] = None) -> None:
        self._settings = settings or get_settings()
        self._headless = self._settings.collector_headless if headless is None else headless
        self._logger = get_logger(f"{__name__}.{self.platform}")

    def fetch(
        self,
        keyword: str,
        limit: Optional[int] = None,
        *,
        comments_per_post: Optional[int] = None,
        seen: Optional[KeyStore] = None,
    ) -> Iterator[CollectedItem]:
        cfg = self._settings
        budget = limit if limit is not None else int(cfg.collector_per_keyword)
        comments = comments_per_post if comments_per_post is not None else int(cfg.collector_comments_per_post)
        keystore = seen if seen is not None else InMemoryKeyStore()
        for item in self._collect(keyword, budget, comments):
            key = item.adapter_key
            if keystore.has(key):
                continue
            keystore.add(key)
            yield item

    @abstractmethod
    def _collect(self, keyword: str, limit: int, comments_per_post: int) -> Iterator[CollectedItem]:
        """Yield items for one keyword; ``limit`` bounds the number of posts."""

    def _with_retries(self, func: Callable[..., T], *args: Any, max_attempts: Optional[int] = None) -> T:
        attempts = 0
        limit = max_attempts or int(self._settings.collector_max_retries)
        while True:
            attempts += 1
            try:
                return func(*args)
            except TransientError as exc:  # retry
                if attempts >= limit:
                    raise
                self._logger.info(
                    "connector.retry",
                    extra={"platform": self.platform, "attempt": attempts, "error": str(exc)},
                )

    def _http_client(self, **headers: str) -> httpx.Client:
        base_headers = {"User-Agent": self._settings.collector_user_agent}
        base_headers.update(headers)
        return httpx.Client(
            headers=base_headers,
            timeout=float(self._settings.collector_timeout_seconds),
            follow_redirects=True,
        )


def get_json(client: httpx.Client, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """GET ``url`` and decode JSON, mapping failures onto connector errors."""
    try:
        resp = client.get(url, params=params)
    except httpx.TimeoutException as exc:
        raise TransientError(f"요청 타임아웃: {url}") from exc
    except httpx.HTTPError as exc:
        raise TransientError(f"요청 오류: {url}") from exc

    if resp.status_code == 429 or resp.status_code >= 500:
        raise TransientError(f"일시 오류: {resp.status_code}")
    if resp.status_code >= 400:
        raise PermanentError(f"요청 실패: {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as exc:
        raise TransientError("JSON 응답이 아닙니다.") from exc
    if not isinstance(data, dict):
        raise PermanentError("예상하지 못한 응답 형식입니다.")
    return data
