"""Zhihu connector (browser-rendered search, loader-injected for tests/offline)."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional
from urllib.parse import quote

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from ingestion.models.domain import CollectedItem, ContentType
from ingestion.settings import Settings

from .base import BaseConnector, TransientError

SEARCH_URL = "https://www.zhihu.com/search?type=content&q={query}"
DEFAULT_AUTHOR = "知乎用户"
LINK_SELECTOR = 'a[href*="zhihu.com/question"]'
SCROLL_ROUNDS = 8
SCROLL_PAUSE_MS = 1200

_ANSWER = re.compile(r"/answer/(\d+)")
_QUESTION = re.compile(r"/question/(\d+)")

# keyword -> [{"href": ..., "text": ...}, ...]
LinkLoader = Callable[[str], List[Dict[str, str]]]


class ZhihuConnector(BaseConnector):
    """Connector for zhihu search results.

    The search page renders client-side, so the default loader drives a
    Chromium instance through Playwright and reads the question/answer anchors.
    Tests inject ``loader`` instead.
    """

    platform = "zhihu"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        loader: Optional[LinkLoader] = None,
        headless: Optional[bool] = None,
    ) -> None:
        super().__init__(settings, headless=headless)
        self._loader = loader

    def _collect(self, keyword: str, limit: int, comments_per_post: int) -> Iterator[CollectedItem]:
        load = self._loader or self._render_search_links
        links = self._with_retries(load, keyword)
        now = datetime.now(timezone.utc)
        collected = 0
        for link in links:
            if collected >= limit:
                break
            item = self._to_post(link, keyword, now)
            if item is None:
                continue
            collected += 1
            yield item

    def _to_post(self, link: Dict[str, str], keyword: str, now: datetime) -> CollectedItem | None:
        href = (link.get("href") or "").strip()
        if not href:
            return None
        if href.startswith("//"):
            href = f"https:{href}"
        elif not href.startswith("http"):
            href = f"https://www.zhihu.com{href}"
        clean = href.split("?")[0].split("#")[0]
        match = _ANSWER.search(clean) or _QUESTION.search(clean)
        if match is None:
            return None
        native_id = match.group(1)
        title = (link.get("text") or "").strip() or f"知乎内容 {native_id}"
        return CollectedItem(
            platform_slug=self.platform,
            content_type=ContentType.POST,
            platform_content_id=native_id,
            author_name=DEFAULT_AUTHOR,
            body=title,
            summary=title[:120],
            source_url=clean,
            # search cards carry no reliable timestamp
            published_at=now,
            keyword_tags=[keyword],
        )

    def _render_search_links(self, keyword: str) -> List[Dict[str, str]]:
        timeout_ms = int(self._settings.collector_timeout_seconds) * 1000
        url = SEARCH_URL.format(query=quote(keyword))
        try:
            with sync_playwright() as p:
                browser = p.chromium.launch(headless=self._headless)
                try:
                    context = browser.new_context(
                        user_agent=self._settings.collector_user_agent,
                        viewport={"width": 1280, "height": 800},
                    )
                    page = context.new_page()
                    page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                    for _ in range(SCROLL_ROUNDS):
                        page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
                        page.wait_for_timeout(SCROLL_PAUSE_MS)
                    return page.eval_on_selector_all(
                        LINK_SELECTOR,
                        """els => els
                            .map(el => ({href: el.getAttribute('href') || '', text: (el.textContent || '').trim()}))
                            .filter(r => r.href)""",
                    )
                finally:
                    browser.close()
        except PlaywrightError as exc:
            raise TransientError(f"zhihu 검색 페이지 렌더링에 실패했습니다: {exc}") from exc
