"""Bilibili connector: video search plus top-level replies per video."""

from __future__ import annotations

from typing import Any, Dict, Iterator, List

import httpx

from ingestion.models.domain import CollectedItem, ContentType

from .base import BaseConnector, ConnectorError, PermanentError, TransientError, from_epoch, get_json, strip_html

SEARCH_URL = "https://api.bilibili.com/x/web-interface/search/type"
REPLY_URL = "https://api.bilibili.com/x/v2/reply"
VIDEO_URL = "https://www.bilibili.com/video/{bvid}"
DEFAULT_AUTHOR = "B站用户"

# -412: request blocked by risk control, -509: too frequent
_TRANSIENT_CODES = {-412, -509, -799}


def _unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    code = payload.get("code", 0)
    if code == 0:
        return payload.get("data") or {}
    message = payload.get("message") or ""
    if code in _TRANSIENT_CODES:
        raise TransientError(f"bilibili API 일시 오류: {code} {message}")
    raise PermanentError(f"bilibili API 오류: {code} {message}")


class BilibiliConnector(BaseConnector):
    platform = "bilibili"

    def _headers(self) -> Dict[str, str]:
        headers = {"Referer": "https://www.bilibili.com/"}
        if self._settings.bilibili_cookie:
            headers["Cookie"] = self._settings.bilibili_cookie.get_secret_value()
        return headers

    def _search_page(self, client: httpx.Client, keyword: str, page: int) -> Dict[str, Any]:
        params = {
            "search_type": "video",
            "keyword": keyword,
            "page": page,
            "page_size": int(self._settings.collector_page_size),
        }
        return _unwrap(get_json(client, SEARCH_URL, params))

    def _collect(self, keyword: str, limit: int, comments_per_post: int) -> Iterator[CollectedItem]:
        collected = 0
        page = 1
        with self._http_client(**self._headers()) as client:
            while collected < limit:
                data = self._with_retries(self._search_page, client, keyword, page)
                results: List[Dict[str, Any]] = data.get("result") or []
                if not isinstance(results, list) or not results:
                    break
                for result in results:
                    if collected >= limit:
                        break
                    post = self._to_post(result, keyword)
                    if post is None:
                        continue
                    collected += 1
                    yield post
                    aid = result.get("aid")
                    if comments_per_post > 0 and aid:
                        yield from self._comments(client, post, aid, keyword, comments_per_post)
                num_pages = data.get("numPages")
                if isinstance(num_pages, int) and page >= num_pages:
                    break
                page += 1

    def _to_post(self, result: Dict[str, Any], keyword: str) -> CollectedItem | None:
        bvid = result.get("bvid")
        if not bvid:
            return None
        title = strip_html(result.get("title")) or strip_html(result.get("description"))
        if not title:
            return None
        return CollectedItem(
            platform_slug=self.platform,
            content_type=ContentType.POST,
            platform_content_id=str(bvid),
            author_name=result.get("author") or DEFAULT_AUTHOR,
            author_id=str(result["mid"]) if result.get("mid") else None,
            body=title,
            summary=title[:120],
            source_url=VIDEO_URL.format(bvid=bvid),
            published_at=from_epoch(result.get("pubdate")),
            keyword_tags=[keyword],
            like_count=result.get("like"),
            comment_count=result.get("review"),
        )

    def _comments(
        self,
        client: httpx.Client,
        post: CollectedItem,
        aid: Any,
        keyword: str,
        limit: int,
    ) -> Iterator[CollectedItem]:
        params = {"type": 1, "oid": aid, "pn": 1, "ps": limit}
        try:
            data = _unwrap(get_json(client, REPLY_URL, params))
        except ConnectorError as exc:
            self._logger.warning(
                "connector.comments.failed",
                extra={"platform": self.platform, "post_id": post.platform_content_id, "error": str(exc)},
            )
            return
        replies = data.get("replies") or []
        if not isinstance(replies, list):
            return
        for reply in replies[:limit]:
            rpid = reply.get("rpid")
            message = ((reply.get("content") or {}).get("message") or "").strip()
            if not rpid or not message:
                continue
            member = reply.get("member") or {}
            yield CollectedItem(
                platform_slug=self.platform,
                content_type=ContentType.COMMENT,
                platform_content_id=str(rpid),
                author_name=member.get("uname") or DEFAULT_AUTHOR,
                author_id=str(member["mid"]) if member.get("mid") else None,
                author_avatar=member.get("avatar") or None,
                body=message,
                summary=message[:120],
                source_url=f"{post.source_url}?comment_on=1&comment_root_id={rpid}#reply{rpid}",
                published_at=from_epoch(reply.get("ctime")),
                keyword_tags=[keyword],
                like_count=reply.get("like"),
                comment_count=reply.get("rcount"),
            )
