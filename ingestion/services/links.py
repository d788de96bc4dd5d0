"""Deep-link resolution for stored contents.

Pure functions only: given the link-relevant fields of a stored record they
return the URL an operator should open, plus whether it was rewritten and
why. Platform rules are looked up through ``ingestion.platforms``.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit, urlunsplit

from ingestion.models.domain import ContentType, LinkTarget, ResolvedLink

BILIBILI_TRACKING_PARAMS = ("spm_id_from", "share_tag", "share_source", "share_medium", "vd_source", "from_spmid")
BILIBILI_VIDEO_URL = "https://www.bilibili.com/video/{bvid}"
_BVID = re.compile(r"^BV[0-9A-Za-z]+$")
_NUMERIC = re.compile(r"^[0-9]+$")

REASON_MISSING_ID = "missing platformContentId"
REASON_INVALID_ID = "missing or invalid platformContentId"


def _unchanged(target: LinkTarget, reason: Optional[str] = None) -> ResolvedLink:
    return ResolvedLink(url=target.source_url, was_rewritten=False, reason=reason)


def _with_query(parts: SplitResult, *, drop: Iterable[str] = (), add: Optional[dict] = None) -> SplitResult:
    dropped = set(drop) | set(add or {})
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in dropped]
    query.extend((add or {}).items())
    return parts._replace(query=urlencode(query))


def _comment_fragment(target: LinkTarget, *, reason: str, approximate: bool) -> ResolvedLink:
    """Shared comment handling for platforms that anchor comments by fragment."""
    native_id = target.platform_content_id
    if native_id and native_id in target.source_url:
        return _unchanged(target)
    if not native_id:
        return _unchanged(target, REASON_MISSING_ID)
    try:
        parts = urlsplit(target.source_url)
    except ValueError:
        return _unchanged(target)
    if parts.fragment:
        return _unchanged(target)
    url = urlunsplit(parts._replace(fragment=f"comment-{native_id}"))
    return ResolvedLink(url=url, was_rewritten=True, reason=reason, approximate=approximate)


def resolve_generic(target: LinkTarget) -> ResolvedLink:
    """Fallback for platforms without a documented comment anchor scheme."""
    if target.content_type is not ContentType.COMMENT:
        return _unchanged(target)
    return _comment_fragment(target, reason="generic comment anchor (may be inaccurate)", approximate=True)


def resolve_zhihu(target: LinkTarget) -> ResolvedLink:
    if target.content_type is not ContentType.COMMENT:
        return _unchanged(target)
    return _comment_fragment(target, reason="auto-located zhihu comment", approximate=False)


def resolve_bilibili(target: LinkTarget) -> ResolvedLink:
    try:
        parts = urlsplit(target.source_url)
    except ValueError:
        return resolve_generic(target)
    host = (parts.hostname or "").lower()
    is_search = host == "search.bilibili.com"
    is_video = host.endswith("bilibili.com") and parts.path.startswith("/video/")
    native_id = target.platform_content_id

    if target.content_type is ContentType.COMMENT:
        if not is_video:
            return _unchanged(target, "bilibili comments need a video page link")
        has_root = any(k == "comment_root_id" for k, _ in parse_qsl(parts.query, keep_blank_values=True))
        if has_root or "reply" in parts.fragment:
            return _unchanged(target)
        if not native_id or not _NUMERIC.match(native_id):
            return _unchanged(target, REASON_INVALID_ID)
        anchored = _with_query(parts, add={"comment_on": "1", "comment_root_id": native_id})
        url = urlunsplit(anchored._replace(fragment=f"reply{native_id}"))
        return ResolvedLink(url=url, was_rewritten=True, reason="auto-located bilibili comment")

    if is_search:
        if native_id and _BVID.match(native_id):
            return ResolvedLink(
                url=BILIBILI_VIDEO_URL.format(bvid=native_id),
                was_rewritten=True,
                reason="search link rewritten to video page",
            )
        return _unchanged(target, "search link cannot be located precisely")

    params = parse_qsl(parts.query, keep_blank_values=True)
    if not any(k in BILIBILI_TRACKING_PARAMS for k, _ in params):
        return _unchanged(target)
    cleaned = urlunsplit(_with_query(parts, drop=BILIBILI_TRACKING_PARAMS))
    if cleaned == target.source_url:
        return _unchanged(target)
    return ResolvedLink(url=cleaned, was_rewritten=True, reason="tracking parameters removed")


def resolve_link(target: LinkTarget) -> ResolvedLink:
    """Resolve ``target`` with the rule registered for its platform."""
    from ingestion.platforms import get_strategy  # registry imports this module

    return get_strategy(target.platform_slug).resolve_link(target)
