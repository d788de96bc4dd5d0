"""Validation and normalization of raw import records."""

from __future__ import annotations

import hashlib
import math
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

from pydantic import HttpUrl, TypeAdapter, ValidationError

from ingestion.models.domain import CandidateItem, ContentType, Rejection

SUMMARY_LENGTH = 120

REASON_INVALID_ITEM = "invalid item"
REASON_PLATFORM_REQUIRED = "platformId or platformSlug required"
REASON_UNKNOWN_PLATFORM = "unknown platformId"
REASON_FIELDS_REQUIRED = "authorName, body, sourceUrl, publishedAt required"
REASON_BAD_URL = "sourceUrl must be an absolute http(s) link to a page"
REASON_COMMENT_LINK = "comment sourceUrl must contain platformContentId"

_TAG_SPLIT = re.compile(r"[,，;；\n]+")
_DATETIME = TypeAdapter(datetime)
_HTTP_URL = TypeAdapter(HttpUrl)

# Bounds of the INTEGER counter columns.
INT_MIN = -(2**31)
INT_MAX = 2**31 - 1


def _pick(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    value = raw.get(camel)
    return raw.get(snake) if value is None else value


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _optional_int(value: Any) -> Optional[int]:
    """Counters outside the ``INTEGER`` column range are dropped, not clamped."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    result = int(number)
    if not INT_MIN <= result <= INT_MAX:
        return None
    return result


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings, datetimes and unix seconds into UTC; naive values are UTC."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_tags(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        parts = [str(t) for t in value if t is not None]
    elif isinstance(value, str):
        parts = _TAG_SPLIT.split(value)
    else:
        return []
    tags: List[str] = []
    seen: Set[str] = set()
    for part in parts:
        tag = part.strip()
        if tag and tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


def is_page_url(url: str) -> bool:
    """Absolute http(s) URL whose path is more than the bare root."""
    try:
        parsed = _HTTP_URL.validate_python(url)
    except ValidationError:
        return False
    return parsed.path not in (None, "", "/")


def body_md5(body: str) -> str:
    return hashlib.md5(body.encode("utf-8")).hexdigest()


def _resolve_platform(
    raw: Mapping[str, Any],
    platforms_by_slug: Mapping[str, uuid.UUID],
    known_platform_ids: Set[uuid.UUID],
) -> tuple[Optional[uuid.UUID], Optional[str], Optional[str]]:
    """Return ``(platform_id, slug, rejection_reason)``."""
    raw_id = _pick(raw, "platformId", "platform_id")
    slug = _optional_text(_pick(raw, "platformSlug", "platform_slug"))
    if raw_id:
        try:
            platform_id = raw_id if isinstance(raw_id, uuid.UUID) else uuid.UUID(str(raw_id))
        except ValueError:
            return None, slug, REASON_UNKNOWN_PLATFORM
        if platform_id not in known_platform_ids:
            return None, slug, REASON_UNKNOWN_PLATFORM
        return platform_id, slug, None
    if slug and slug in platforms_by_slug:
        return platforms_by_slug[slug], slug, None
    return None, slug, REASON_PLATFORM_REQUIRED


def normalize(
    raw: Any,
    index: int,
    platforms_by_slug: Mapping[str, uuid.UUID],
    known_platform_ids: Set[uuid.UUID] | None = None,
) -> CandidateItem | Rejection:
    """Turn one raw import record into a :class:`CandidateItem` or a rejection.

    Platform slugs must already be resolved (see
    ``ingestion.repositories.platforms.get_or_create_platforms``); a raw
    ``platformId`` is accepted only when it appears in ``known_platform_ids``.
    """
    if not isinstance(raw, Mapping):
        return Rejection(index=index, reason=REASON_INVALID_ITEM)

    platform_id, slug, reason = _resolve_platform(raw, platforms_by_slug, known_platform_ids or set())
    if reason is not None:
        return Rejection(index=index, reason=reason)

    author_name = _text(_pick(raw, "authorName", "author_name"))
    body = _text(raw.get("body"))
    source_url = _text(_pick(raw, "sourceUrl", "source_url"))
    published_at = parse_datetime(_pick(raw, "publishedAt", "published_at"))
    if not (author_name and body and source_url and published_at):
        return Rejection(index=index, reason=REASON_FIELDS_REQUIRED)

    if not is_page_url(source_url):
        return Rejection(index=index, reason=REASON_BAD_URL)

    content_type = ContentType.COMMENT if _pick(raw, "contentType", "content_type") == "comment" else ContentType.POST
    native_id = _optional_text(_pick(raw, "platformContentId", "platform_content_id"))
    if content_type is ContentType.COMMENT and native_id and native_id not in source_url:
        return Rejection(index=index, reason=REASON_COMMENT_LINK)

    summary = _optional_text(raw.get("summary")) or body[:SUMMARY_LENGTH]
    return CandidateItem(
        platform_id=platform_id,
        platform_slug=slug,
        content_type=content_type,
        platform_content_id=native_id,
        author_name=author_name,
        author_id=_optional_text(_pick(raw, "authorId", "author_id")),
        author_avatar=_optional_text(_pick(raw, "authorAvatar", "author_avatar")),
        body=body,
        body_md5=body_md5(body),
        summary=summary,
        published_at=published_at,
        source_url=source_url,
        keyword_tags=parse_tags(_pick(raw, "keywordTags", "keyword_tags")),
        like_count=_optional_int(_pick(raw, "likeCount", "like_count")),
        comment_count=_optional_int(_pick(raw, "commentCount", "comment_count")),
    )


def collect_slugs(items: List[Any]) -> List[str]:
    """Distinct, trimmed platform slugs referenced by a raw batch, in first-seen order."""
    slugs: Dict[str, None] = {}
    for raw in items:
        if not isinstance(raw, Mapping):
            continue
        slug = _optional_text(_pick(raw, "platformSlug", "platform_slug"))
        if slug:
            slugs.setdefault(slug, None)
    return list(slugs)
