from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session, joinedload

from ingestion.db.models import Content, Platform
from ingestion.db.models import ReplyTemplate as ReplyTemplateRow
from ingestion.models.domain import ContentType, LinkTarget
from ingestion.repositories.platforms import list_enabled_platforms
from ingestion.services.links import resolve_link
from ingestion.services.sweeper import count_duplicate_groups

from .models import (
    AdminStats,
    ContentFilter,
    ContentItem,
    ContentPage,
    PlatformSummary,
    ReplyTemplate,
    ReplyTemplateUpsert,
)

logger = logging.getLogger(__name__)


def list_platforms(session: Session) -> list[PlatformSummary]:
    return [to_platform_summary(row) for row in list_enabled_platforms(session)]


def _content_conditions(filter_: ContentFilter) -> list:
    conditions = []
    if filter_.platform_id:
        conditions.append(Content.platform_id == filter_.platform_id)
    if filter_.content_type:
        conditions.append(Content.content_type == filter_.content_type)
    if filter_.replied is not None:
        conditions.append(Content.replied.is_(filter_.replied))
    if filter_.published_from:
        conditions.append(Content.published_at >= filter_.published_from)
    if filter_.published_to:
        conditions.append(Content.published_at <= filter_.published_to)
    keyword = (filter_.keyword or "").strip()
    if keyword:
        # keyword_tags is stored as a JSON text array; match the encoded element.
        conditions.append(
            or_(
                Content.body.contains(keyword, autoescape=True),
                Content.summary.contains(keyword, autoescape=True),
                cast(Content.keyword_tags, String).contains(json.dumps(keyword), autoescape=True),
            )
        )
    return conditions


def list_contents(session: Session, filter_: ContentFilter) -> ContentPage:
    conditions = _content_conditions(filter_)
    total = session.scalar(select(func.count()).select_from(Content).where(*conditions)) or 0
    rows = session.scalars(
        select(Content)
        .options(joinedload(Content.platform))
        .where(*conditions)
        .order_by(Content.published_at.desc(), Content.id.desc())
        .offset((filter_.page - 1) * filter_.page_size)
        .limit(filter_.page_size)
    ).all()
    return ContentPage(
        items=[to_content_item(row) for row in rows],
        total=total,
        page=filter_.page,
        page_size=filter_.page_size,
    )


def get_content_row(session: Session, content_id: uuid.UUID) -> Content:
    row = session.scalar(
        select(Content).options(joinedload(Content.platform)).where(Content.id == content_id)
    )
    if row is None:
        raise NoResultFound
    return row


def get_content(session: Session, content_id: uuid.UUID) -> ContentItem:
    return to_content_item(get_content_row(session, content_id))


def delete_content(session: Session, content_id: uuid.UUID) -> None:
    row = session.get(Content, content_id)
    if row is None:
        raise NoResultFound
    session.delete(row)
    session.flush()
    logger.info("contents.deleted", extra={"content_id": str(content_id)})


def mark_replied(session: Session, row: Content) -> datetime:
    row.replied = True
    row.replied_at = datetime.now(timezone.utc)
    session.flush()
    return row.replied_at


def get_stats(session: Session) -> AdminStats:
    return AdminStats(
        content_count=session.scalar(select(func.count()).select_from(Content)) or 0,
        platform_count=session.scalar(
            select(func.count()).select_from(Platform).where(Platform.enabled.is_(True))
        )
        or 0,
        replied_count=session.scalar(
            select(func.count()).select_from(Content).where(Content.replied.is_(True))
        )
        or 0,
        template_count=session.scalar(select(func.count()).select_from(ReplyTemplateRow)) or 0,
        duplicate_group_count=count_duplicate_groups(session),
    )


def list_reply_templates(session: Session) -> list[ReplyTemplate]:
    rows = session.scalars(
        select(ReplyTemplateRow).order_by(ReplyTemplateRow.created_at.desc(), ReplyTemplateRow.title.asc())
    ).all()
    return [to_reply_template(row) for row in rows]


def create_reply_template(session: Session, payload: ReplyTemplateUpsert) -> ReplyTemplate:
    row = ReplyTemplateRow(title=payload.title.strip(), content=payload.content)
    session.add(row)
    session.flush()
    return to_reply_template(row)


def update_reply_template(
    session: Session, template_id: uuid.UUID, payload: ReplyTemplateUpsert
) -> ReplyTemplate:
    row = session.get(ReplyTemplateRow, template_id)
    if row is None:
        raise NoResultFound
    row.title = payload.title.strip()
    row.content = payload.content
    session.flush()
    return to_reply_template(row)


def delete_reply_template(session: Session, template_id: uuid.UUID) -> None:
    row = session.get(ReplyTemplateRow, template_id)
    if row is None:
        raise NoResultFound
    session.delete(row)
    session.flush()


def to_platform_summary(row: Platform) -> PlatformSummary:
    return PlatformSummary(id=row.id, name=row.name, slug=row.slug, icon_url=row.icon_url)


def to_content_item(row: Content) -> ContentItem:
    link = resolve_link(
        LinkTarget(
            source_url=row.source_url,
            platform_slug=row.platform.slug,
            content_type=ContentType(row.content_type),
            platform_content_id=row.platform_content_id,
        )
    )
    return ContentItem(
        id=row.id,
        platform=to_platform_summary(row.platform),
        content_type=row.content_type,
        platform_content_id=row.platform_content_id,
        author_name=row.author_name,
        author_id=row.author_id,
        author_avatar=row.author_avatar,
        body=row.body,
        summary=row.summary,
        published_at=row.published_at,
        source_url=row.source_url,
        keyword_tags=list(row.keyword_tags or []),
        like_count=row.like_count,
        comment_count=row.comment_count,
        replied=row.replied,
        replied_at=row.replied_at,
        link=link,
    )


def to_reply_template(row: ReplyTemplateRow) -> ReplyTemplate:
    return ReplyTemplate(id=row.id, title=row.title, content=row.content)
