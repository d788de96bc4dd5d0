from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.exc import NoResultFound
from sqlalchemy.orm import Session

from ingestion.models.domain import ImportResult, SweepResult
from ingestion.services.importer import ImportRequestError, import_items
from ingestion.services.sweeper import sweep_duplicates
from ingestion.settings import get_settings

from .database import session_dependency
from .models import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AdminStats,
    ContentFilter,
    ContentItem,
    ContentPage,
    ContentTypeName,
    DedupeRequest,
    ImportRequest,
    PlatformSummary,
    ReplyRequest,
    ReplyResponse,
    ReplyTemplate,
    ReplyTemplateUpsert,
)
from .replies import ReplyError, send_reply
from .repositories import (
    create_reply_template,
    delete_content,
    delete_reply_template,
    get_content,
    get_stats,
    list_contents,
    list_platforms,
    list_reply_templates,
    update_reply_template,
)

router = APIRouter(prefix="/api")

SessionDep = Annotated[Session, Depends(session_dependency)]


async def require_admin(authorization: Annotated[str | None, Header()] = None) -> None:
    token = get_settings().admin_api_token
    if token is None or not token.get_secret_value():
        raise HTTPException(status_code=503, detail="Admin API is not configured.")
    scheme, _, credentials = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(
        credentials.strip().encode(), token.get_secret_value().encode()
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")


AdminDep = Depends(require_admin)


@router.get("/contents", response_model=ContentPage)
async def list_contents_route(
    session: SessionDep,
    platform_id: uuid.UUID | None = Query(default=None),
    content_type: ContentTypeName | None = Query(default=None),
    keyword: str | None = Query(default=None),
    replied: bool | None = Query(default=None),
    published_from: datetime | None = Query(default=None),
    published_to: datetime | None = Query(default=None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> ContentPage:
    filter_model = ContentFilter(
        platform_id=platform_id,
        content_type=content_type,
        keyword=keyword,
        replied=replied,
        published_from=published_from,
        published_to=published_to,
        page=page,
        page_size=page_size,
    )
    return list_contents(session, filter_model)


@router.get("/contents/platforms", response_model=list[PlatformSummary])
async def list_platforms_route(session: SessionDep) -> list[PlatformSummary]:
    return list_platforms(session)


@router.get("/contents/{content_id}", response_model=ContentItem)
async def get_content_route(content_id: uuid.UUID, session: SessionDep) -> ContentItem:
    try:
        return get_content(session, content_id)
    except NoResultFound as exc:
        raise HTTPException(status_code=404, detail="Content not found.") from exc


@router.get("/reply-templates", response_model=list[ReplyTemplate])
async def list_reply_templates_route(session: SessionDep) -> list[ReplyTemplate]:
    return list_reply_templates(session)


# ===== Admin =====


@router.post("/admin/contents/import", response_model=ImportResult, dependencies=[AdminDep])
async def import_contents_route(payload: ImportRequest, session: SessionDep) -> ImportResult:
    try:
        return import_items(session, payload.items)
    except ImportRequestError as exc:
        raise HTTPException(
            status_code=400,
            detail={"error": str(exc), "errors": [e.model_dump() for e in exc.errors]},
        ) from exc


@router.post("/admin/contents/dedupe", response_model=SweepResult, dependencies=[AdminDep])
async def dedupe_contents_route(payload: DedupeRequest, session: SessionDep) -> SweepResult:
    return sweep_duplicates(session, dry_run=payload.dry_run)


@router.delete(
    "/admin/contents/{content_id}",
    status_code=204,
    response_model=None,
    dependencies=[AdminDep],
)
async def delete_content_route(content_id: uuid.UUID, session: SessionDep) -> None:
    try:
        delete_content(session, content_id)
    except NoResultFound as exc:
        raise HTTPException(status_code=404, detail="Content not found.") from exc


@router.get("/admin/stats", response_model=AdminStats, dependencies=[AdminDep])
async def stats_route(session: SessionDep) -> AdminStats:
    return get_stats(session)


@router.post(
    "/admin/reply-templates",
    response_model=ReplyTemplate,
    status_code=201,
    dependencies=[AdminDep],
)
async def create_reply_template_route(payload: ReplyTemplateUpsert, session: SessionDep) -> ReplyTemplate:
    return create_reply_template(session, payload)


@router.put("/admin/reply-templates/{template_id}", response_model=ReplyTemplate, dependencies=[AdminDep])
async def update_reply_template_route(
    template_id: uuid.UUID, payload: ReplyTemplateUpsert, session: SessionDep
) -> ReplyTemplate:
    try:
        return update_reply_template(session, template_id, payload)
    except NoResultFound as exc:
        raise HTTPException(status_code=404, detail="Reply template not found.") from exc


@router.delete(
    "/admin/reply-templates/{template_id}",
    status_code=204,
    response_model=None,
    dependencies=[AdminDep],
)
async def delete_reply_template_route(template_id: uuid.UUID, session: SessionDep) -> None:
    try:
        delete_reply_template(session, template_id)
    except NoResultFound as exc:
        raise HTTPException(status_code=404, detail="Reply template not found.") from exc


# Sync handler: the platform call blocks, so it runs in the threadpool.
@router.post("/reply", response_model=ReplyResponse, dependencies=[AdminDep])
def reply_route(payload: ReplyRequest, session: SessionDep) -> ReplyResponse:
    try:
        replied_at = send_reply(session, payload.content_id, payload.text)
    except ReplyError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"error": exc.detail, "platform": exc.platform},
        ) from exc
    return ReplyResponse(content_id=payload.content_id, replied_at=replied_at)
