from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ingestion.models.domain import ResolvedLink

ContentTypeName = Literal["post", "comment"]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class PlatformSummary(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    icon_url: str | None = None


class ContentFilter(BaseModel):
    platform_id: uuid.UUID | None = None
    content_type: ContentTypeName | None = None
    keyword: str | None = None
    replied: bool | None = None
    published_from: datetime | None = None
    published_to: datetime | None = None
    page: int = Field(1, ge=1)
    page_size: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)


class ContentItem(BaseModel):
    id: uuid.UUID
    platform: PlatformSummary
    content_type: ContentTypeName
    platform_content_id: str | None = None
    author_name: str
    author_id: str | None = None
    author_avatar: str | None = None
    body: str
    summary: str | None = None
    published_at: datetime
    source_url: str
    keyword_tags: list[str] = Field(default_factory=list)
    like_count: int | None = None
    comment_count: int | None = None
    replied: bool = False
    replied_at: datetime | None = None
    link: ResolvedLink


class ContentPage(BaseModel):
    items: list[ContentItem]
    total: int
    page: int
    page_size: int


class ReplyTemplate(BaseModel):
    id: uuid.UUID
    title: str
    content: str


class ReplyTemplateUpsert(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    content: str = Field(..., min_length=1)


class ImportRequest(BaseModel):
    items: list[Any]


class DedupeRequest(BaseModel):
    """Accepts both `dryRun` and `dry_run`; unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    dry_run: bool = True


class AdminStats(BaseModel):
    content_count: int
    platform_count: int
    replied_count: int
    template_count: int
    duplicate_group_count: int


class ReplyRequest(BaseModel):
    content_id: uuid.UUID
    text: str = Field(..., min_length=1, max_length=2000)


class ReplyResponse(BaseModel):
    ok: bool = True
    content_id: uuid.UUID
    replied_at: datetime
