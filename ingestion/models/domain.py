"""Domain DTOs for ingestion pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ContentType(str, Enum):
    POST = "post"
    COMMENT = "comment"


class CollectedItem(BaseModel):
    """Raw record emitted by a platform connector.

    Serialises to the camelCase import payload so collector output and operator
    JSON imports go through the same normalizer.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform_slug: str
    content_type: ContentType = ContentType.POST
    platform_content_id: Optional[str] = None
    author_name: str
    author_id: Optional[str] = None
    author_avatar: Optional[str] = None
    body: str
    summary: Optional[str] = None
    source_url: str
    published_at: datetime
    keyword_tags: List[str] = Field(default_factory=list)
    like_count: Optional[int] = None
    comment_count: Optional[int] = None

    @property
    def adapter_key(self) -> str:
        """`(platform, type, native id)` key used for in-run dedup."""
        native = self.platform_content_id or self.source_url
        return f"{self.platform_slug}:{self.content_type.value}:{native}"

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class CandidateItem(BaseModel):
    """Normalized, not-yet-persisted content record."""

    platform_id: uuid.UUID
    platform_slug: Optional[str] = None
    content_type: ContentType
    platform_content_id: Optional[str] = None
    author_name: str
    author_id: Optional[str] = None
    author_avatar: Optional[str] = None
    body: str
    body_md5: str = Field(..., description="본문 MD5 (변경 감지용, 식별 키 아님)")
    summary: str
    published_at: datetime
    source_url: str
    keyword_tags: List[str] = Field(default_factory=list)
    like_count: Optional[int] = None
    comment_count: Optional[int] = None


class Rejection(BaseModel):
    """Per-item rejection, indexed by position in the submitted batch."""

    index: int
    reason: str


class ImportResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    inserted_count: int
    total_submitted: int
    invalid_count: int
    duplicate_within_batch_count: int
    duplicate_existing_count: int
    skipped_count: int = Field(0, description="저장소 유니크 제약으로 건너뛴 행 수")
    errors: List[Rejection] = Field(default_factory=list)


class SweepResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    duplicate_group_count: int
    duplicate_row_count: int
    deleted_count: Optional[int] = None
    dry_run: bool


class LinkTarget(BaseModel):
    """The fields of a stored record that link resolution depends on."""

    source_url: str
    platform_slug: Optional[str] = None
    content_type: ContentType = ContentType.POST
    platform_content_id: Optional[str] = None


class ResolvedLink(BaseModel):
    url: str
    was_rewritten: bool = False
    reason: Optional[str] = None
    approximate: bool = Field(False, description="플랫폼 문서가 없는 휴리스틱 앵커 여부")
