"""Configuration models for the ingestion service."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Annotated, Any, List, Optional, Set, Tuple

from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
DEFAULT_KEYWORDS = ["SCI", "论文", "专利", "投稿", "发表论文", "发表期刊"]


class CollectionSchedule(BaseModel):
    """Represents a periodic collection job configuration."""

    keyword: str = Field(..., description="검색 키워드.")
    platform: str = Field(..., description="플랫폼 slug (예: bilibili, zhihu).")
    interval_minutes: PositiveInt = Field(..., description="수집 주기 (분 단위).")
    enabled: bool = Field(True, description="스케줄 사용 여부.")

    @field_validator("keyword")
    @classmethod
    def _strip_keyword(cls, value: str) -> str:
        keyword = value.strip()
        if not keyword:
            raise ValueError("keyword는 공백일 수 없습니다.")
        return keyword

    @field_validator("platform")
    @classmethod
    def _normalize_platform(cls, value: str) -> str:
        platform = value.strip().lower()
        if not platform:
            raise ValueError("platform은 공백일 수 없습니다.")
        return platform


class Settings(BaseSettings):
    """Ingestion용 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(..., alias="INGESTION_REDIS_URL", description="Celery 브로커/백엔드 Redis DSN.")
    postgres_dsn: str = Field(..., alias="POSTGRES_DSN", description="PostgreSQL 연결 문자열.")

    bilibili_cookie: Optional[SecretStr] = Field(None, alias="BILIBILI_COOKIE", description="B站 세션 쿠키 헤더.")
    collector_user_agent: str = Field(DEFAULT_USER_AGENT, alias="COLLECTOR_USER_AGENT", description="수집기 User-Agent")
    collector_timeout_seconds: PositiveInt = Field(10, alias="COLLECTOR_TIMEOUT_SECONDS", description="플랫폼 요청 타임아웃(초)")
    collector_max_retries: PositiveInt = Field(3, alias="COLLECTOR_MAX_RETRIES", description="목록 페이지 최대 시도 횟수")
    collector_page_size: PositiveInt = Field(20, alias="COLLECTOR_PAGE_SIZE", description="검색 페이지 크기(≤50)")
    collector_per_keyword: PositiveInt = Field(100, alias="COLLECTOR_PER_KEYWORD", description="키워드당 최대 게시물 수")
    collector_comments_per_post: int = Field(
        5, ge=0, alias="COLLECTOR_COMMENTS_PER_POST", description="게시물당 댓글 수집 수 (0이면 생략)"
    )
    collector_headless: bool = Field(True, alias="COLLECTOR_HEADLESS", description="브라우저 headless 실행 여부")
    collector_keywords: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_KEYWORDS),
        alias="COLLECTOR_KEYWORDS",
        description="CLI 기본 키워드 목록 (쉼표 구분 혹은 JSON 배열).",
    )

    import_max_items: PositiveInt = Field(2000, alias="IMPORT_MAX_ITEMS", description="1회 가져오기 최대 항목 수.")
    import_error_limit: PositiveInt = Field(200, alias="IMPORT_ERROR_LIMIT", description="응답에 포함할 최대 오류 수.")
    writer_chunk_size: PositiveInt = Field(500, alias="WRITER_CHUNK_SIZE", description="벌크 INSERT 청크 크기.")
    sweep_interval_minutes: Optional[PositiveInt] = Field(
        None, alias="SWEEP_INTERVAL_MINUTES", description="중복 정리 주기 (미설정 시 비활성)."
    )

    admin_api_token: Optional[SecretStr] = Field(None, alias="ADMIN_API_TOKEN", description="관리자 API Bearer 토큰.")
    zhihu_api_base: str = Field("https://api.zhihu.com", alias="ZHIHU_API_BASE", description="知乎 API 베이스 URL")
    reply_timeout_seconds: PositiveInt = Field(10, alias="REPLY_TIMEOUT_SECONDS", description="답글 전송 타임아웃(초)")

    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    collection_schedules: List[CollectionSchedule] = Field(
        default_factory=list,
        alias="COLLECTION_SCHEDULES",
        description="JSON 배열 혹은 객체 리스트 형태의 수집 스케줄.",
    )
    dedup_redis_ttl_seconds: PositiveInt = Field(86_400, alias="DEDUP_REDIS_TTL_SECONDS", description="중복 캐시 TTL.")
    celery_worker_concurrency: PositiveInt = Field(
        4,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        600,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("collection_schedules", mode="before")
    @classmethod
    def _parse_collection_schedules(cls, value: Any) -> List[Any]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("COLLECTION_SCHEDULES는 JSON 배열이어야 합니다.") from exc
            return parsed
        if isinstance(value, list):
            return value
        raise ValueError("COLLECTION_SCHEDULES는 리스트 형태여야 합니다.")

    @field_validator("collection_schedules")
    @classmethod
    def _validate_unique_schedule(cls, value: List[CollectionSchedule]) -> List[CollectionSchedule]:
        seen: Set[Tuple[str, str]] = set()
        for schedule in value:
            key = (schedule.keyword, schedule.platform)
            if key in seen:
                raise ValueError(f"중복된 스케줄 항목이 존재합니다: {schedule.platform}/{schedule.keyword}")
            seen.add(key)
        return value

    @field_validator("collector_keywords", mode="before")
    @classmethod
    def _parse_keywords(cls, value: Any) -> List[str]:
        if value in (None, ""):
            return list(DEFAULT_KEYWORDS)
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                try:
                    value = json.loads(stripped)
                except json.JSONDecodeError as exc:
                    raise ValueError("COLLECTOR_KEYWORDS JSON 파싱에 실패했습니다.") from exc
            else:
                value = stripped.split(",")
        keywords = [str(k).strip() for k in value if str(k).strip()]
        return keywords or list(DEFAULT_KEYWORDS)

    @field_validator("postgres_dsn")
    @classmethod
    def _validate_postgres_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("POSTGRES_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator("collector_page_size")
    @classmethod
    def _validate_page_size(cls, v: int) -> int:
        if v > 50:
            raise ValueError("COLLECTOR_PAGE_SIZE는 50 이하여야 합니다.")
        return v


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
