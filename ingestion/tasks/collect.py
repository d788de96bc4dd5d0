"""Celery tasks for collection workflow."""

from __future__ import annotations

from typing import Callable, List
import uuid

import redis
from celery import shared_task

from ingestion.connectors.base import BaseConnector, ConnectorError
from ingestion.db.models import Base, JobStage
from ingestion.db.session import get_engine, session_scope
from ingestion.models.domain import CollectedItem
from ingestion.platforms import build_connector
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.services.deduplicator import InMemoryKeyStore, KeyStore, RedisKeyStore
from ingestion.services.importer import ImportRequestError, import_items
from ingestion.settings import get_settings
from ingestion.utils.logging import get_logger


# Connector factory is kept pluggable for tests; it must return an object with .fetch(keyword).
CONNECTOR_FACTORY: Callable[[str], BaseConnector] | None = None


def _get_connector(platform: str):
    if CONNECTOR_FACTORY is None:
        return build_connector(platform)
    return CONNECTOR_FACTORY(platform)


def _ensure_schema() -> None:
    # For local runs/tests, ensure schema exists (idempotent)
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def _fetch_fresh(connector, keyword: str, keystore: KeyStore, logger, trace_id: str) -> tuple[List[CollectedItem], int]:
    """Drain the connector, dropping items imported by a recent run.

    A connector failure mid-stream keeps what was already yielded.
    """
    fresh: List[CollectedItem] = []
    seen = 0
    try:
        for item in connector.fetch(keyword):
            seen += 1
            if keystore.has(item.adapter_key):
                continue
            fresh.append(item)
    except ConnectorError as exc:
        logger.warning(
            "collect.connector_failed",
            extra={"trace_id": trace_id, "keyword": keyword, "kept": len(fresh), "error": str(exc)},
        )
    return fresh, seen


def collect_core(keyword: str, platform: str) -> int:
    """Collect one keyword on one platform and import the results; returns rows inserted."""
    _ensure_schema()
    connector = _get_connector(platform)
    trace_id = str(uuid.uuid4())
    logger = get_logger(__name__)
    logger.info(
        "collect.start",
        extra={"trace_id": trace_id, "keyword": keyword, "platform": platform},
    )
    keystore = _build_keystore(logger)
    with session_scope() as session, JobRunRecorder(
        session,
        stage=JobStage.COLLECT,
        keyword=keyword,
        platform=platform,
        task_name="collect_keyword",
        trace_id=trace_id,
    ) as job:
        fresh, seen = _fetch_fresh(connector, keyword, keystore, logger, trace_id)
        job.items_seen = seen
        inserted = 0
        if fresh:
            try:
                result = import_items(session, [item.to_payload() for item in fresh])
                inserted = result.inserted_count
            except ImportRequestError as exc:
                logger.warning(
                    "collect.import_rejected",
                    extra={"trace_id": trace_id, "keyword": keyword, "errors": len(exc.errors)},
                )
                fresh = []
        job.items_written = inserted
        logger.info(
            "collect.saved",
            extra={
                "trace_id": trace_id,
                "keyword": keyword,
                "platform": platform,
                "fetched": seen,
                "fresh": len(fresh),
                "saved": inserted,
            },
        )
    # Mark only once the import transaction has committed.
    for item in fresh:
        keystore.add(item.adapter_key)
    return inserted


def _build_keystore(logger) -> KeyStore:
    settings = get_settings()
    ttl = int(settings.dedup_redis_ttl_seconds)
    try:
        client = redis.Redis.from_url(settings.redis_url, socket_connect_timeout=0.2)
        # 연결 확인; 실패 시 폴백
        client.ping()
    except redis.exceptions.RedisError:
        logger.info("dedupe.keystore.memory", extra={"reason": "redis_ping_failed"})
        return InMemoryKeyStore()
    logger.info("dedupe.keystore.redis", extra={"redis_url": settings.redis_url})
    return RedisKeyStore(client, prefix="collected", default_ttl_seconds=ttl)


@shared_task(name="ingestion.tasks.collect.collect_keyword")
def collect_keyword(keyword: str, platform: str) -> int:  # pragma: no cover - wrapper
    return collect_core(keyword, platform)
