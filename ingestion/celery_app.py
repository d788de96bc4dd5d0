"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from celery import Celery, signals
from celery.schedules import schedule as celery_schedule

from .settings import CollectionSchedule, Settings, get_settings
from .utils.logging import configure_logging

_CELERY_APP: Celery | None = None

COLLECT_TASK = "ingestion.tasks.collect.collect_keyword"
SWEEP_TASK = "ingestion.tasks.sweep.sweep_duplicates_task"


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다."""
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)

    app = Celery("ingestion", broker=config.redis_url, backend=config.redis_url)
    app.conf.update(
        task_default_queue="ingestion.default",
        task_default_exchange="ingestion",
        task_default_routing_key="ingestion.default",
        task_soft_time_limit=config.celery_task_soft_time_limit,
        worker_concurrency=config.celery_worker_concurrency,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    app.autodiscover_tasks(["ingestion.tasks"], related_name="collect")
    app.autodiscover_tasks(["ingestion.tasks"], related_name="sweep")
    _install_signal_handlers(app)
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {}
    for index, item in enumerate(settings.collection_schedules):
        if not item.enabled:
            continue
        schedule_name = _build_schedule_name(item, index)
        run_every = celery_schedule(timedelta(minutes=item.interval_minutes))
        schedule[schedule_name] = {
            "task": COLLECT_TASK,
            "schedule": run_every,
            "args": (item.keyword, item.platform),
            "options": {"queue": "ingestion.collect"},
        }
    if settings.sweep_interval_minutes:
        schedule["sweep.duplicates"] = {
            "task": SWEEP_TASK,
            "schedule": celery_schedule(timedelta(minutes=settings.sweep_interval_minutes)),
            "kwargs": {"dry_run": False},
            "options": {"queue": "ingestion.maintenance"},
        }
    return schedule


def _build_schedule_name(item: CollectionSchedule, index: int) -> str:
    return f"collect.{item.platform}.{item.keyword.lower()}.{index}"


def _install_signal_handlers(app: Celery) -> None:
    logger = logging.getLogger("ingestion.worker")

    @signals.worker_shutdown.connect  # type: ignore[attr-defined]
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": sender})
