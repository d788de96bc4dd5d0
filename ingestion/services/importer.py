"""Batch import pipeline: normalize -> resolve identities -> bulk write."""

from __future__ import annotations

import uuid
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ingestion.models.domain import CandidateItem, ImportResult, Rejection
from ingestion.repositories.platforms import existing_platform_ids, get_or_create_platforms
from ingestion.services.identity import resolve_identities
from ingestion.services.normalizer import collect_slugs, normalize
from ingestion.services.writer import write_contents
from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class ImportRequestError(Exception):
    """The batch as a whole cannot be imported."""

    def __init__(self, message: str, errors: Optional[List[Rejection]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


def _raw_platform_ids(items: Sequence[Any]) -> set[uuid.UUID]:
    ids: set[uuid.UUID] = set()
    for raw in items:
        if not isinstance(raw, Mapping):
            continue
        value = raw.get("platformId") or raw.get("platform_id")
        if not value:
            continue
        try:
            ids.add(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))
        except ValueError:
            continue
    return ids


def import_items(
    session: Session,
    items: Sequence[Any],
    *,
    settings: Optional[Settings] = None,
) -> ImportResult:
    """Import one batch of raw records.

    Validation and duplicate problems are reported per item and never fail
    the batch; only an empty, oversized or entirely invalid batch raises
    :class:`ImportRequestError`. Store errors propagate to the caller.
    """
    cfg = settings or get_settings()
    if not items:
        raise ImportRequestError("items must be a non-empty array")
    if len(items) > cfg.import_max_items:
        raise ImportRequestError(f"at most {cfg.import_max_items} items per import")

    platforms = get_or_create_platforms(session, collect_slugs(list(items)))
    known_ids = existing_platform_ids(session, _raw_platform_ids(items))

    invalid: List[Rejection] = []
    candidates: List[tuple[int, CandidateItem]] = []
    for index, raw in enumerate(items):
        outcome = normalize(raw, index, platforms, known_ids)
        if isinstance(outcome, Rejection):
            invalid.append(outcome)
        else:
            candidates.append((index, outcome))

    if not candidates:
        raise ImportRequestError("no valid items", errors=invalid[: cfg.import_error_limit])

    resolution = resolve_identities(session, candidates)
    written = write_contents(session, resolution.accepted, chunk_size=int(cfg.writer_chunk_size))

    errors = sorted(invalid + resolution.rejections, key=lambda r: r.index)
    result = ImportResult(
        inserted_count=written.inserted,
        total_submitted=len(items),
        invalid_count=len(invalid),
        duplicate_within_batch_count=len(resolution.duplicates_in_batch),
        duplicate_existing_count=len(resolution.duplicates_existing),
        skipped_count=written.skipped,
        errors=errors[: cfg.import_error_limit],
    )
    logger.info(
        "import.done",
        extra={
            "total": result.total_submitted,
            "inserted": result.inserted_count,
            "invalid": result.invalid_count,
            "dup_batch": result.duplicate_within_batch_count,
            "dup_existing": result.duplicate_existing_count,
            "skipped": result.skipped_count,
        },
    )
    return result
