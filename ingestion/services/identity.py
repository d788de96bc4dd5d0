"""Composite identity keys and batch duplicate detection.

Two contents of the same platform are the same item when they share the
platform-native content id, or when they share the exact source URL. Every
place that deduplicates (this resolver, the writer's unique indexes and the
maintenance sweep) derives its key from the functions below.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ingestion.db.models import Content
from ingestion.models.domain import CandidateItem, Rejection

REASON_DUPLICATE_EXISTING = "duplicate of stored content"
REASON_DUPLICATE_IN_BATCH = "duplicate inside import batch"


def identity_keys(
    platform_id: uuid.UUID | str,
    platform_content_id: Optional[str],
    source_url: str,
) -> List[str]:
    """Return the composite identity keys of one content record."""
    keys = []
    if platform_content_id:
        keys.append(f"pcid:{platform_id}:{platform_content_id}")
    keys.append(f"url:{platform_id}:{source_url}")
    return keys


def sweep_group_key() -> ColumnElement[str]:
    """Single grouping expression for the whole-store sweep."""
    return func.coalesce(Content.platform_content_id, Content.source_url)


@dataclass
class IdentityResolution:
    accepted: List[CandidateItem] = field(default_factory=list)
    duplicates_existing: List[Rejection] = field(default_factory=list)
    duplicates_in_batch: List[Rejection] = field(default_factory=list)

    @property
    def rejections(self) -> List[Rejection]:
        return sorted(self.duplicates_existing + self.duplicates_in_batch, key=lambda r: r.index)


def load_existing_keys(session: Session, items: Sequence[CandidateItem]) -> Set[str]:
    """Fetch the identity keys already in the store for ``items`` in one query."""
    if not items:
        return set()
    platform_ids = {it.platform_id for it in items}
    native_ids = {it.platform_content_id for it in items if it.platform_content_id}
    urls = {it.source_url for it in items}

    # Superset filter; exact (platform, value) matching happens on the keys.
    conditions = [Content.source_url.in_(urls)]
    if native_ids:
        conditions.append(Content.platform_content_id.in_(native_ids))
    stmt = select(Content.platform_id, Content.platform_content_id, Content.source_url).where(
        Content.platform_id.in_(platform_ids),
        or_(*conditions),
    )
    existing: Set[str] = set()
    for platform_id, native_id, url in session.execute(stmt):
        existing.update(identity_keys(platform_id, native_id, url))
    return existing


def partition_duplicates(
    items: Iterable[tuple[int, CandidateItem]],
    existing_keys: Set[str],
) -> IdentityResolution:
    """Stable partition of ``(index, item)`` pairs; the first occurrence wins."""
    resolution = IdentityResolution()
    incoming: Set[str] = set()
    for index, item in items:
        keys = identity_keys(item.platform_id, item.platform_content_id, item.source_url)
        if any(k in existing_keys for k in keys):
            resolution.duplicates_existing.append(Rejection(index=index, reason=REASON_DUPLICATE_EXISTING))
            continue
        if any(k in incoming for k in keys):
            resolution.duplicates_in_batch.append(Rejection(index=index, reason=REASON_DUPLICATE_IN_BATCH))
            continue
        incoming.update(keys)
        resolution.accepted.append(item)
    return resolution


def resolve_identities(session: Session, items: Sequence[tuple[int, CandidateItem]]) -> IdentityResolution:
    existing = load_existing_keys(session, [item for _, item in items])
    return partition_duplicates(items, existing)
