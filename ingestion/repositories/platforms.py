"""Repositories for platforms and their authorization state."""

from __future__ import annotations

import uuid
from typing import Dict, Iterable, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from ingestion.db.models import Platform, PlatformAuth
from ingestion.platforms import known_platforms


def get_or_create_platforms(session: Session, slugs: Iterable[str]) -> Dict[str, uuid.UUID]:
    """Map slugs to platform ids, creating unknown slugs (name = slug)."""
    wanted = list(dict.fromkeys(s for s in slugs if s))
    if not wanted:
        return {}
    found = {
        slug: platform_id
        for slug, platform_id in session.execute(
            select(Platform.slug, Platform.id).where(Platform.slug.in_(wanted))
        )
    }
    for slug in wanted:
        if slug in found:
            continue
        platform = Platform(slug=slug, name=slug, enabled=True)
        session.add(platform)
        session.flush()
        found[slug] = platform.id
    return found


def existing_platform_ids(session: Session, ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
    wanted = set(ids)
    if not wanted:
        return set()
    return set(session.scalars(select(Platform.id).where(Platform.id.in_(wanted))))


def list_enabled_platforms(session: Session) -> list[Platform]:
    return list(session.scalars(select(Platform).where(Platform.enabled.is_(True)).order_by(Platform.name.asc())))


def seed_platforms(session: Session) -> int:
    """Insert registry platforms that are missing; existing rows keep their names."""
    existing = set(session.scalars(select(Platform.slug)))
    created = 0
    for strategy in known_platforms():
        if strategy.slug in existing:
            continue
        session.add(Platform(slug=strategy.slug, name=strategy.display_name, enabled=True))
        created += 1
    session.flush()
    return created


def get_platform_auth(session: Session, platform_id: uuid.UUID) -> PlatformAuth | None:
    return session.scalar(select(PlatformAuth).where(PlatformAuth.platform_id == platform_id))
