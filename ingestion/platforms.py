"""Platform registry: slug -> collector and link-resolution strategy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ingestion.connectors.base import BaseConnector, PermanentError
from ingestion.connectors.bilibili import BilibiliConnector
from ingestion.connectors.zhihu import ZhihuConnector
from ingestion.models.domain import LinkTarget, ResolvedLink
from ingestion.services import links

LinkRule = Callable[[LinkTarget], ResolvedLink]
ConnectorFactory = Callable[..., BaseConnector]


@dataclass(frozen=True)
class PlatformStrategy:
    slug: str
    display_name: str
    resolve_link: LinkRule
    connector_factory: Optional[ConnectorFactory] = None


_REGISTRY: Dict[str, PlatformStrategy] = {
    s.slug: s
    for s in (
        PlatformStrategy("bilibili", "B站", links.resolve_bilibili, BilibiliConnector),
        PlatformStrategy("zhihu", "知乎", links.resolve_zhihu, ZhihuConnector),
        PlatformStrategy("douyin", "抖音", links.resolve_generic),
        PlatformStrategy("xiaohongshu", "小红书", links.resolve_generic),
        PlatformStrategy("kuaishou", "快手", links.resolve_generic),
    )
}

GENERIC = PlatformStrategy("generic", "generic", links.resolve_generic)


def get_strategy(slug: Optional[str]) -> PlatformStrategy:
    return _REGISTRY.get((slug or "").strip().lower(), GENERIC)


def known_platforms() -> List[PlatformStrategy]:
    return list(_REGISTRY.values())


def collectable_platforms() -> List[str]:
    return [s.slug for s in _REGISTRY.values() if s.connector_factory is not None]


def build_connector(slug: str, **kwargs: Any) -> BaseConnector:
    strategy = get_strategy(slug)
    if strategy.connector_factory is None:
        raise PermanentError(f"수집기가 없는 플랫폼입니다: {slug}")
    return strategy.connector_factory(**kwargs)
