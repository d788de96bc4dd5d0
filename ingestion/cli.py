"""Collect keywords from the supported platforms and dump them as import payloads.

Usage::

    python -m ingestion.cli --keywords 论文润色,SCI --platforms bilibili,zhihu \
        --per-keyword 100 --comments-per-post 5 --out output.json [--headful] [--import]

The output file holds a JSON array in the shape accepted by the admin import
endpoint. ``--import`` additionally pushes the batch through the import
pipeline against ``POSTGRES_DSN``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ingestion.connectors.base import ConnectorError
from ingestion.db.models import Base
from ingestion.db.session import get_engine, session_scope
from ingestion.platforms import build_connector
from ingestion.services.deduplicator import InMemoryKeyStore
from ingestion.services.importer import ImportRequestError, import_items
from ingestion.settings import get_settings
from ingestion.utils.logging import configure_logging, get_logger

logger = get_logger("ingestion.cli")


def _split(value: Optional[str], *, lower: bool = False) -> List[str]:
    parts = [p.strip() for p in (value or "").split(",")]
    return [p.lower() if lower else p for p in parts if p]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ingestion.cli", description="Collect platform content into import JSON.")
    parser.add_argument("--keywords", default="", help="comma separated keywords (default: COLLECTOR_KEYWORDS)")
    parser.add_argument("--platforms", default="bilibili,zhihu", help="comma separated platform slugs")
    parser.add_argument("--per-keyword", type=int, default=None, help="posts per keyword and platform")
    parser.add_argument("--comments-per-post", type=int, default=None, help="comments fetched per post")
    parser.add_argument("--out", default="output.json", help="output JSON path")
    parser.add_argument("--headful", action="store_true", help="show the browser window")
    parser.add_argument("--import", dest="do_import", action="store_true", help="import into the content store")
    return parser


def collect(
    keywords: Sequence[str],
    platforms: Sequence[str],
    *,
    per_keyword: Optional[int] = None,
    comments_per_post: Optional[int] = None,
    headless: Optional[bool] = None,
) -> List[Dict[str, Any]]:
    """Run every platform over every keyword; one platform failing does not stop the rest."""
    payloads: List[Dict[str, Any]] = []
    for platform in platforms:
        try:
            connector = build_connector(platform, headless=headless)
        except ConnectorError as exc:
            logger.warning("cli.platform_skipped", extra={"platform": platform, "error": str(exc)})
            continue
        seen = InMemoryKeyStore()
        for keyword in keywords:
            before = len(payloads)
            try:
                for item in connector.fetch(
                    keyword, per_keyword, comments_per_post=comments_per_post, seen=seen
                ):
                    payloads.append(item.to_payload())
            except ConnectorError as exc:
                logger.warning(
                    "cli.keyword_failed",
                    extra={"platform": platform, "keyword": keyword, "error": str(exc)},
                )
            logger.info(
                "cli.collected",
                extra={"platform": platform, "keyword": keyword, "count": len(payloads) - before},
            )
    return payloads


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.structlog_level, json_enabled=settings.log_json)

    keywords = _split(args.keywords) or list(settings.collector_keywords)
    platforms = _split(args.platforms, lower=True)
    payloads = collect(
        keywords,
        platforms,
        per_keyword=args.per_keyword,
        comments_per_post=args.comments_per_post,
        headless=False if args.headful else None,
    )

    out = Path(args.out)
    out.write_text(json.dumps(payloads, ensure_ascii=False, indent=2), encoding="utf-8")
    print(f"Collected {len(payloads)} items -> {out}")

    if args.do_import and payloads:
        Base.metadata.create_all(bind=get_engine())
        step = int(settings.import_max_items)
        for start in range(0, len(payloads), step):
            try:
                with session_scope() as session:
                    result = import_items(session, payloads[start : start + step], settings=settings)
            except ImportRequestError as exc:
                print(f"Import rejected: {exc} ({len(exc.errors)} errors)", file=sys.stderr)
                return 1
            print(json.dumps(result.model_dump(by_alias=True), ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
