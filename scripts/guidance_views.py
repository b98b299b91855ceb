#!/usr/bin/env python3
"""Read-only views over the stored guidance and change log, as the dashboard presents them."""

from __future__ import annotations

import argparse
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from dateutil import parser as dtparser

from scripts.guidance_common import UTC, default_data_dir
from scripts.guidance_store import CHANGES_FILE, CONFIG_FILE, GUIDANCE_FILE, load_document


SEARCH_LIMIT = 50
SEARCH_CONTEXT_CHARS = 100


def parse_when(value: Any) -> datetime:
    s = str(value or "").strip()
    if s:
        try:
            dt = dtparser.parse(s)
            if not dt.tzinfo:
                dt = dt.replace(tzinfo=UTC)
            return dt.astimezone(UTC)
        except (ValueError, OverflowError):
            pass
    return datetime.min.replace(tzinfo=UTC)


def item_when(item: dict[str, Any]) -> datetime:
    return parse_when(item.get("publishedDate") or item.get("fetchedDate"))


def _metadata(item: dict[str, Any]) -> dict[str, Any]:
    meta = item.get("metadata")
    return meta if isinstance(meta, dict) else {}


class GuidanceViews:
    def __init__(self, guidance: dict[str, Any], changes: dict[str, Any], config: dict[str, Any]):
        self.guidance = guidance
        self.changes = changes
        self.config = config

    @classmethod
    def from_dir(cls, data_dir: Path) -> "GuidanceViews":
        data_dir = Path(data_dir)
        return cls(
            guidance=load_document(data_dir / GUIDANCE_FILE, {}),
            changes=load_document(data_dir / CHANGES_FILE, {}),
            config=load_document(data_dir / CONFIG_FILE, {}),
        )

    def _items(self) -> list[dict[str, Any]]:
        return [x for x in self.guidance.values() if isinstance(x, dict)]

    def get_stats(self) -> dict[str, Any]:
        counts: dict[str, int] = {"nice": 0, "ncl": 0, "nhs": 0, "artp": 0, "total": 0}
        for item in self._items():
            source = item.get("source")
            if source:
                counts[source] = counts.get(source, 0) + 1
                counts["total"] += 1
        changes = [x for x in self.changes.values() if isinstance(x, dict)]
        return {
            "guidanceCount": counts,
            "totalChanges": len(changes),
            "unreadChanges": sum(1 for c in changes if not c.get("acknowledged")),
            "lastUpdate": self.config.get("lastRunStats") or {},
            "sources": self.config.get("sources") or {},
        }

    def list_guidance(self, source: str = "all", limit: int = 20, offset: int = 0) -> dict[str, Any]:
        items = self._items()
        if source != "all":
            items = [i for i in items if i.get("source") == source]
        items.sort(key=item_when, reverse=True)
        rows = []
        for item in items:
            meta = _metadata(item)
            rows.append(
                {
                    "id": item.get("id"),
                    "url": item.get("url"),
                    "title": item.get("title"),
                    "source": item.get("source"),
                    "type": item.get("type"),
                    "publishedDate": item.get("publishedDate"),
                    "fetchedDate": item.get("fetchedDate"),
                    "excerpt": meta.get("description") or str(item.get("content") or "")[:200],
                    "wordCount": meta.get("wordCount") or 0,
                    "estimatedReadTime": meta.get("estimatedReadTime") or 0,
                    "parentUrl": item.get("parentUrl"),
                }
            )
        return {"items": rows[offset:offset + limit], "total": len(rows), "limit": limit, "offset": offset}

    def get_guidance(self, item_id: str) -> dict[str, Any] | None:
        item = self.guidance.get(item_id)
        return item if isinstance(item, dict) else None

    def list_changes(self, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        items = [dict(c, acknowledged=bool(c.get("acknowledged"))) for c in self.changes.values() if isinstance(c, dict)]
        items.sort(key=lambda c: parse_when(c.get("detectedAt")), reverse=True)
        return {
            "items": items[offset:offset + limit],
            "total": len(items),
            "unread": sum(1 for c in items if not c["acknowledged"]),
            "limit": limit,
            "offset": offset,
        }

    def search(self, query: str, source: str = "all") -> dict[str, Any]:
        """Substring search over titles and content; title hits rank above content hits, newest first."""
        q = str(query or "").lower().strip()
        if len(q) < 2:
            return {"items": [], "total": 0, "query": ""}

        results: list[tuple[dict[str, Any], datetime]] = []
        for item in self._items():
            if source != "all" and item.get("source") != source:
                continue
            content = str(item.get("content") or "")
            title_match = q in str(item.get("title") or "").lower()
            content_match = q in content.lower()
            if not title_match and not content_match:
                continue

            if content_match:
                idx = content.lower().index(q)
                start = max(0, idx - SEARCH_CONTEXT_CHARS)
                end = min(len(content), idx + len(q) + SEARCH_CONTEXT_CHARS)
                excerpt = ("..." if start > 0 else "") + content[start:end] + ("..." if end < len(content) else "")
            else:
                excerpt = _metadata(item).get("description") or ""

            row = {
                "id": item.get("id"),
                "url": item.get("url"),
                "title": item.get("title"),
                "source": item.get("source"),
                "publishedDate": item.get("publishedDate"),
                "fetchedDate": item.get("fetchedDate"),
                "excerpt": excerpt,
                "wordCount": _metadata(item).get("wordCount") or 0,
                "matchType": "title" if title_match else "content",
            }
            results.append((row, item_when(item)))

        results.sort(key=lambda pair: pair[1], reverse=True)
        results.sort(key=lambda pair: 0 if pair[0]["matchType"] == "title" else 1)
        rows = [row for row, _ in results]
        return {"items": rows[:SEARCH_LIMIT], "total": len(rows), "query": query}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print dashboard views over the stored guidance data")
    parser.add_argument("--data-dir", default=None, help="Directory holding the JSON documents (default: $GUIDANCE_DATA_DIR or data)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="Article counts, unread changes and last run times")
    guidance = sub.add_parser("guidance", help="Newest stored guidance")
    guidance.add_argument("--source", default="all")
    guidance.add_argument("--limit", type=int, default=20)
    guidance.add_argument("--offset", type=int, default=0)
    show = sub.add_parser("show", help="One stored item by id")
    show.add_argument("id")
    changes = sub.add_parser("changes", help="Newest change events")
    changes.add_argument("--limit", type=int, default=50)
    changes.add_argument("--offset", type=int, default=0)
    search = sub.add_parser("search", help="Search titles and content")
    search.add_argument("query")
    search.add_argument("--source", default="all")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    views = GuidanceViews.from_dir(Path(args.data_dir or default_data_dir()))
    if args.command == "stats":
        payload: Any = views.get_stats()
    elif args.command == "guidance":
        payload = views.list_guidance(source=args.source, limit=args.limit, offset=args.offset)
    elif args.command == "show":
        payload = views.get_guidance(args.id)
        if payload is None:
            payload = {"error": "Not found"}
    elif args.command == "changes":
        payload = views.list_changes(limit=args.limit, offset=args.offset)
    else:
        payload = views.search(args.query, source=args.source)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
