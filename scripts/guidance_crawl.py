"""Fetch a page, fingerprint its main content and reconcile it with the stored articles."""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

import requests

from scripts.guidance_common import DEFAULT_TIMEOUT, UTC, fetch_page, iso, log, utc_now
from scripts.guidance_store import DataStore
from scripts.guidance_text import extract_content, extract_title, hash_string, parse_published_date


MIN_CONTENT_CHARS = 50
WORDS_PER_MINUTE = 250
CHAPTER_DELAY_SECONDS = 0.5

RECURSIVE_SOURCES = {"nice"}


@dataclass
class CrawlContext:
    session: requests.Session
    store: DataStore
    timeout: float = DEFAULT_TIMEOUT
    sleep: Callable[[float], None] = field(default=time.sleep)
    clock: Callable[[], datetime] = field(default=utc_now)

    def pause(self, seconds: float) -> None:
        self.sleep(seconds)

    def now_iso(self) -> str:
        return iso(self.clock())


EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def epoch_millis(dt: datetime) -> int:
    # Integer arithmetic, truncating like iso() so change keys agree with detectedAt.
    return (dt - EPOCH) // timedelta(milliseconds=1)


def storage_key(url: str) -> str:
    return f"content:{hash_string(url)}"


def word_count(text: str) -> int:
    return len(re.split(r"\s+", text))


def record_article(
    ctx: CrawlContext,
    *,
    url: str,
    title: str,
    source: str,
    content: str,
    item_type: str,
    published_date: str | None,
    description: str | None = None,
    parent_url: str | None = None,
    min_read_minutes: int = 0,
) -> str | None:
    """Upsert an article and append its change event; returns the change type or None when unchanged."""
    content_hash = hash_string(content)
    url_hash = hash_string(url)
    key = storage_key(url)

    existing = ctx.store.guidance.get(key)
    previous_hash = existing.get("contentHash") if isinstance(existing, dict) else None
    if existing and previous_hash == content_hash:
        log(f"  No changes: {title}")
        return None

    now = ctx.clock()
    now_iso = iso(now)
    words = word_count(content)
    ctx.store.guidance[key] = {
        "id": key,
        "url": url,
        "title": title,
        "source": source,
        "type": item_type or "article",
        "publishedDate": published_date or now_iso.split("T")[0],
        "fetchedDate": now_iso,
        "contentHash": content_hash,
        "content": content,
        "parentUrl": parent_url or None,
        "metadata": {
            "wordCount": words,
            "estimatedReadTime": max(min_read_minutes, math.ceil(words / WORDS_PER_MINUTE)),
            "description": description or content[:200],
        },
    }

    change_type = "content_update" if existing else "new_guidance"
    change_key = f"change:{epoch_millis(now)}:{url_hash}"
    ctx.store.changes[change_key] = {
        "id": change_key,
        "url": url,
        "title": title,
        "source": source,
        "changeType": change_type,
        "detectedAt": now_iso,
        "previousHash": previous_hash or None,
        "newHash": content_hash,
        "acknowledged": False,
    }
    ctx.store.bump_unread()
    log(f'  Stored {change_type}: "{title}" ({words} words)')
    return change_type


def crawl_and_store(
    ctx: CrawlContext,
    url: str,
    source: str,
    item_type: str = "article",
    hints: dict[str, Any] | None = None,
    depth: int = 0,
    max_depth: int = 0,
    parent_url: str | None = None,
) -> int:
    """Crawl one page (and, for NICE, its chapters); returns how many articles were stored.

    Transport failures are logged and leave every document untouched. Pages whose
    cleaned content is shorter than MIN_CONTENT_CHARS are not articles and are
    skipped. Re-crawling unchanged content changes nothing.
    """
    hints = hints or {}
    log(f"  Crawling [{source}] {url}")
    try:
        html = fetch_page(ctx.session, url, timeout=ctx.timeout)
    except requests.RequestException as exc:
        log(f"  Failed to fetch: {exc}", error=True)
        return 0

    content, chapter_links = extract_content(html, source)
    title = str(hints.get("title") or "") or extract_title(html)

    if not content or len(content) < MIN_CONTENT_CHARS:
        log("  Skipping - content too short")
        return 0

    change_type = record_article(
        ctx,
        url=url,
        title=title,
        source=source,
        content=content,
        item_type=item_type,
        published_date=hints.get("publishedDate") or parse_published_date(html),
        description=hints.get("description"),
        parent_url=parent_url,
    )
    if change_type is None:
        return 0

    stored = 1
    if source in RECURSIVE_SOURCES and depth < max_depth and chapter_links:
        log(f'  Crawling {len(chapter_links)} chapters for "{title}"...')
        for chapter in chapter_links:
            stored += crawl_and_store(
                ctx,
                chapter["url"],
                source,
                "chapter",
                {"title": f"{title} — {chapter['title']}"},
                depth=depth + 1,
                max_depth=max_depth,
                parent_url=url,
            )
            ctx.pause(CHAPTER_DELAY_SECONDS)
    return stored


def store_feed_item(ctx: CrawlContext, item: dict[str, Any], source: str, published_date: str | None) -> bool:
    """Store a feed item's own description as the article body, without fetching the page."""
    title = str(item.get("title") or "")
    content = str(item.get("description") or "") or title
    change_type = record_article(
        ctx,
        url=str(item.get("link") or ""),
        title=title,
        source=source,
        content=content,
        item_type="article",
        published_date=published_date,
        min_read_minutes=1,
    )
    return change_type is not None
