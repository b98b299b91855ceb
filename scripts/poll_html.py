#!/usr/bin/env python3
"""Watch the ARTP news listing and crawl its articles when the set of article links changes."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

import requests

from scripts.guidance_common import (
    DEFAULT_TIMEOUT,
    create_session,
    default_data_dir,
    fetch_page,
    load_env_file,
    log,
    utc_now_iso,
)
from scripts.guidance_crawl import CrawlContext, crawl_and_store
from scripts.guidance_links import (
    DEFAULT_SOURCES,
    extract_artp_article_links,
    listing_date_to_iso,
    match_text,
    resolve_source_filter,
)
from scripts.guidance_store import DataStore, default_run_config
from scripts.guidance_text import hash_string


ARTP_NEWS_URL = "https://www.artp.org.uk/news"
ARTP_PAGE_KEY = "artp-news"
ARTP_DELAY_SECONDS = 0.5


def listing_fingerprint(links: list[dict[str, Any]]) -> str:
    return hash_string("|".join(sorted({str(a["url"]) for a in links})))


def check_artp_news(ctx: CrawlContext) -> int:
    """Crawl ARTP articles not seen before, unless the listing's link set is unchanged since last run."""
    log("Checking ARTP news page...")
    source_meta = ctx.store.source_config("artp")
    url = str(source_meta.get("url") or ARTP_NEWS_URL)
    try:
        html = fetch_page(ctx.session, url, timeout=ctx.timeout)
    except requests.RequestException as exc:
        log(f"ARTP fetch failed: {exc}", error=True)
        return 0

    links = extract_artp_article_links(html)
    current_hash = listing_fingerprint(links)
    stored = ctx.store.page_hashes.get(ARTP_PAGE_KEY)
    stored = stored if isinstance(stored, dict) else {}
    previous_hash = stored.get("hash")
    log(f"ARTP hash: {current_hash} (previous: {previous_hash or 'none'})")

    now = ctx.now_iso()
    if previous_hash and previous_hash == current_hash:
        log("ARTP: No changes detected")
        ctx.store.page_hashes[ARTP_PAGE_KEY] = {**stored, "lastChecked": now}
        return 0

    log("ARTP: Changes detected - processing new articles")
    filt = resolve_source_filter(source_meta, "artp")
    crawled = 0
    stored_count = 0
    for article in links:
        seen_key = f"artp:{hash_string(article['url'])}"
        if seen_key in ctx.store.seen:
            continue
        ctx.store.seen[seen_key] = {
            "url": article["url"],
            "title": article["title"],
            "discovered": now,
            "source": "artp",
        }
        if match_text(article["title"], filt):
            log(f'  ARTP: Skipping (excluded) "{article["title"]}"')
            continue

        stored_count += crawl_and_store(
            ctx,
            article["url"],
            "artp",
            "article",
            {"title": article["title"], "publishedDate": listing_date_to_iso(article.get("date"))},
        )
        crawled += 1
        ctx.pause(ARTP_DELAY_SECONDS)

    ctx.store.page_hashes[ARTP_PAGE_KEY] = {
        "url": url,
        "hash": current_hash,
        "lastChecked": now,
        "lastChanged": now if crawled > 0 else (stored.get("lastChanged") or now),
        "articlesFound": len(links),
        "newArticlesFound": crawled,
    }
    log(f"ARTP: {crawled} new articles out of {len(links)} total")
    return stored_count


def run(ctx: CrawlContext) -> dict[str, int]:
    results = {"artp": 0}
    if ctx.store.source_enabled("artp"):
        results["artp"] = check_artp_news(ctx)
    else:
        log("ARTP source is disabled, skipping")
    results["total"] = results["artp"]
    ctx.store.record_run("htmlPoller", ctx.now_iso(), results)
    return results


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll the ARTP news listing for new or changed articles")
    parser.add_argument("--data-dir", default=None, help="Directory holding the JSON documents (default: $GUIDANCE_DATA_DIR or data)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds")
    parser.add_argument("--env-file", default=".env", help="Optional env file loaded before the run")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_env_file(Path(args.env_file))
    data_dir = Path(args.data_dir or default_data_dir())
    log(f"HTML Poller starting at {utc_now_iso()}")
    try:
        store = DataStore.load(data_dir, default_run_config(DEFAULT_SOURCES))
        ctx = CrawlContext(session=create_session(), store=store, timeout=args.timeout)
        run(ctx)
        store.save()
    except Exception as exc:
        log(f"Fatal error: {exc}", error=True)
        return 1
    log("HTML Poller complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
