#!/usr/bin/env python3
"""Poll NICE published guidance and the NCL / NHS England feeds, storing new or changed guidance."""

from __future__ import annotations

import argparse
from pathlib import Path

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
from scripts.guidance_crawl import CrawlContext, crawl_and_store, store_feed_item
from scripts.guidance_links import (
    DEFAULT_SOURCES,
    extract_nice_guidance_links,
    feed_date_to_iso,
    match_text,
    parse_feed_items,
    resolve_source_filter,
)
from scripts.guidance_store import DataStore, default_run_config
from scripts.guidance_text import hash_string


NICE_LISTING_URL = "https://www.nice.org.uk/guidance/published?ngt=Guidelines&ps=50"

FEED_URLS = {
    "ncl": "https://gps.northcentrallondon.icb.nhs.uk/news/rss",
    "nhs": "https://www.england.nhs.uk/feed/",
}

NICE_DELAY_SECONDS = 1.0
FEED_DELAY_SECONDS = 0.5
NICE_CHAPTER_DEPTH = 1


def fetch_nice_guidance(ctx: CrawlContext) -> int:
    log("Fetching NICE published guidance...")
    source_meta = ctx.store.source_config("nice")
    url = str(source_meta.get("url") or NICE_LISTING_URL)
    try:
        html = fetch_page(ctx.session, url, timeout=ctx.timeout)
    except requests.RequestException as exc:
        log(f"NICE fetch failed: {exc}", error=True)
        return 0

    filt = resolve_source_filter(source_meta, "nice")
    count = 0
    for link in extract_nice_guidance_links(html):
        seen_key = f"nice:{hash_string(link['url'])}"
        if seen_key in ctx.store.seen:
            continue
        ctx.store.seen[seen_key] = {
            "url": link["url"],
            "title": link["title"],
            "discovered": ctx.now_iso(),
            "source": "nice",
        }
        if match_text(link["title"], filt):
            continue

        log(f'NICE: Found "{link["title"]}"')
        count += crawl_and_store(
            ctx,
            link["url"],
            "nice",
            "guidance",
            {"title": link["title"]},
            depth=0,
            max_depth=NICE_CHAPTER_DEPTH,
        )
        ctx.pause(NICE_DELAY_SECONDS)
    return count


def fetch_rss_source(ctx: CrawlContext, source: str) -> int:
    label = source.upper()
    source_meta = ctx.store.source_config(source)
    url = str(source_meta.get("url") or FEED_URLS[source])
    log(f"Fetching {label} RSS from {url}...")
    try:
        xml = fetch_page(ctx.session, url, timeout=ctx.timeout)
    except requests.RequestException as exc:
        log(f"{label} RSS fetch failed: {exc}", error=True)
        return 0

    filt = resolve_source_filter(source_meta, source)
    # NCL's browser check corrupts scraped pages, so its feed text is stored as-is.
    rss_only = source_meta.get("rssOnly") is True

    count = 0
    for item in parse_feed_items(xml):
        title, link, description = item["title"], item["link"], item["description"]
        seen_key = f"{source}:{hash_string(link)}"
        if seen_key in ctx.store.seen:
            continue
        ctx.store.seen[seen_key] = {
            "url": link,
            "title": title,
            "description": description[:500],
            "discovered": ctx.now_iso(),
            "publishedDate": item.get("pubDate"),
            "source": source,
        }

        reason = match_text(f"{title} {description}", filt)
        if reason == "excluded":
            log(f'  {label}: Skipping (excluded) "{title}"')
            continue
        if reason:
            log(f'  {label}: Skipping (no keyword match) "{title}"')
            continue

        log(f'{label}: Found "{title}"')
        published_date = feed_date_to_iso(item.get("pubDate"))
        if rss_only:
            if store_feed_item(ctx, item, source, published_date):
                count += 1
            continue
        count += crawl_and_store(
            ctx,
            link,
            source,
            "article",
            {"title": title, "description": description[:500], "publishedDate": published_date},
        )
        ctx.pause(FEED_DELAY_SECONDS)
    return count


def run(ctx: CrawlContext) -> dict[str, int]:
    results = {"nice": 0, "ncl": 0, "nhs": 0}
    if ctx.store.source_enabled("nice"):
        results["nice"] = fetch_nice_guidance(ctx)
    else:
        log("NICE source is disabled, skipping")
    for source in ("ncl", "nhs"):
        if ctx.store.source_enabled(source):
            results[source] = fetch_rss_source(ctx, source)
        else:
            log(f"{source.upper()} source is disabled, skipping")
    results["total"] = results["nice"] + results["ncl"] + results["nhs"]
    ctx.store.record_run("rssPoller", ctx.now_iso(), results)
    return results


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll NICE guidance and the NCL / NHS England RSS feeds")
    parser.add_argument("--data-dir", default=None, help="Directory holding the JSON documents (default: $GUIDANCE_DATA_DIR or data)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-request timeout in seconds")
    parser.add_argument("--env-file", default=".env", help="Optional env file loaded before the run")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_env_file(Path(args.env_file))
    data_dir = Path(args.data_dir or default_data_dir())
    log(f"RSS Poller starting at {utc_now_iso()}")
    try:
        store = DataStore.load(data_dir, default_run_config(DEFAULT_SOURCES))
        ctx = CrawlContext(session=create_session(), store=store, timeout=args.timeout)
        results = run(ctx)
        store.save()
    except Exception as exc:
        log(f"Fatal error: {exc}", error=True)
        return 1
    log(
        f"RSS Poller complete. Found {results['total']} new items "
        f"(NICE: {results['nice']}, NCL: {results['ncl']}, NHS: {results['nhs']})"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
