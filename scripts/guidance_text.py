"""Text helpers shared by the pollers: fingerprints, HTML cleaning, titles and content blocks."""

from __future__ import annotations

import hashlib
import re
from typing import Any

from bs4 import BeautifulSoup


NICE_BASE_URL = "https://www.nice.org.uk"

MIN_CONTAINER_CHARS = 100

# Stored fingerprints depend on the exact output of clean_html, so the order
# of these substitutions must not change.
_DROP_BLOCKS = ["script", "style", "nav", "header", "footer", "aside", "noscript"]

_ENTITY_TABLE = [
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&rsquo;", "'"),
    ("&lsquo;", "'"),
    ("&rdquo;", '"'),
    ("&ldquo;", '"'),
    ("&mdash;", "—"),
    ("&ndash;", "–"),
]

_SITE_SUFFIX = re.compile(r"\s*[\|–—-]\s*(NICE|NHS|England|ARTP|NCL).*$", re.IGNORECASE)

DATE_META_KEYS = {"article:published_time", "datepublished", "date"}

_CONTAINER_TAIL = r"</div>\s*<(?:div|footer|nav)"

CONTENT_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "nice": [
        re.compile(r'<div[^>]*class="[^"]*chapter[^"]*"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r'<div[^>]*id="content"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r"<main[^>]*>([\s\S]*?)</main>", re.IGNORECASE),
        re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
    ],
    "ncl": [
        re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
        re.compile(r'<div[^>]*class="[^"]*content[^"]*"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r"<main[^>]*>([\s\S]*?)</main>", re.IGNORECASE),
    ],
    "nhs": [
        re.compile(r'<div[^>]*class="[^"]*entry-content[^"]*"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
        re.compile(r"<main[^>]*>([\s\S]*?)</main>", re.IGNORECASE),
    ],
    "artp": [
        re.compile(r'<div[^>]*class="[^"]*article-body[^"]*"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.IGNORECASE),
        re.compile(r'<div[^>]*class="[^"]*content[^"]*"[^>]*>([\s\S]*?)' + _CONTAINER_TAIL, re.IGNORECASE),
        re.compile(r"<main[^>]*>([\s\S]*?)</main>", re.IGNORECASE),
    ],
}

_BODY_PATTERN = re.compile(r"<body[^>]*>([\s\S]*?)</body>", re.IGNORECASE)
_NICE_CHAPTER_PATTERN = re.compile(r'<a[^>]*href="(/guidance/[^/]+/chapter/[^"]+)"[^>]*>([\s\S]*?)</a>', re.IGNORECASE)


def hash_string(text: str) -> str:
    return hashlib.sha256(str(text).encode("utf-8")).hexdigest()[:16]


def strip_tags(fragment: str) -> str:
    """Drop markup from a short fragment (anchor text, feed titles) and squeeze whitespace."""
    return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", "", fragment or "")).strip()


def clean_html(html: str) -> str:
    text = str(html or "")
    for tag in _DROP_BLOCKS:
        text = re.sub(rf"<{tag}\b[\s\S]*?</{tag}>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"</(?:p|div|h[1-6]|li|tr|br|hr)[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<(?:br|hr)\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    for entity, replacement in _ENTITY_TABLE:
        text = re.sub(re.escape(entity), replacement, text, flags=re.IGNORECASE)
    # Decimal entities outside the table are dropped, not decoded.
    text = re.sub(r"&#\d+;", "", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n[ \t]+", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_title(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    if soup.title is not None:
        title = " ".join(soup.title.get_text(" ").split())
        return _SITE_SUFFIX.sub("", title).strip()
    h1 = soup.find("h1")
    if h1 is not None:
        return " ".join(h1.get_text(" ").split())
    return "Untitled"


def parse_published_date(html: str) -> str | None:
    soup = BeautifulSoup(html or "", "html.parser")
    for meta in soup.find_all("meta"):
        key = str(meta.get("name") or meta.get("property") or "").strip().lower()
        content = str(meta.get("content") or "").strip()
        if key in DATE_META_KEYS and content:
            return content.split("T")[0]
    node = soup.find("time", attrs={"datetime": True})
    if node is not None:
        value = str(node.get("datetime") or "").strip()
        if value:
            return value.split("T")[0]
    return None


def extract_chapter_links(html: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    seen_urls: set[str] = set()
    for m in _NICE_CHAPTER_PATTERN.finditer(html):
        chapter_url = NICE_BASE_URL + m.group(1)
        if chapter_url in seen_urls:
            continue
        seen_urls.add(chapter_url)
        title = strip_tags(m.group(2))
        if title:
            out.append({"url": chapter_url, "title": title})
    return out


def extract_content(html: str, source: str) -> tuple[str, list[dict[str, Any]]]:
    """Clean the best-guess main content block of a page.

    Source-specific containers are tried most specific first and a match only
    counts when it captured more than MIN_CONTAINER_CHARS of markup. Without a
    usable container the whole <body> is used, and without a body the raw
    document. For NICE pages the chapter links are returned as well.
    """
    text = str(html or "")
    content = ""
    for pattern in CONTENT_PATTERNS.get(source) or CONTENT_PATTERNS["nhs"]:
        m = pattern.search(text)
        if m and len(m.group(1)) > MIN_CONTAINER_CHARS:
            content = clean_html(m.group(1))
            break
    if not content:
        body = _BODY_PATTERN.search(text)
        content = clean_html(body.group(1) if body else text)
    chapter_links = extract_chapter_links(text) if source == "nice" else []
    return content, chapter_links
