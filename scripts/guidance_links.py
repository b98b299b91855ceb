"""Link discovery on listing pages and feeds, plus the per-source keyword relevance filter."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import feedparser
from dateutil import parser as dtparser

from scripts.guidance_common import UTC
from scripts.guidance_text import NICE_BASE_URL, strip_tags


ARTP_BASE_URL = "https://www.artp.org.uk"

DATE_WINDOW_CHARS = 500

PRIMARY_CARE_KEYWORDS = [
    "diabetes", "hypertension", "ckd", "chronic kidney", "cardiovascular",
    "lipids", "cholesterol", "respiratory", "asthma", "copd",
    "mental health", "depression", "anxiety", "infection", "antibiotic",
    "contraception", "thyroid", "anticoagulation", "warfarin",
    "cancer screening", "cervical", "bowel screening", "breast screening",
    "heart failure", "atrial fibrillation", "stroke", "obesity",
    "dementia", "osteoporosis", "primary care",
]

PA_INCLUDE_KEYWORDS = [
    "guideline", "guidance", "pathway", "protocol", "recommendation",
    "clinical", "diagnosis", "treatment", "management", "referral",
    "screening", "monitoring", "alert", "safety", "update", "bulletin", "reminder",
    "diabetes", "hypertension", "ckd", "chronic kidney", "cardiovascular",
    "lipids", "cholesterol", "respiratory", "asthma", "copd",
    "mental health", "depression", "anxiety", "infection", "antibiotic",
    "contraception", "thyroid", "anticoagulation", "warfarin",
    "cancer", "heart failure", "atrial fibrillation", "stroke", "obesity",
    "dementia", "osteoporosis", "metabolic", "musculoskeletal",
    "arthritis", "gout", "eczema", "dermatology", "epilepsy",
    "patient", "primary care", "gp ",
]

PA_EXCLUDE_KEYWORDS = [
    "student training", "sample container", "proficiency testing",
    "external quality", "practice manager", "practice vacancy",
    "job vacancy", "phlebotomy training", "gpit", "it support",
    "protected learning time", "webinar registration", "training event",
    "training course", "staff survey", "practice administrator",
    "workforce planning", "greener nhs", "carbon footprint",
    "information governance", "systems & facilitation", "buying group",
    "digital innovation", "practice vacancies", "research opportunities",
    "ambulance", "handover", "waiting list",
    "medicines supply", "supply notification", "medicines shortage",
]

# QC schemes, sample/container updates, student and technician training.
ARTP_EXCLUDE_KEYWORDS = [
    "student training", "student scheme", "sample container", "proficiency testing",
    "external quality", "eqa", "quality control", "qc scheme",
    "technician training", "training scheme", "training course",
    "job vacancy", "practice vacancy", "workforce",
]

DEFAULT_FILTERS: dict[str, tuple[list[str], list[str]]] = {
    "nice": (PRIMARY_CARE_KEYWORDS, []),
    "ncl": (PA_INCLUDE_KEYWORDS, PA_EXCLUDE_KEYWORDS),
    "nhs": (PA_INCLUDE_KEYWORDS, PA_EXCLUDE_KEYWORDS),
    "artp": ([], ARTP_EXCLUDE_KEYWORDS),
}

DEFAULT_SOURCES: dict[str, dict[str, Any]] = {
    "nice": {"enabled": True, "keywords": PRIMARY_CARE_KEYWORDS},
    "ncl": {"enabled": True},
    "nhs": {"enabled": True},
    "artp": {"enabled": True},
}

_NICE_GUIDANCE_PATTERN = re.compile(
    r'<a[^>]*href="(/guidance/(?:ng|cg|ph|qs|ta|dg|ipg|hst|es|mtg)\d+)"[^>]*>([\s\S]*?)</a>',
    re.IGNORECASE,
)
_ARTP_ARTICLE_PATTERN = re.compile(r'<a[^>]*href="(/news/(\d+)/([^"]+))"[^>]*>([\s\S]*?)</a>', re.IGNORECASE)
_LOOSE_DATE_PATTERN = re.compile(r"(\d{2}/\d{2}/\d{4})")
_ITEM_PATTERN = re.compile(r"<item>([\s\S]*?)</item>", re.IGNORECASE)


@dataclass
class SourceFilter:
    include: list[str]
    exclude: list[str]


def _keyword_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(x) for x in value if str(x).strip()]


def resolve_source_filter(source_meta: dict[str, Any], source: str) -> SourceFilter:
    """Keyword lists from the source's config row, with built-in defaults where a list is absent."""
    default_include, default_exclude = DEFAULT_FILTERS.get(source, ([], []))
    include = _keyword_list(source_meta.get("keywords"))
    exclude = _keyword_list(source_meta.get("excludeKeywords"))
    return SourceFilter(
        include=list(default_include) if include is None else include,
        exclude=list(default_exclude) if exclude is None else exclude,
    )


def match_text(text: str, filt: SourceFilter) -> str | None:
    """Return why the text is rejected ("excluded" or "no keyword match"), or None when relevant."""
    haystack = str(text or "").lower()
    if any(kw.lower() in haystack for kw in filt.exclude):
        return "excluded"
    if filt.include and not any(kw.lower() in haystack for kw in filt.include):
        return "no keyword match"
    return None


def slug_title(slug: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug.replace("_", " "))


def extract_nice_guidance_links(html: str) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    seen_paths: set[str] = set()
    for m in _NICE_GUIDANCE_PATTERN.finditer(html or ""):
        path = m.group(1)
        if path in seen_paths:
            continue
        seen_paths.add(path)
        title = strip_tags(m.group(2))
        if not title:
            continue
        out.append({"url": NICE_BASE_URL + path, "title": title})
    return out


def extract_artp_article_links(html: str) -> list[dict[str, Any]]:
    """News links on the ARTP listing, one per numeric article id.

    The date is whatever dd/mm/yyyy token sits within DATE_WINDOW_CHARS of the
    first occurrence of the link path, which can belong to a neighbouring item.
    """
    text = html or ""
    out: list[dict[str, Any]] = []
    seen_ids: set[str] = set()
    for m in _ARTP_ARTICLE_PATTERN.finditer(text):
        path, article_id, slug = m.group(1), m.group(2), m.group(3)
        if article_id in seen_ids:
            continue
        seen_ids.add(article_id)

        title = strip_tags(m.group(4))
        if not title or len(title) < 3:
            title = slug_title(slug)

        pos = text.find(path)
        window = text[max(0, pos - DATE_WINDOW_CHARS):min(len(text), pos + DATE_WINDOW_CHARS)]
        dm = _LOOSE_DATE_PATTERN.search(window)
        out.append(
            {
                "url": ARTP_BASE_URL + path,
                "id": article_id,
                "title": title,
                "date": dm.group(1) if dm else None,
            }
        )
    return out


def _tag_text(item_xml: str, tag: str, cdata: bool) -> str:
    if cdata:
        m = re.search(rf"<{tag}><!\[CDATA\[([\s\S]*?)\]\]></{tag}>", item_xml, re.IGNORECASE)
        if m:
            return m.group(1)
    m = re.search(rf"<{tag}>([\s\S]*?)</{tag}>", item_xml, re.IGNORECASE)
    return m.group(1) if m else ""


def parse_rss_items(xml: str) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for item in _ITEM_PATTERN.finditer(xml or ""):
        item_xml = item.group(1)
        title = re.sub(r"<[^>]+>", "", _tag_text(item_xml, "title", cdata=True)).strip()
        link = _tag_text(item_xml, "link", cdata=False).strip()
        pub_date = _tag_text(item_xml, "pubDate", cdata=False).strip() or None
        description = re.sub(r"<[^>]+>", "", _tag_text(item_xml, "description", cdata=True)).strip()
        if not title or not link:
            continue
        rows.append({"title": title, "link": link, "pubDate": pub_date, "description": description})
    return rows


def parse_atom_entries(xml: str) -> list[dict[str, Any]]:
    parsed = feedparser.parse(xml.encode("utf-8"))
    rows: list[dict[str, Any]] = []
    for entry in list(getattr(parsed, "entries", []) or []):
        title = strip_tags(str(entry.get("title") or ""))
        link = str(entry.get("link") or "").strip()
        summary = re.sub(r"<[^>]+>", "", str(entry.get("summary") or entry.get("description") or "")).strip()
        pub_date = str(entry.get("published") or entry.get("updated") or "").strip() or None
        if not title or not link:
            continue
        rows.append({"title": title, "link": link, "pubDate": pub_date, "description": summary})
    return rows


def parse_feed_items(xml: str) -> list[dict[str, Any]]:
    """RSS <item> blocks when the document has any, otherwise Atom entries."""
    if _ITEM_PATTERN.search(xml or ""):
        return parse_rss_items(xml)
    return parse_atom_entries(xml or "")


def feed_date_to_iso(value: str | None) -> str | None:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        dt = dtparser.parse(s)
    except (ValueError, OverflowError):
        return None
    if not dt.tzinfo:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).date().isoformat()


def listing_date_to_iso(value: str | None) -> str | None:
    """Turn the dd/mm/yyyy token found next to an ARTP link into YYYY-MM-DD."""
    s = str(value or "").strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, "%d/%m/%Y").date().isoformat()
    except ValueError:
        return None
