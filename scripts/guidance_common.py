"""Logging, clock, environment and HTTP helpers shared by the guidance pollers."""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import requests


UTC = timezone.utc

DEFAULT_TIMEOUT = 30.0

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
}


def log(message: str, *, error: bool = False) -> None:
    stream = sys.stderr if error else sys.stdout
    stamp = datetime.now().strftime("%H:%M:%S")
    print(f"[guidance {stamp}] {message}", file=stream, flush=True)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def iso(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return iso(utc_now())


def load_env_file(path: Path) -> None:
    if not path.exists() or not path.is_file():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = str(raw_line or "").strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        k = key.strip()
        v = value.strip()
        if not k:
            continue
        if v.startswith(("'", '"')) and v.endswith(("'", '"')) and len(v) >= 2:
            v = v[1:-1]
        os.environ.setdefault(k, v)


def default_data_dir() -> str:
    return str(os.getenv("GUIDANCE_DATA_DIR") or "").strip() or "data"


def create_session() -> requests.Session:
    s = requests.Session()
    s.headers.update(BROWSER_HEADERS)
    return s


def fetch_page(session: requests.Session, url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """GET a page following redirects; any non-2xx status raises requests.HTTPError."""
    resp = session.get(url, timeout=timeout, allow_redirects=True)
    # raise_for_status() lets 3xx through (304, or a redirect without Location).
    if not 200 <= resp.status_code < 300:
        raise requests.HTTPError(f"HTTP {resp.status_code} for {url}", response=resp)
    # requests assumes ISO-8859-1 for text/* without a charset; these sites serve UTF-8.
    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        resp.encoding = resp.apparent_encoding or "utf-8"
    return resp.text
