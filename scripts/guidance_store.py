"""Flat JSON documents read by the dashboard: seen links, articles, changes, page hashes, run config."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SEEN_FILE = "seen.json"
GUIDANCE_FILE = "guidance.json"
CHANGES_FILE = "changes.json"
PAGE_HASHES_FILE = "page-hashes.json"
CONFIG_FILE = "config.json"


def default_run_config(sources: dict[str, dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "sources": copy.deepcopy(sources) if sources else {},
        "lastRunStats": {},
        "unreadChanges": 0,
    }


def load_document(path: Path, default: dict[str, Any]) -> dict[str, Any]:
    """Read a JSON object; a missing, malformed or non-object document yields the default.

    I/O errors on an existing document propagate, so a run never overwrites
    history it could not read.
    """
    if not path.exists():
        return default
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        return default
    if not isinstance(payload, dict):
        return default
    return payload


def write_documents(data_dir: Path, documents: dict[str, dict[str, Any]]) -> None:
    """Serialize every document to a temp sibling first, then rename them all into place."""
    data_dir.mkdir(parents=True, exist_ok=True)
    staged: list[tuple[Path, Path]] = []
    try:
        for filename, payload in documents.items():
            target = data_dir / filename
            tmp = data_dir / f".{filename}.tmp"
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            staged.append((tmp, target))
    except Exception:
        for tmp, _ in staged:
            tmp.unlink(missing_ok=True)
        raise
    for tmp, target in staged:
        os.replace(tmp, target)


@dataclass
class DataStore:
    data_dir: Path
    seen: dict[str, Any] = field(default_factory=dict)
    guidance: dict[str, Any] = field(default_factory=dict)
    changes: dict[str, Any] = field(default_factory=dict)
    page_hashes: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=default_run_config)

    @classmethod
    def load(cls, data_dir: Path, default_config: dict[str, Any] | None = None) -> "DataStore":
        data_dir = Path(data_dir)
        config = load_document(data_dir / CONFIG_FILE, default_config or default_run_config())
        return cls(
            data_dir=data_dir,
            seen=load_document(data_dir / SEEN_FILE, {}),
            guidance=load_document(data_dir / GUIDANCE_FILE, {}),
            changes=load_document(data_dir / CHANGES_FILE, {}),
            page_hashes=load_document(data_dir / PAGE_HASHES_FILE, {}),
            config=config,
        )

    def documents(self) -> dict[str, dict[str, Any]]:
        return {
            SEEN_FILE: self.seen,
            GUIDANCE_FILE: self.guidance,
            CHANGES_FILE: self.changes,
            PAGE_HASHES_FILE: self.page_hashes,
            CONFIG_FILE: self.config,
        }

    def save(self) -> None:
        write_documents(self.data_dir, self.documents())

    def source_config(self, source: str) -> dict[str, Any]:
        sources = self.config.get("sources")
        if not isinstance(sources, dict):
            return {}
        row = sources.get(source)
        return row if isinstance(row, dict) else {}

    def source_enabled(self, source: str) -> bool:
        return self.source_config(source).get("enabled") is not False

    def bump_unread(self) -> None:
        self.config["unreadChanges"] = int(self.config.get("unreadChanges") or 0) + 1

    def record_run(self, job: str, finished_at: str, results: dict[str, int] | None = None) -> None:
        stats = self.config.get("lastRunStats")
        if not isinstance(stats, dict):
            stats = {}
            self.config["lastRunStats"] = stats
        stats[job] = finished_at
        if results is not None:
            stats[f"{job}Results"] = dict(results)
