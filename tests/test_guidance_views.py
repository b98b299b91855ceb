import contextlib
import io
import json
import tempfile
import unittest
from pathlib import Path

from scripts.guidance_store import DataStore
from scripts.guidance_views import GuidanceViews, main


LONG_CONTENT = "x" * 150 + " hypertension " + "y" * 150

GUIDANCE = {
    "content:a": {
        "id": "content:a",
        "url": "https://www.nice.org.uk/guidance/ng136",
        "title": "Hypertension in adults",
        "source": "nice",
        "type": "guidance",
        "publishedDate": "2024-03-01",
        "fetchedDate": "2024-03-02T08:00:00.000Z",
        "content": "Blood pressure targets for adults with hypertension.",
        "parentUrl": None,
        "metadata": {"wordCount": 7, "estimatedReadTime": 1, "description": "Blood pressure targets"},
    },
    "content:b": {
        "id": "content:b",
        "url": "https://www.england.nhs.uk/asthma",
        "title": "Asthma pathway",
        "source": "nhs",
        "type": "article",
        "publishedDate": "2024-03-05",
        "fetchedDate": "2024-03-05T08:00:00.000Z",
        "content": LONG_CONTENT,
        "parentUrl": None,
        "metadata": {"wordCount": 3, "estimatedReadTime": 1, "description": "Asthma"},
    },
    "content:c": {
        "id": "content:c",
        "url": "https://www.artp.org.uk/news/1/spirometry",
        "title": "Spirometry standards and hypertension clinics",
        "source": "artp",
        "type": "article",
        "publishedDate": None,
        "fetchedDate": "2024-02-01T08:00:00.000Z",
        "content": "Standards for lung function testing.",
        "parentUrl": None,
        "metadata": {"wordCount": 5, "estimatedReadTime": 1, "description": "Lung function"},
    },
}

CHANGES = {
    "change:1:a": {"id": "change:1:a", "changeType": "new_guidance", "detectedAt": "2024-03-02T08:00:00.000Z", "acknowledged": True},
    "change:2:b": {"id": "change:2:b", "changeType": "content_update", "detectedAt": "2024-03-05T08:00:00.000Z"},
}

CONFIG = {"sources": {"nice": {"enabled": True}}, "lastRunStats": {"rssPoller": "2024-03-05T08:00:00.000Z"}}


def make_views():
    return GuidanceViews(GUIDANCE, CHANGES, CONFIG)


class StatsTests(unittest.TestCase):
    def test_counts_and_unread(self):
        stats = make_views().get_stats()
        self.assertEqual(stats["guidanceCount"], {"nice": 1, "ncl": 0, "nhs": 1, "artp": 1, "total": 3})
        self.assertEqual(stats["totalChanges"], 2)
        self.assertEqual(stats["unreadChanges"], 1)
        self.assertEqual(stats["lastUpdate"], CONFIG["lastRunStats"])
        self.assertEqual(stats["sources"], CONFIG["sources"])

    def test_empty_store(self):
        stats = GuidanceViews({}, {}, {}).get_stats()
        self.assertEqual(stats["guidanceCount"]["total"], 0)
        self.assertEqual(stats["lastUpdate"], {})


class ListingTests(unittest.TestCase):
    def test_newest_first_with_fetched_date_fallback(self):
        page = make_views().list_guidance()
        self.assertEqual([row["id"] for row in page["items"]], ["content:b", "content:a", "content:c"])
        self.assertEqual(page["total"], 3)
        self.assertEqual(page["items"][1]["excerpt"], "Blood pressure targets")

    def test_pagination_and_source_filter(self):
        views = make_views()
        page = views.list_guidance(limit=1, offset=1)
        self.assertEqual([row["id"] for row in page["items"]], ["content:a"])
        self.assertEqual(page["total"], 3)
        only_nice = views.list_guidance(source="nice")
        self.assertEqual([row["id"] for row in only_nice["items"]], ["content:a"])

    def test_get_guidance(self):
        views = make_views()
        self.assertEqual(views.get_guidance("content:a")["title"], "Hypertension in adults")
        self.assertIsNone(views.get_guidance("content:missing"))

    def test_changes_newest_first(self):
        page = make_views().list_changes()
        self.assertEqual([c["id"] for c in page["items"]], ["change:2:b", "change:1:a"])
        self.assertFalse(page["items"][0]["acknowledged"])
        self.assertEqual(page["unread"], 1)
        self.assertEqual(page["total"], 2)


class SearchTests(unittest.TestCase):
    def test_title_matches_rank_first(self):
        result = make_views().search("Hypertension")
        ids = [row["id"] for row in result["items"]]
        self.assertEqual(ids, ["content:a", "content:c", "content:b"])
        self.assertEqual([row["matchType"] for row in result["items"]], ["title", "title", "content"])
        self.assertEqual(result["total"], 3)
        self.assertEqual(result["query"], "Hypertension")

    def test_excerpts(self):
        rows = {row["id"]: row for row in make_views().search("hypertension")["items"]}
        self.assertEqual(rows["content:a"]["excerpt"], GUIDANCE["content:a"]["content"])
        self.assertEqual(rows["content:b"]["excerpt"], "..." + LONG_CONTENT[51:263] + "...")
        # Title-only hits show the stored description.
        self.assertEqual(rows["content:c"]["excerpt"], "Lung function")

    def test_short_query_returns_nothing(self):
        self.assertEqual(make_views().search(" h "), {"items": [], "total": 0, "query": ""})

    def test_source_filter(self):
        result = make_views().search("hypertension", source="nhs")
        self.assertEqual([row["id"] for row in result["items"]], ["content:b"])


class CommandLineTests(unittest.TestCase):
    def test_stats_command_reads_saved_documents(self):
        with tempfile.TemporaryDirectory() as tmp:
            store = DataStore(data_dir=Path(tmp), guidance=dict(GUIDANCE), changes=dict(CHANGES), config=dict(CONFIG))
            store.save()
            out = io.StringIO()
            with contextlib.redirect_stdout(out):
                code = main(["--data-dir", tmp, "stats"])
        self.assertEqual(code, 0)
        payload = json.loads(out.getvalue())
        self.assertEqual(payload["guidanceCount"]["total"], 3)

    def test_show_missing_item(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = io.StringIO()
            with contextlib.redirect_stdout(out):
                main(["--data-dir", tmp, "show", "content:nope"])
        self.assertEqual(json.loads(out.getvalue()), {"error": "Not found"})


if __name__ == "__main__":
    unittest.main()
