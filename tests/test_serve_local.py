import functools
import json
import socketserver
import sys
import tempfile
import threading
import unittest
import urllib.request
from pathlib import Path
from unittest import mock

from scripts import serve_local


class RefreshTests(unittest.TestCase):
    def test_poller_command_forwards_settings(self):
        args = serve_local.parse_args(["--data-dir", "/tmp/guidance", "--timeout", "12", "--env-file", "local.env"])
        cmd = serve_local.poller_command("scripts.poll_rss", args)
        self.assertEqual(
            cmd,
            [sys.executable, "-m", "scripts.poll_rss", "--data-dir", "/tmp/guidance", "--timeout", "12.0", "--env-file", "local.env"],
        )

    def test_refresh_runs_rss_then_html(self):
        args = serve_local.parse_args(["--data-dir", "d"])
        with mock.patch.object(serve_local, "run_poller") as run_poller:
            serve_local.refresh_data(Path("."), args)
        modules = [call.args[0] for call in run_poller.call_args_list]
        self.assertEqual(modules, ["scripts.poll_rss", "scripts.poll_html"])

    def test_skip_html(self):
        args = serve_local.parse_args(["--data-dir", "d", "--skip-html"])
        with mock.patch.object(serve_local, "run_poller") as run_poller:
            serve_local.refresh_data(Path("."), args)
        self.assertEqual([call.args[0] for call in run_poller.call_args_list], ["scripts.poll_rss"])


class DataServerTests(unittest.TestCase):
    def test_serves_documents_from_data_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "guidance.json").write_text(json.dumps({"content:a": {"title": "Kept"}}), encoding="utf-8")
            handler = functools.partial(serve_local.DataRequestHandler, directory=tmp)
            with socketserver.TCPServer(("127.0.0.1", 0), handler) as httpd:
                thread = threading.Thread(target=httpd.serve_forever, daemon=True)
                thread.start()
                try:
                    port = httpd.server_address[1]
                    with urllib.request.urlopen(f"http://127.0.0.1:{port}/guidance.json", timeout=5) as resp:
                        body = json.loads(resp.read().decode("utf-8"))
                        headers = resp.headers
                finally:
                    httpd.shutdown()
                    thread.join(timeout=5)
        self.assertEqual(body, {"content:a": {"title": "Kept"}})
        self.assertTrue(headers["Content-Type"].startswith("application/json"))
        self.assertEqual(headers["Access-Control-Allow-Origin"], "*")
        self.assertEqual(headers["Cache-Control"], "no-store")


if __name__ == "__main__":
    unittest.main()
