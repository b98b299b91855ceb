#!/usr/bin/env python3
"""Serve the guidance JSON documents over HTTP and refresh them in background.

No dashboard ships with this repo. The server exposes seen.json,
guidance.json, changes.json, page-hashes.json and config.json from the data
directory so an external dashboard (or curl) can read them while the pollers
update the files.
"""

from __future__ import annotations

import argparse
import functools
import http.server
import socketserver
import subprocess
import sys
import threading
from pathlib import Path

from scripts.guidance_common import DEFAULT_TIMEOUT, default_data_dir, log


POLLER_MODULES = ("scripts.poll_rss", "scripts.poll_html")


class DataRequestHandler(http.server.SimpleHTTPRequestHandler):
    """Static handler for the data directory; responses are never cached and readable cross-origin."""

    extensions_map = {**http.server.SimpleHTTPRequestHandler.extensions_map, ".json": "application/json; charset=utf-8"}

    def end_headers(self) -> None:
        self.send_header("Cache-Control", "no-store")
        self.send_header("Access-Control-Allow-Origin", "*")
        super().end_headers()

    def log_message(self, format: str, *args: object) -> None:
        log(f"HTTP {self.address_string()} {format % args}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve the guidance JSON documents for an external dashboard, refreshing them in background",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=8080, help="Bind port")
    parser.add_argument("--data-dir", default=None, help="Directory served and passed to the pollers (default: $GUIDANCE_DATA_DIR or data)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Per-request timeout passed to the pollers")
    parser.add_argument("--env-file", default=".env", help="Env file passed to the pollers")
    parser.add_argument("--skip-html", action="store_true", help="Skip the ARTP listing poller")
    parser.add_argument("--skip-refresh", action="store_true", help="Only serve the existing documents")
    return parser.parse_args(argv)


def poller_command(module: str, args: argparse.Namespace) -> list[str]:
    return [
        sys.executable,
        "-m",
        module,
        "--data-dir",
        args.data_dir or default_data_dir(),
        "--timeout",
        str(args.timeout),
        "--env-file",
        args.env_file,
    ]


def run_poller(module: str, args: argparse.Namespace, cwd: Path) -> None:
    """Run one poller to completion, relaying its output with the module name as prefix."""
    name = module.rsplit(".", 1)[-1]
    cmd = poller_command(module, args)
    log(f"[{name}] starting")
    with subprocess.Popen(cmd, cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True) as process:
        for line in process.stdout or []:
            if line.strip():
                log(f"[{name}] {line.rstrip()}")
    if process.returncode != 0:
        raise subprocess.CalledProcessError(process.returncode, cmd)
    log(f"[{name}] finished")


def refresh_data(project_root: Path, args: argparse.Namespace) -> None:
    for module in POLLER_MODULES:
        if args.skip_html and module == "scripts.poll_html":
            log("HTML poller skipped by flag")
            continue
        run_poller(module, args, project_root)


def refresh_data_async(project_root: Path, args: argparse.Namespace) -> threading.Thread:
    def runner() -> None:
        try:
            refresh_data(project_root, args)
            log("Background refresh completed")
        except subprocess.CalledProcessError as exc:
            log(f"Background refresh failed with exit code {exc.returncode}", error=True)
        except OSError as exc:
            log(f"Background refresh could not start: {exc}", error=True)

    thread = threading.Thread(target=runner, name="guidance-refresh", daemon=True)
    thread.start()
    return thread


def serve(data_dir: Path, host: str, port: int) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    handler = functools.partial(DataRequestHandler, directory=str(data_dir))
    socketserver.TCPServer.allow_reuse_address = True
    with socketserver.TCPServer((host, port), handler) as httpd:
        log(f"Serving {data_dir} at http://{host}:{port}/guidance.json")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            log("Stopped")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    project_root = Path(__file__).resolve().parent.parent
    data_dir = Path(args.data_dir or default_data_dir())
    if not data_dir.is_absolute():
        data_dir = project_root / data_dir
    # Pollers run from the project root, so hand them the resolved path.
    args.data_dir = str(data_dir)

    if args.skip_refresh:
        log("Background refresh skipped by flag")
    else:
        refresh_data_async(project_root, args)

    serve(data_dir, args.host, args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
