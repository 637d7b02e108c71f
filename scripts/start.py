#!/usr/bin/env python3
"""
Container entrypoint for the Blitz API.

Runs the release phase (migrations + seed), then replaces this process with
gunicorn serving app.wsgi:app.

Env:
    PORT              listen port (default 8080)
    WEB_CONCURRENCY   gunicorn workers (default 2)

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080
DEFAULT_WORKERS = 2


def _env_int(name: str, default: int, *, low: int, high: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        value = None
    if value is None or not low <= value <= high:
        print(f"[start] {name}={raw!r} is invalid (expected {low}-{high})", flush=True)
        sys.exit(1)
    return value


def gunicorn_argv(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _env_int("PORT", DEFAULT_PORT, low=1, high=65535)
    workers = _env_int("WEB_CONCURRENCY", DEFAULT_WORKERS, low=1, high=64)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"[start] release failed: {e}", flush=True)
        sys.exit(1)

    print(f"[start] gunicorn on 0.0.0.0:{port} with {workers} workers (probe: /healthz)", flush=True)
    # exec so gunicorn is PID 1 and receives signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()
