#!/usr/bin/env python3
"""
Migrate, then hand the process over to gunicorn serving app.wsgi:app.

Notification mailboxes and auto-progress timers are process-local, so there
is exactly one worker; GUNICORN_THREADS sets request concurrency.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def gunicorn_argv(port: str, threads: str) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", "1",
        "--threads", threads,
        "--timeout", "60",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = (os.environ.get("PORT") or "8080").strip()
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        sys.exit(f"Invalid PORT {port!r}")

    from scripts.release import run_release

    run_release(seed=False)
    os.execvp("gunicorn", gunicorn_argv(port, (os.environ.get("GUNICORN_THREADS") or "8").strip()))


if __name__ == "__main__":
    main()
