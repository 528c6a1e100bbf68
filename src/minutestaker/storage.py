"""Identifiers and on-disk layout."""

from __future__ import annotations

import os
import secrets
import time
from datetime import datetime


def _now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id() -> str:
    return f"session-{_now_ms()}"


def new_log_id() -> str:
    return f"log-{_now_ms()}-{secrets.token_hex(6)}"


def new_person_id() -> str:
    return f"p-{_now_ms()}-{secrets.token_hex(6)}"


def new_table_id() -> str:
    return f"t-{_now_ms()}-{secrets.token_hex(3)}"


def display_date(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return now.strftime("%Y-%m-%d")


def display_time(dt: datetime | None = None) -> str:
    now = dt or datetime.now()
    return now.strftime("%H:%M:%S")


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def ensure_structure(base_dir: str, audio_dirname: str = "Audio") -> dict:
    root = base_dir or os.getcwd()
    paths = {
        "root": root,
        "audio": os.path.join(root, audio_dirname),
        "exports": os.path.join(root, "Exports"),
        "logs": os.path.join(root, "Logs"),
    }
    for path in paths.values():
        ensure_dir(path)
    return paths
