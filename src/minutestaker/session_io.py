"""Export artifacts for a recorded session."""

from __future__ import annotations

import json
import os
import time
from typing import List, Optional

from .models import AudioPayload, SpeakerLogEntry

UNTITLED_SESSION = "Untitled Session"


def extension_for_mime(mime: str) -> str:
    mime = mime or ""
    if "mpeg" in mime:
        return "mp3"
    if "ogg" in mime:
        return "ogg"
    if "wav" in mime:
        return "wav"
    return "webm"


def build_export_metadata(
    session_name: str,
    date: str,
    log: List[SpeakerLogEntry],
) -> dict:
    return {
        "sessionName": (session_name or "").strip() or UNTITLED_SESSION,
        "date": date,
        "log": [
            {"name": entry.name, "alias": entry.alias, "time": entry.time}
            for entry in log
        ],
    }


def save_export(
    out_dir: str,
    metadata: dict,
    audio: AudioPayload,
    stamp: Optional[int] = None,
) -> tuple[str, str]:
    stamp = stamp if stamp is not None else int(time.time() * 1000)
    os.makedirs(out_dir, exist_ok=True)
    meta_path = os.path.join(out_dir, f"minutes-{stamp}.json")
    audio_path = os.path.join(
        out_dir, f"audio-{stamp}.{extension_for_mime(audio.mime_type)}"
    )
    with open(meta_path, "w", encoding="utf-8") as handle:
        json.dump(metadata, handle, indent=2)
    with open(audio_path, "wb") as handle:
        handle.write(audio.data)
    return meta_path, audio_path
