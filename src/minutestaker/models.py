"""Data models for MinutesTaker."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, List


def format_duration(ms: float) -> str:
    total_seconds = int(max(ms, 0) // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


def parse_duration(value: str) -> int:
    """Parse ``MM:SS`` into milliseconds."""
    mins, secs = (value or "00:00").split(":", 1)
    return (int(mins) * 60 + int(secs)) * 1000


def normalize_name(name: str) -> str:
    return " ".join((name or "").split())


@dataclass
class Placement:
    x: float
    y: float


@dataclass
class Person:
    id: str
    name: str
    avatar: str = ""
    placement: Optional[Placement] = None
    absent: bool = False
    is_guest: bool = False
    alias: str = ""

    @property
    def status(self) -> str:
        if self.absent:
            return "absent"
        if self.placement is not None:
            return "canvas"
        return "list"


@dataclass
class Table:
    id: str
    label: str
    x: float
    y: float
    width: float
    height: float
    shape: str = "oval"


@dataclass(frozen=True)
class SpeakerLogEntry:
    id: str
    name: str
    alias: str
    elapsed_ms: int

    @property
    def time(self) -> str:
        return format_duration(self.elapsed_ms)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "alias": self.alias,
            "time": self.time,
            "elapsedMs": self.elapsed_ms,
        }

    @classmethod
    def from_record(cls, data: dict) -> "SpeakerLogEntry":
        elapsed = data.get("elapsedMs")
        if elapsed is None:
            elapsed = parse_duration(data.get("time", "00:00"))
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            alias=data.get("alias") or "",
            elapsed_ms=int(elapsed),
        )


def _hydrate_log(items: list) -> List[SpeakerLogEntry]:
    # records without elapsedMs were written newest first
    if items and all("elapsedMs" not in item for item in items):
        items = list(reversed(items))
    return [SpeakerLogEntry.from_record(item) for item in items]


@dataclass
class AudioPayload:
    data: bytes
    mime_type: str = "audio/webm"


@dataclass
class Session:
    id: str
    name: str
    date: str
    time: str
    duration: str = "00:00"
    has_audio: bool = False
    speaker_log: List[SpeakerLogEntry] = field(default_factory=list)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date,
            "time": self.time,
            "duration": self.duration,
            "hasAudio": self.has_audio,
            "speakerLog": [entry.to_record() for entry in self.speaker_log],
        }

    @classmethod
    def from_record(cls, data: dict) -> "Session":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            date=data.get("date", ""),
            time=data.get("time", ""),
            duration=data.get("duration") or "00:00",
            has_audio=bool(data.get("hasAudio", False)),
            speaker_log=_hydrate_log(data.get("speakerLog") or []),
        )
