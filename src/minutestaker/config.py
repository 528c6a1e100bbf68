"""Configuration handling."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, List
import yaml


DEFAULT_MIME_TYPES = [
    "audio/mpeg",
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/wav",
]


@dataclass
class BoardConfig:
    person_size: int = 72
    oval_width: int = 240
    oval_height: int = 150
    circle_size: int = 150
    rect_width: int = 220
    rect_height: int = 130
    min_table_size: int = 80
    drag_threshold_px: float = 6.0
    table_origin: int = 40
    table_stagger: int = 18


@dataclass
class RecordingConfig:
    device_name: Optional[str] = None
    sample_rate_hz: int = 44100
    channels: int = 1
    segment_ms: int = 1000
    preferred_mime_types: List[str] = field(
        default_factory=lambda: list(DEFAULT_MIME_TYPES)
    )


@dataclass
class StorageConfig:
    history_key: str = "minutesHistory"
    metadata_filename: str = "minutes_history.json"
    audio_dirname: str = "Audio"


@dataclass
class Config:
    base_dir: str
    board: BoardConfig = field(default_factory=BoardConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    debug_logging: bool = False


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    board = BoardConfig(**data.get("board", {}))
    recording = RecordingConfig(**data.get("recording", {}))
    storage = StorageConfig(**data.get("storage", {}))

    return Config(
        base_dir=data.get("base_dir", ""),
        board=board,
        recording=recording,
        storage=storage,
        debug_logging=bool(data.get("debug_logging", False)),
    )


def save_config(path: str, config: Config) -> None:
    data = {
        "base_dir": config.base_dir,
        "debug_logging": config.debug_logging,
        "board": {
            "person_size": config.board.person_size,
            "oval_width": config.board.oval_width,
            "oval_height": config.board.oval_height,
            "circle_size": config.board.circle_size,
            "rect_width": config.board.rect_width,
            "rect_height": config.board.rect_height,
            "min_table_size": config.board.min_table_size,
            "drag_threshold_px": config.board.drag_threshold_px,
            "table_origin": config.board.table_origin,
            "table_stagger": config.board.table_stagger,
        },
        "recording": {
            "device_name": config.recording.device_name,
            "sample_rate_hz": config.recording.sample_rate_hz,
            "channels": config.recording.channels,
            "segment_ms": config.recording.segment_ms,
            "preferred_mime_types": list(config.recording.preferred_mime_types),
        },
        "storage": {
            "history_key": config.storage.history_key,
            "metadata_filename": config.storage.metadata_filename,
            "audio_dirname": config.storage.audio_dirname,
        },
    }
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
