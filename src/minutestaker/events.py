"""Typed input events fed to MeetingContext.dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class DragTarget:
    """What a pointer went down on: a person, a table body or a resize handle."""

    kind: str
    id: str
    handle: Optional[str] = None

    @classmethod
    def person(cls, person_id: str) -> "DragTarget":
        return cls("person", person_id)

    @classmethod
    def table(cls, table_id: str) -> "DragTarget":
        return cls("table", table_id)

    @classmethod
    def resize(cls, table_id: str, handle: str) -> "DragTarget":
        return cls("resize", table_id, handle)


@dataclass(frozen=True)
class PointerDown:
    pointer_id: int
    x: float
    y: float
    target: DragTarget
    button: int = 0


@dataclass(frozen=True)
class PointerMove:
    pointer_id: int
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    pointer_id: int
    x: float
    y: float


@dataclass(frozen=True)
class PointerCancel:
    """Pointer capture lost, tab hidden, or any other abandoned gesture."""

    pointer_id: Optional[int] = None


@dataclass(frozen=True)
class TimerTick:
    now_ms: Optional[float] = None


@dataclass(frozen=True)
class CaptureSegment:
    data: bytes


@dataclass(frozen=True)
class StorageComplete:
    operation: str
    session_id: str
    error: Optional[Exception] = None


InputEvent = Union[
    PointerDown,
    PointerMove,
    PointerUp,
    PointerCancel,
    TimerTick,
    CaptureSegment,
    StorageComplete,
]
