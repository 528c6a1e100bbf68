"""Replay synchronization between audio position and the speaker log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from .models import SpeakerLogEntry
from .timeline import SpeakerTimeline, wall_clock_ms

logger = logging.getLogger("minutestaker")

NO_SPEAKER = "None"


class Transport(Protocol):
    @property
    def position_ms(self) -> float: ...

    @property
    def is_playing(self) -> bool: ...

    def seek(self, position_ms: float) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...


class ClockTransport:
    """A transport whose position advances with a clock while playing."""

    def __init__(
        self,
        duration_ms: Optional[float] = None,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self.duration_ms = duration_ms
        self._clock = clock
        self._offset_ms = 0.0
        self._started_at: Optional[float] = None

    @property
    def position_ms(self) -> float:
        position = self._offset_ms
        if self._started_at is not None:
            position += self._clock() - self._started_at
        if self.duration_ms is not None:
            position = min(position, self.duration_ms)
        return position

    @property
    def is_playing(self) -> bool:
        if self._started_at is None:
            return False
        return self.duration_ms is None or self.position_ms < self.duration_ms

    def seek(self, position_ms: float) -> None:
        self._offset_ms = max(0.0, position_ms)
        if self._started_at is not None:
            self._started_at = self._clock()

    def play(self) -> None:
        if self._started_at is None:
            self._started_at = self._clock()

    def pause(self) -> None:
        self._offset_ms = self.position_ms
        self._started_at = None


@dataclass
class SyncUpdate:
    active: Optional[SpeakerLogEntry]
    active_row: int
    scroll_to: Optional[int] = None

    @property
    def speaker_label(self) -> str:
        return self.active.name if self.active else NO_SPEAKER


class PlaybackSynchronizer:
    """Tracks the highlighted row of a newest-first speaker log.

    Rows are indexed in display order, so row 0 is the most recent entry.
    """

    def __init__(
        self,
        timeline: SpeakerTimeline,
        transport: Transport,
        on_update: Optional[Callable[[SyncUpdate], None]] = None,
    ) -> None:
        self.timeline = timeline
        self.transport = transport
        self.on_update = on_update
        self.active_row = -1

    @property
    def rows(self) -> List[SpeakerLogEntry]:
        return self.timeline.newest_first()

    def _row_for_index(self, index: int) -> int:
        if index < 0:
            return -1
        return len(self.timeline) - 1 - index

    def sync(self, position_ms: Optional[float] = None) -> SyncUpdate:
        position = self.transport.position_ms if position_ms is None else position_ms
        index = self.timeline.index_at(position)
        active = self.timeline.entries()[index] if index >= 0 else None
        row = self._row_for_index(index)

        scroll_to = None
        if row != self.active_row and row >= 0 and self.transport.is_playing:
            scroll_to = row
        self.active_row = row

        update = SyncUpdate(active=active, active_row=row, scroll_to=scroll_to)
        if self.on_update is not None:
            self.on_update(update)
        return update

    def click_row(self, row: int) -> SyncUpdate:
        rows = self.rows
        if not 0 <= row < len(rows):
            raise IndexError(f"No timeline row {row}.")
        entry = rows[row]
        self.transport.seek(entry.elapsed_ms)
        update = self.sync()
        self.transport.play()
        logger.debug("Seek to %s (%s)", entry.time, entry.name)
        return update

    def close(self) -> None:
        self.transport.pause()
        self.transport.seek(0)
        self.active_row = -1
