"""Time-indexed speaker log."""

from __future__ import annotations

import bisect
import time
from typing import Callable, Iterable, List, Optional

from .models import Person, SpeakerLogEntry
from .storage import new_log_id


def wall_clock_ms() -> float:
    return time.time() * 1000


class SpeakerTimeline:
    """Append-only log of speaker changes relative to a recording epoch.

    Entries keep millisecond elapsed times. ``active_at`` returns the latest
    entry whose elapsed time is not after the position; when several entries
    share an elapsed time, the one appended last wins. Records hydrated from
    ``MM:SS`` strings only carry whole seconds, so appends within the same
    second collapse onto the same lookup position.
    """

    def __init__(
        self,
        epoch_ms: Optional[float] = None,
        clock: Callable[[], float] = wall_clock_ms,
        entries: Optional[Iterable[SpeakerLogEntry]] = None,
    ) -> None:
        self.epoch_ms = epoch_ms
        self._clock = clock
        self._entries: List[SpeakerLogEntry] = []
        self._keys: List[int] = []
        for entry in entries or []:
            self._insert(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))

    def start(self, epoch_ms: float) -> None:
        self.epoch_ms = epoch_ms

    def append(self, speaker: Person) -> SpeakerLogEntry:
        if self.epoch_ms is None:
            raise RuntimeError("Timeline has no recording epoch.")
        elapsed = int(self._clock() - self.epoch_ms)
        if self._keys:
            elapsed = max(elapsed, self._keys[-1])
        entry = SpeakerLogEntry(
            id=new_log_id(),
            name=speaker.name,
            alias=speaker.alias or "",
            elapsed_ms=max(elapsed, 0),
        )
        self._insert(entry)
        return entry

    def _insert(self, entry: SpeakerLogEntry) -> None:
        index = bisect.bisect_right(self._keys, entry.elapsed_ms)
        self._keys.insert(index, entry.elapsed_ms)
        self._entries.insert(index, entry)

    def index_at(self, position_ms: float) -> int:
        """Index of the active entry in ``entries()`` or -1 when none."""
        return bisect.bisect_right(self._keys, position_ms) - 1

    def active_at(self, position_ms: float) -> Optional[SpeakerLogEntry]:
        index = self.index_at(position_ms)
        if index < 0:
            return None
        return self._entries[index]

    def entries(self) -> List[SpeakerLogEntry]:
        return list(self._entries)

    def newest_first(self) -> List[SpeakerLogEntry]:
        return list(reversed(self._entries))

    def clear(self) -> None:
        self.epoch_ms = None
        self._entries = []
        self._keys = []
