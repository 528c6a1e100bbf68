"""Meeting context: owns the components and routes input events."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .config import Config, load_config
from .errors import (
    AudioDeleteResult,
    NotFound,
    Notice,
    StorageUnavailable,
    ValidationError,
)
from .events import (
    CaptureSegment,
    InputEvent,
    PointerCancel,
    PointerDown,
    PointerMove,
    PointerUp,
    StorageComplete,
    TimerTick,
)
from .logging_utils import setup_logging
from .models import AudioPayload, Person, Session
from .placement import MEETING_STAGE, SETUP_STAGE, DragOutcome, PlacementEngine
from .playback import ClockTransport, PlaybackSynchronizer, Transport
from .recorder import IDLE, RecordingController
from .session_io import build_export_metadata, save_export
from .storage import display_date, display_time, ensure_structure, new_session_id
from .store import SessionStore, open_session_store
from .timeline import SpeakerTimeline, wall_clock_ms

logger = logging.getLogger("minutestaker")


class MeetingContext:
    def __init__(
        self,
        config: Config,
        placement: Optional[PlacementEngine] = None,
        recorder: Optional[RecordingController] = None,
        store: Optional[SessionStore] = None,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self.config = config
        self.clock = clock
        self.placement = placement or PlacementEngine(board=config.board)
        self.recorder = recorder or RecordingController(config=config.recording, clock=clock)
        self.store = store or open_session_store(
            config.base_dir,
            history_key=config.storage.history_key,
            metadata_filename=config.storage.metadata_filename,
            audio_dirname=config.storage.audio_dirname,
        )
        self.timeline = SpeakerTimeline(clock=clock)
        self.session_name = ""
        self.current_speaker_id: Optional[str] = None
        self.timer_text = "00:00"
        self.session_id: Optional[str] = None
        self.last_saved: Optional[Session] = None
        self.notices: List[Notice] = []
        self.replay: Optional[PlaybackSynchronizer] = None

    @classmethod
    def from_config_file(cls, path: str, **kwargs) -> "MeetingContext":
        config = load_config(path)
        paths = ensure_structure(config.base_dir, config.storage.audio_dirname)
        setup_logging(
            paths["logs"],
            level=logging.DEBUG if config.debug_logging else logging.INFO,
        )
        logger.info("Session root: %s", paths["root"])
        return cls(config, **kwargs)

    # -- state -----------------------------------------------------------

    @property
    def stage(self) -> int:
        return self.placement.stage

    @property
    def people(self) -> List[Person]:
        return self.placement.people

    @property
    def current_speaker(self) -> Optional[Person]:
        if self.current_speaker_id is None:
            return None
        return self.placement.find_person(self.current_speaker_id)

    def notify(self, title: str, messages: List[str], tone: str = "info") -> Notice:
        notice = Notice(title=title, messages=list(messages), tone=tone)
        self.notices.append(notice)
        return notice

    def take_notices(self) -> List[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # -- event routing ---------------------------------------------------

    def dispatch(self, event: InputEvent):
        if isinstance(event, PointerDown):
            return self.placement.begin_drag(event.target, event)
        if isinstance(event, PointerMove):
            return self.placement.update_drag(event)
        if isinstance(event, PointerUp):
            outcome = self.placement.end_drag(event)
            if outcome is not None:
                self._apply_outcome(outcome)
            return outcome
        if isinstance(event, PointerCancel):
            if event.pointer_id is None:
                return self.placement.cancel_all()
            return self.placement.cancel_drag(event.pointer_id)
        if isinstance(event, TimerTick):
            if self.recorder.is_recording:
                self.timer_text = self.recorder.timer_text(event.now_ms)
            return self.timer_text
        if isinstance(event, CaptureSegment):
            self.recorder.add_segment(event.data)
            return None
        if isinstance(event, StorageComplete):
            if event.error is not None:
                logger.error(
                    "Storage %s failed for %s: %s",
                    event.operation,
                    event.session_id,
                    event.error,
                )
                self.notify(
                    "Storage Error",
                    [f"Could not {event.operation} session {event.session_id}."],
                    "warning",
                )
            return None
        raise TypeError(f"Unsupported event: {event!r}")

    def _apply_outcome(self, outcome: DragOutcome) -> None:
        if outcome.action != "click" or outcome.session.type != "person":
            return
        if self.stage != MEETING_STAGE:
            return
        person = self.placement.find_person(outcome.target_id)
        if person is not None:
            self.set_current_speaker(person)

    def set_current_speaker(self, person: Optional[Person]) -> None:
        self.current_speaker_id = person.id if person else None
        if person is not None and self.recorder.is_recording:
            entry = self.timeline.append(person)
            logger.debug("Speaker %s at %s", entry.name, entry.time)

    # -- roster and setup ------------------------------------------------

    def add_guest(self, name: str) -> Optional[Person]:
        if self.stage != SETUP_STAGE:
            return None
        return self.placement.add_guest(name)

    def remove_guest(self, person_id: str) -> bool:
        if self.stage != SETUP_STAGE:
            return False
        removed = self.placement.remove_guest(person_id)
        if removed and self.current_speaker_id == person_id:
            self.set_current_speaker(None)
        return removed

    def set_session_name(self, name: str) -> None:
        self.session_name = (name or "").strip()

    def confirm_setup(self, session_name: Optional[str] = None) -> None:
        if session_name and session_name.strip():
            self.set_session_name(session_name)
        self.placement.cancel_all()
        self.placement.stage = MEETING_STAGE

    # -- recording -------------------------------------------------------

    def start_recording(self) -> bool:
        if self.recorder.is_recording:
            return self.recorder.has_capture
        if self.recorder.state != IDLE:
            self.notify(
                "Recording Finished",
                ["Start a new session to record again."],
                "info",
            )
            return False
        self.timeline.clear()
        self.session_id = new_session_id()
        captured = self.recorder.start()
        self.timeline.start(self.recorder.epoch_ms)
        self.timer_text = self.recorder.timer_text()
        if not captured:
            self.notify(
                "Microphone Unavailable",
                ["Microphone access denied or unavailable.", "Speaker log only."],
                "warning",
            )
        return captured

    def stop_recording(self) -> Optional[Session]:
        if not self.recorder.is_recording:
            return None
        self.recorder.stop()
        self.timer_text = self.recorder.timer_text()
        if self.recorder.stop_error is not None:
            self.notify(
                "Recording Error",
                ["The microphone did not stop cleanly.", "Saving what was captured."],
                "warning",
            )
        return self.save_current_session()

    def save_current_session(self) -> Optional[Session]:
        audio = self.recorder.last_payload
        if audio is None and len(self.timeline) == 0:
            return None
        now = datetime.now()
        session = Session(
            id=self.session_id or new_session_id(),
            name=self.session_name,
            date=display_date(now),
            time=display_time(now),
            duration=self.timer_text,
            speaker_log=self.timeline.entries(),
        )
        try:
            saved = self.store.save(session, audio)
        except ValidationError as exc:
            self.notify("Session Name Required", [str(exc)], "warning")
            return None
        except StorageUnavailable as exc:
            logger.error("Failed to save session: %s", exc)
            self.notify("Storage Error", ["The session could not be saved."], "warning")
            return None
        if audio is not None and not saved.has_audio:
            self.notify("Audio Not Saved", ["The audio could not be stored."], "warning")
        self.last_saved = saved
        return saved

    def start_new_session(self, save_current: bool = True) -> bool:
        if self.recorder.is_recording:
            self.notify("Recording Active", ["Please stop recording first."], "warning")
            return False
        has_data = self.recorder.last_payload is not None or len(self.timeline) > 0
        if has_data and save_current and self.last_saved is None:
            self.save_current_session()
        self.close_replay()
        self.recorder.reset()
        self.timeline.clear()
        self.placement.reset()
        self.current_speaker_id = None
        self.session_name = ""
        self.timer_text = "00:00"
        self.session_id = None
        self.last_saved = None
        return True

    # -- history and replay ----------------------------------------------

    def history(self) -> List[Session]:
        try:
            return self.store.load()
        except StorageUnavailable as exc:
            logger.error("Failed to load history: %s", exc)
            self.notify("Storage Error", ["Session history is unavailable."], "warning")
            return []

    def delete_session(self, session_id: str) -> Optional[AudioDeleteResult]:
        try:
            result = self.store.delete(session_id)
        except NotFound as exc:
            self.notify("Session Not Found", [str(exc)], "info")
            return None
        except StorageUnavailable as exc:
            logger.error("Failed to delete session %s: %s", session_id, exc)
            self.notify("Storage Error", ["The session could not be deleted."], "warning")
            return None
        if not result.ok:
            self.notify(
                "Audio Not Deleted",
                ["The session was removed but its audio could not be deleted."],
                "warning",
            )
        return result

    def open_replay(self, transport: Optional[Transport] = None) -> Optional[PlaybackSynchronizer]:
        if self.recorder.last_payload is None:
            self.notify("Nothing To Replay", ["Nothing to replay yet."], "info")
            return None
        self.close_replay()
        self.replay = PlaybackSynchronizer(
            self.timeline, transport or ClockTransport(clock=self.clock)
        )
        self.replay.transport.play()
        self.replay.sync()
        return self.replay

    def open_history_session(
        self, session_id: str, transport: Optional[Transport] = None
    ) -> Optional[tuple[PlaybackSynchronizer, AudioPayload]]:
        try:
            session = self.store.get(session_id)
        except (NotFound, StorageUnavailable) as exc:
            self.notify("Session Not Found", [str(exc)], "info")
            return None
        if not session.has_audio:
            self.notify("No Audio", ["No audio was recorded for this session."], "info")
            return None
        try:
            audio = self.store.fetch_audio(session_id)
        except NotFound:
            self.notify("Audio Missing", ["Audio not found in storage."], "warning")
            return None
        except StorageUnavailable as exc:
            logger.error("Failed to load audio for %s: %s", session_id, exc)
            self.notify("Audio Missing", ["Failed to load audio."], "warning")
            return None
        if not session.speaker_log:
            self.notify("No Speaker Log", ["No speaker log for this session."], "info")
            return None
        self.close_replay()
        timeline = SpeakerTimeline(clock=self.clock, entries=session.speaker_log)
        self.replay = PlaybackSynchronizer(
            timeline, transport or ClockTransport(clock=self.clock)
        )
        self.replay.transport.play()
        self.replay.sync()
        return self.replay, audio

    def close_replay(self) -> None:
        if self.replay is not None:
            self.replay.close()
            self.replay = None

    def export_session(self, out_dir: Optional[str] = None) -> Optional[tuple[str, str]]:
        audio = self.recorder.last_payload
        if audio is None:
            self.notify("Nothing To Export", ["No audio recorded yet."], "info")
            return None
        metadata = build_export_metadata(
            self.session_name, display_date(), self.timeline.newest_first()
        )
        target = out_dir or ensure_structure(
            self.config.base_dir, self.config.storage.audio_dirname
        )["exports"]
        return save_export(target, metadata, audio)
