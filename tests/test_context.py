import json
import logging

from minutestaker.config import Config
from minutestaker.context import MeetingContext
from minutestaker.errors import StorageUnavailable
from minutestaker.events import (
    CaptureSegment,
    DragTarget,
    PointerCancel,
    PointerDown,
    PointerMove,
    PointerUp,
    StorageComplete,
    TimerTick,
)
from minutestaker.models import Person
from minutestaker.placement import Rect
from minutestaker.recorder import RecordingController
from minutestaker.store import MemoryContentStore, MemoryKeyValueStore, SessionStore

from conftest import FakeBackend


def _context(tmp_path, clock, backend=None, store=None):
    config = Config(base_dir=str(tmp_path))
    recorder = RecordingController(
        backend=backend or FakeBackend(), config=config.recording, clock=clock
    )
    ctx = MeetingContext(config, recorder=recorder, store=store, clock=clock)
    ctx.placement.set_layout(Rect(0, 0, 800, 600), Rect(900, 0, 200, 200))
    ctx.placement.set_roster(
        [Person(id="a", name="Alice", alias="Chair"), Person(id="b", name="Bob")]
    )
    return ctx


def _click(ctx, person_id, pointer_id=1):
    target = DragTarget.person(person_id)
    ctx.dispatch(PointerDown(pointer_id, 50, 50, target))
    ctx.dispatch(PointerMove(pointer_id, 52, 51))
    return ctx.dispatch(PointerUp(pointer_id, 52, 51))


def test_click_in_setup_stage_does_not_set_speaker(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    assert _click(ctx, "a").action == "click"
    assert ctx.current_speaker is None


def test_full_meeting_flow_saves_and_replays(tmp_path, clock):
    backend = FakeBackend()
    ctx = _context(tmp_path, clock, backend=backend)
    ctx.confirm_setup("Weekly Sync")
    _click(ctx, "b")
    assert ctx.current_speaker.name == "Bob"

    assert ctx.start_recording() is True
    clock.advance(5_000)
    _click(ctx, "a")
    ctx.dispatch(CaptureSegment(b"abc"))
    clock.advance(15_000)
    _click(ctx, "b")
    backend.handles[0].on_segment(b"def")
    clock.advance(2_000)
    assert ctx.dispatch(TimerTick()) == "00:22"

    saved = ctx.stop_recording()
    assert saved.name == "Weekly Sync"
    assert saved.has_audio is True
    assert saved.duration == "00:22"
    assert [(e.name, e.time) for e in saved.speaker_log] == [
        ("Alice", "00:05"),
        ("Bob", "00:20"),
    ]
    assert ctx.store.fetch_audio(saved.id).data == b"abcdef"

    opened = ctx.open_history_session(saved.id)
    assert opened is not None
    sync, audio = opened
    assert audio.data == b"abcdef"
    assert sync.sync(4_000).active is None
    assert sync.sync(19_999).active.name == "Alice"
    assert sync.click_row(0).active.name == "Bob"
    assert sync.transport.position_ms == 20_000


def test_stop_without_name_withholds_save_until_named(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.confirm_setup()
    ctx.start_recording()
    ctx.dispatch(CaptureSegment(b"x"))
    assert ctx.stop_recording() is None
    notices = ctx.take_notices()
    assert notices[-1].title == "Session Name Required"
    assert ctx.history() == []

    ctx.set_session_name("Retro")
    saved = ctx.save_current_session()
    assert saved.name == "Retro"
    ctx.save_current_session()
    assert len(ctx.history()) == 1


def test_microphone_denied_keeps_speaker_log(tmp_path, clock):
    ctx = _context(tmp_path, clock, backend=FakeBackend(deny=True))
    ctx.confirm_setup("Offsite")
    assert ctx.start_recording() is False
    assert ctx.take_notices()[0].title == "Microphone Unavailable"
    clock.advance(3_000)
    _click(ctx, "a")
    saved = ctx.stop_recording()
    assert saved.has_audio is False
    assert [e.name for e in saved.speaker_log] == ["Alice"]

    assert ctx.open_history_session(saved.id) is None
    assert ctx.take_notices()[-1].title == "No Audio"


def test_drag_during_meeting_still_places(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.confirm_setup("Standup")
    target = DragTarget.person("a")
    ctx.dispatch(PointerDown(3, 1000, 50, target))
    ctx.dispatch(PointerMove(3, 400, 300))
    outcome = ctx.dispatch(PointerUp(3, 400, 300))
    assert outcome.action == "placed"
    assert ctx.current_speaker is None


def test_pointer_cancel_clears_dangling_drag(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    target = DragTarget.person("a")
    ctx.dispatch(PointerDown(9, 10, 10, target))
    assert ctx.dispatch(PointerDown(9, 10, 10, target)) is None
    ctx.dispatch(PointerCancel(9))
    assert ctx.dispatch(PointerDown(9, 10, 10, target)) is not None
    assert ctx.dispatch(PointerCancel()) == 1


def test_new_session_refused_while_recording_then_resets(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.placement.add_table("circle")
    ctx.placement.place_person("a", 10, 10)
    ctx.confirm_setup("Planning")
    ctx.start_recording()
    assert ctx.start_new_session() is False

    ctx.dispatch(CaptureSegment(b"pcm"))
    ctx.stop_recording()
    assert ctx.start_new_session() is True
    assert ctx.stage == 1
    assert ctx.placement.tables == []
    assert all(p.status == "list" for p in ctx.people)
    assert ctx.session_name == ""
    assert ctx.recorder.state == "idle"
    assert len(ctx.history()) == 1


def test_delete_session_and_missing_session_notice(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.confirm_setup("Review")
    ctx.start_recording()
    ctx.dispatch(CaptureSegment(b"audio"))
    saved = ctx.stop_recording()

    result = ctx.delete_session(saved.id)
    assert result.ok
    assert ctx.history() == []
    assert ctx.delete_session(saved.id) is None
    assert ctx.take_notices()[-1].title == "Session Not Found"


def test_audio_delete_failure_surfaces_notice(tmp_path, clock):
    class LockedContent(MemoryContentStore):
        def delete(self, key):
            raise StorageUnavailable("locked")

    store = SessionStore(MemoryKeyValueStore(), LockedContent())
    ctx = _context(tmp_path, clock, store=store)
    ctx.confirm_setup("Review")
    ctx.start_recording()
    ctx.dispatch(CaptureSegment(b"audio"))
    saved = ctx.stop_recording()

    result = ctx.delete_session(saved.id)
    assert not result.ok
    assert ctx.history() == []
    assert ctx.take_notices()[-1].title == "Audio Not Deleted"


def test_export_writes_metadata_and_audio(tmp_path, clock):
    ctx = _context(tmp_path, clock, backend=FakeBackend(supported=("audio/ogg;codecs=opus",)))
    assert ctx.export_session(str(tmp_path / "out")) is None

    ctx.confirm_setup("Town Hall")
    ctx.start_recording()
    clock.advance(1_000)
    _click(ctx, "a")
    ctx.dispatch(CaptureSegment(b"ogg-bytes"))
    ctx.stop_recording()

    meta_path, audio_path = ctx.export_session(str(tmp_path / "out"))
    assert audio_path.endswith(".ogg")
    with open(meta_path, "r", encoding="utf-8") as handle:
        meta = json.load(handle)
    assert meta["sessionName"] == "Town Hall"
    assert meta["log"] == [{"name": "Alice", "alias": "Chair", "time": "00:01"}]
    with open(audio_path, "rb") as handle:
        assert handle.read() == b"ogg-bytes"


def test_live_replay_uses_current_timeline(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    assert ctx.open_replay() is None
    ctx.confirm_setup("Live")
    ctx.start_recording()
    clock.advance(7_000)
    _click(ctx, "b")
    ctx.dispatch(CaptureSegment(b"pcm"))
    ctx.stop_recording()

    sync = ctx.open_replay()
    assert sync.rows[0].name == "Bob"
    assert sync.sync(7_000).active.name == "Bob"
    ctx.close_replay()
    assert ctx.replay is None


def test_storage_complete_error_becomes_notice(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.dispatch(StorageComplete("save", "session-1", error=OSError("quota")))
    assert ctx.take_notices()[0].tone == "warning"


def test_guest_removal_clears_current_speaker(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    guest = ctx.add_guest("Zoe")
    ctx.set_current_speaker(guest)
    assert ctx.remove_guest(guest.id) is True
    assert ctx.current_speaker_id is None


def test_from_config_file_prepares_layout(tmp_path, clock):
    config_path = tmp_path / "minutestaker_config.yml"
    config_path.write_text(f"base_dir: {tmp_path.as_posix()}\n", encoding="utf-8")
    recorder = RecordingController(backend=FakeBackend(), clock=clock)
    ctx = MeetingContext.from_config_file(str(config_path), recorder=recorder, clock=clock)
    try:
        assert (tmp_path / "Logs").is_dir()
        assert (tmp_path / "Audio").is_dir()
        assert ctx.history() == []
    finally:
        logger = logging.getLogger("minutestaker")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def test_capture_stop_failure_warns_and_still_saves(tmp_path, clock):
    class BrokenStopBackend(FakeBackend):
        def open(self, mime_type, segment_ms, on_segment):
            handle = super().open(mime_type, segment_ms, on_segment)

            def stop():
                raise OSError("device lost")

            handle.stop = stop
            return handle

    ctx = _context(tmp_path, clock, backend=BrokenStopBackend())
    ctx.confirm_setup("Sync")
    ctx.start_recording()
    clock.advance(2_000)
    _click(ctx, "a")
    ctx.dispatch(CaptureSegment(b"pcm"))

    saved = ctx.stop_recording()
    assert ctx.recorder.state == "stopped"
    assert ctx.take_notices()[-1].title == "Recording Error"
    assert saved.has_audio is True
    assert ctx.store.fetch_audio(saved.id).data == b"pcm"
    assert ctx.start_new_session() is True


def test_capture_segment_after_stop_is_ignored(tmp_path, clock):
    ctx = _context(tmp_path, clock)
    ctx.confirm_setup("Sync")
    ctx.start_recording()
    ctx.dispatch(CaptureSegment(b"pcm"))
    saved = ctx.stop_recording()

    ctx.dispatch(CaptureSegment(b"late"))
    assert ctx.recorder.last_payload.data == b"pcm"
    assert ctx.store.fetch_audio(saved.id).data == b"pcm"
    ctx.start_new_session()
    ctx.confirm_setup("Next")
    ctx.start_recording()
    ctx.stop_recording()
    assert ctx.recorder.last_payload is None
