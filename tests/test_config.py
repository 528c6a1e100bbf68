import os
import tempfile

from minutestaker.config import Config, load_config, save_config


def test_save_and_load_config_roundtrip():
    cfg = Config(base_dir="C:/Minutes")
    cfg.board.drag_threshold_px = 8
    cfg.recording.device_name = "Conference"
    cfg.recording.preferred_mime_types = ["audio/wav"]

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "minutestaker_config.yml")
        save_config(path, cfg)
        loaded = load_config(path)

    assert loaded.base_dir == "C:/Minutes"
    assert loaded.board.drag_threshold_px == 8
    assert loaded.board.person_size == 72
    assert loaded.recording.device_name == "Conference"
    assert loaded.recording.preferred_mime_types == ["audio/wav"]
    assert loaded.storage.history_key == "minutesHistory"


def test_missing_sections_use_defaults(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("base_dir: /data\n", encoding="utf-8")
    loaded = load_config(str(path))
    assert loaded.base_dir == "/data"
    assert loaded.recording.segment_ms == 1000
    assert loaded.recording.preferred_mime_types[0] == "audio/mpeg"
