import os

from minutestaker.storage import ensure_structure, new_log_id, new_session_id


def test_session_id_format():
    session_id = new_session_id()
    assert session_id.startswith("session-")
    assert session_id.split("-", 1)[1].isdigit()


def test_log_ids_are_unique():
    ids = {new_log_id() for _ in range(50)}
    assert len(ids) == 50


def test_ensure_structure_creates_dirs(tmp_path):
    paths = ensure_structure(str(tmp_path), audio_dirname="Blobs")
    assert paths["audio"].endswith("Blobs")
    for key in ("audio", "exports", "logs"):
        assert os.path.isdir(paths[key])
