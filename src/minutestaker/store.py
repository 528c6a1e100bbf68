"""Session history persistence.

Metadata lives in a key-value store as one JSON array under a single key.
Audio lives in a separate content store keyed by session id. The two writes are
independent; the metadata record is authoritative for whether a session exists.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional, Protocol

from .errors import AudioDeleteResult, NotFound, StorageUnavailable, ValidationError
from .models import AudioPayload, Session
from .storage import ensure_dir

logger = logging.getLogger("minutestaker")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class ContentStore(Protocol):
    def get(self, key: str) -> Optional[AudioPayload]: ...

    def put(self, key: str, payload: AudioPayload) -> None: ...

    def delete(self, key: str) -> None: ...


class _LazyOpen:
    """Open once on first use; concurrent first callers share that one open."""

    def __init__(self) -> None:
        self._open_lock = threading.Lock()
        self._opened = False
        self.open_count = 0

    def _ensure_open(self) -> None:
        if self._opened:
            return
        with self._open_lock:
            if self._opened:
                return
            try:
                self._open()
            except OSError as exc:
                raise StorageUnavailable(f"Failed to open store: {exc}") from exc
            self.open_count += 1
            self._opened = True

    def _open(self) -> None:
        raise NotImplementedError


class MemoryKeyValueStore:
    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return json.loads(json.dumps(value)) if value is not None else None

    def put(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class MemoryContentStore:
    def __init__(self) -> None:
        self._data: Dict[str, AudioPayload] = {}

    def get(self, key: str) -> Optional[AudioPayload]:
        return self._data.get(key)

    def put(self, key: str, payload: AudioPayload) -> None:
        self._data[key] = AudioPayload(data=bytes(payload.data), mime_type=payload.mime_type)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(_LazyOpen):
    """All keys in one JSON document, rewritten atomically on each put."""

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path
        self._lock = threading.RLock()
        self._data: Dict[str, Any] = {}

    def _open(self) -> None:
        ensure_dir(os.path.dirname(os.path.abspath(self.path)))
        if not os.path.exists(self.path):
            self._data = {}
            return
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise StorageUnavailable(f"Corrupt metadata file {self.path}: {exc}") from exc
        self._data = data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        temp_path = f"{self.path}.tmp"
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2)
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise StorageUnavailable(f"Failed to write {self.path}: {exc}") from exc

    def get(self, key: str) -> Optional[Any]:
        self._ensure_open()
        with self._lock:
            value = self._data.get(key)
            return json.loads(json.dumps(value)) if value is not None else None

    def put(self, key: str, value: Any) -> None:
        self._ensure_open()
        with self._lock:
            self._data[key] = json.loads(json.dumps(value))
            self._flush()

    def delete(self, key: str) -> None:
        self._ensure_open()
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()


class DirectoryContentStore(_LazyOpen):
    """One ``<key>.bin`` file per payload with a ``<key>.json`` mime sidecar."""

    def __init__(self, root: str) -> None:
        super().__init__()
        self.root = root

    def _open(self) -> None:
        ensure_dir(self.root)

    def _paths(self, key: str) -> tuple[str, str]:
        safe = key.replace(os.sep, "_").replace("/", "_")
        return (
            os.path.join(self.root, f"{safe}.bin"),
            os.path.join(self.root, f"{safe}.json"),
        )

    def get(self, key: str) -> Optional[AudioPayload]:
        self._ensure_open()
        data_path, meta_path = self._paths(key)
        if not os.path.exists(data_path):
            return None
        try:
            with open(data_path, "rb") as handle:
                data = handle.read()
            mime_type = "audio/webm"
            if os.path.exists(meta_path):
                with open(meta_path, "r", encoding="utf-8") as handle:
                    mime_type = json.load(handle).get("mime_type", mime_type)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageUnavailable(f"Failed to read audio {key}: {exc}") from exc
        return AudioPayload(data=data, mime_type=mime_type)

    def put(self, key: str, payload: AudioPayload) -> None:
        self._ensure_open()
        data_path, meta_path = self._paths(key)
        try:
            with open(f"{data_path}.tmp", "wb") as handle:
                handle.write(payload.data)
            os.replace(f"{data_path}.tmp", data_path)
            with open(meta_path, "w", encoding="utf-8") as handle:
                json.dump({"id": key, "mime_type": payload.mime_type}, handle)
        except OSError as exc:
            raise StorageUnavailable(f"Failed to write audio {key}: {exc}") from exc

    def delete(self, key: str) -> None:
        self._ensure_open()
        for path in self._paths(key):
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageUnavailable(f"Failed to delete audio {key}: {exc}") from exc


class SessionStore:
    def __init__(
        self,
        metadata: KeyValueStore,
        content: ContentStore,
        history_key: str = "minutesHistory",
    ) -> None:
        self.metadata = metadata
        self.content = content
        self.history_key = history_key

    def _read_records(self) -> List[dict]:
        try:
            records = self.metadata.get(self.history_key)
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Failed to read session history: {exc}") from exc
        return [r for r in records or [] if isinstance(r, dict) and r.get("id")]

    def _write_records(self, records: List[dict]) -> None:
        try:
            self.metadata.put(self.history_key, records)
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Failed to write session history: {exc}") from exc

    def save(self, session: Session, audio: Optional[AudioPayload] = None) -> Session:
        name = (session.name or "").strip()
        if not name:
            raise ValidationError("Please enter a session name.")
        session.name = name

        session.has_audio = False
        if audio is not None and audio.data:
            try:
                self.content.put(session.id, audio)
                session.has_audio = True
            except Exception as exc:
                logger.error("Failed to save audio for %s: %s", session.id, exc)

        records = [r for r in self._read_records() if r.get("id") != session.id]
        records.insert(0, session.to_record())
        self._write_records(records)
        logger.info("Session saved: %s (%s)", session.id, session.name)
        return session

    def load(self) -> List[Session]:
        return [Session.from_record(record) for record in self._read_records()]

    def get(self, session_id: str) -> Session:
        for session in self.load():
            if session.id == session_id:
                return session
        raise NotFound(f"Session {session_id} not found.")

    def fetch_audio(self, session_id: str) -> AudioPayload:
        try:
            payload = self.content.get(session_id)
        except StorageUnavailable:
            raise
        except Exception as exc:
            raise StorageUnavailable(f"Failed to load audio: {exc}") from exc
        if payload is None or not payload.data:
            raise NotFound(f"Audio for {session_id} not found in storage.")
        return payload

    def delete(self, session_id: str) -> AudioDeleteResult:
        records = self._read_records()
        if not any(r.get("id") == session_id for r in records):
            raise NotFound(f"Session {session_id} not found.")

        try:
            self.content.delete(session_id)
            result = AudioDeleteResult(session_id=session_id, deleted=True)
        except Exception as exc:
            logger.error("Failed to delete audio for %s: %s", session_id, exc)
            result = AudioDeleteResult(session_id=session_id, deleted=False, error=exc)

        self._write_records([r for r in records if r.get("id") != session_id])
        logger.info("Session deleted: %s", session_id)
        return result


def open_session_store(
    base_dir: str,
    history_key: str = "minutesHistory",
    metadata_filename: str = "minutes_history.json",
    audio_dirname: str = "Audio",
) -> SessionStore:
    return SessionStore(
        metadata=JsonFileKeyValueStore(os.path.join(base_dir, metadata_filename)),
        content=DirectoryContentStore(os.path.join(base_dir, audio_dirname)),
        history_key=history_key,
    )
