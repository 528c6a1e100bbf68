"""Audio capture lifecycle."""

from __future__ import annotations

import io
import logging
import threading
import wave
from typing import Any, Callable, Dict, List, Optional, Protocol

import numpy as np

from .config import RecordingConfig
from .errors import PermissionDenied
from .models import AudioPayload, format_duration
from .timeline import wall_clock_ms

logger = logging.getLogger("minutestaker")

IDLE = "idle"
RECORDING = "recording"
STOPPED = "stopped"

FALLBACK_MIME = "audio/webm"


class CaptureHandle(Protocol):
    mime_type: str

    def stop(self) -> None:
        """Flush the last partial segment and release the device."""

    def assemble(self, segments: List[bytes]) -> bytes:
        """Join buffered segments into one contiguous payload."""


class CaptureBackend(Protocol):
    def is_type_supported(self, mime_type: str) -> bool: ...

    def open(
        self,
        mime_type: str,
        segment_ms: int,
        on_segment: Callable[[bytes], None],
    ) -> CaptureHandle: ...


def list_input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise PermissionDenied("sounddevice is required for device detection.") from exc

    devices = sd.query_devices()
    return [d for d in devices if d.get("max_input_channels", 0) > 0]


def select_preferred_device(
    candidates: List[Dict[str, Any]],
    prefer_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise PermissionDenied("No input devices found.")
    if prefer_name:
        preferred = [
            d for d in candidates if prefer_name.lower() in d.get("name", "").lower()
        ]
        if preferred:
            return preferred[0]
    return candidates[0]


def select_mime_type(backend: CaptureBackend, preferred: List[str]) -> str:
    return next((t for t in preferred if backend.is_type_supported(t)), "")


class SoundDeviceCapture:
    """Microphone capture through sounddevice, delivering 16-bit PCM segments."""

    SUPPORTED_TYPES = ("audio/wav",)

    def __init__(
        self,
        sample_rate_hz: int = 44100,
        channels: int = 1,
        device_name: Optional[str] = None,
    ) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.device_name = device_name

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.SUPPORTED_TYPES

    def open(
        self,
        mime_type: str,
        segment_ms: int,
        on_segment: Callable[[bytes], None],
    ) -> "_SoundDeviceHandle":
        try:
            import sounddevice as sd
        except Exception as exc:  # pragma: no cover - environment-dependent
            raise PermissionDenied("sounddevice is required for recording.") from exc

        try:
            device = select_preferred_device(list_input_devices(), self.device_name)
        except PermissionDenied:
            raise
        except Exception as exc:
            raise PermissionDenied(f"Microphone unavailable: {exc}") from exc
        handle = _SoundDeviceHandle(
            mime_type=mime_type or "audio/wav",
            sample_rate_hz=self.sample_rate_hz,
            channels=self.channels,
            segment_frames=max(1, int(self.sample_rate_hz * segment_ms / 1000)),
            on_segment=on_segment,
        )
        try:
            handle.stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=self.channels,
                dtype="int16",
                device=device.get("index"),
                callback=handle.callback,
            )
            handle.stream.start()
        except Exception as exc:
            raise PermissionDenied(f"Microphone unavailable: {exc}") from exc
        return handle


class _SoundDeviceHandle:
    def __init__(
        self,
        mime_type: str,
        sample_rate_hz: int,
        channels: int,
        segment_frames: int,
        on_segment: Callable[[bytes], None],
    ) -> None:
        self.mime_type = mime_type
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.segment_frames = segment_frames
        self.on_segment = on_segment
        self.stream = None
        self._pending: List[bytes] = []
        self._pending_frames = 0
        self._lock = threading.Lock()

    def callback(self, indata, frames, _time, status) -> None:
        if status:
            logger.debug("Capture status: %s", status)
        block = np.asarray(indata)
        if block.dtype != np.int16:
            block = block.astype(np.int16)
        with self._lock:
            self._pending.append(block.tobytes())
            self._pending_frames += frames
            if self._pending_frames < self.segment_frames:
                return
            segment = b"".join(self._pending)
            self._pending = []
            self._pending_frames = 0
        self.on_segment(segment)

    def stop(self) -> None:
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None
        with self._lock:
            segment = b"".join(self._pending)
            self._pending = []
            self._pending_frames = 0
        if segment:
            self.on_segment(segment)

    def assemble(self, segments: List[bytes]) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as handle:
            handle.setnchannels(self.channels)
            handle.setsampwidth(2)
            handle.setframerate(self.sample_rate_hz)
            handle.writeframes(b"".join(segments))
        return buffer.getvalue()


class RecordingController:
    """Idle -> Recording -> Stopped, one capture handle at a time."""

    def __init__(
        self,
        backend: Optional[CaptureBackend] = None,
        config: Optional[RecordingConfig] = None,
        clock: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self.config = config or RecordingConfig()
        self.backend = backend or SoundDeviceCapture(
            sample_rate_hz=self.config.sample_rate_hz,
            channels=self.config.channels,
            device_name=self.config.device_name,
        )
        self._clock = clock
        self.state = IDLE
        self.epoch_ms: Optional[float] = None
        self.stopped_ms: Optional[float] = None
        self.mime_type = ""
        self.capture_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None
        self._handle: Optional[CaptureHandle] = None
        self._segments: List[bytes] = []
        self._lock = threading.Lock()
        self.last_payload: Optional[AudioPayload] = None

    @property
    def is_recording(self) -> bool:
        return self.state == RECORDING

    @property
    def has_capture(self) -> bool:
        return self._handle is not None

    def start(self) -> bool:
        """Open a recording epoch. Returns True when audio is being captured."""
        if self.state != IDLE:
            raise RuntimeError(f"Cannot start recording from state {self.state}.")
        if self._handle is not None:
            raise RuntimeError("A capture handle is still held.")

        self.mime_type = select_mime_type(self.backend, self.config.preferred_mime_types)
        with self._lock:
            self._segments = []
        self.last_payload = None
        self.capture_error = None
        self.stop_error = None
        try:
            handle = self.backend.open(
                self.mime_type, self.config.segment_ms, self.add_segment
            )
        except PermissionDenied as exc:
            logger.warning("Audio capture unavailable: %s", exc)
            self.capture_error = exc
            handle = None
        self._handle = handle
        if handle is not None:
            self.mime_type = handle.mime_type or self.mime_type
        self.epoch_ms = self._clock()
        self.stopped_ms = None
        self.state = RECORDING
        logger.info(
            "Recording started (%s)", self.mime_type if handle else "timeline only"
        )
        return handle is not None

    def add_segment(self, data: bytes) -> None:
        if not data:
            return
        with self._lock:
            if self.state != RECORDING:
                logger.debug("Dropped %s bytes outside a recording", len(data))
                return
            self._segments.append(data)

    def stop(self) -> Optional[AudioPayload]:
        if self.state != RECORDING:
            return None
        handle = self._handle
        try:
            if handle is not None:
                handle.stop()
        except Exception as exc:
            logger.error("Failed to stop audio capture: %s", exc)
            self.stop_error = exc
        finally:
            self._handle = None
            self.stopped_ms = self._clock()
            with self._lock:
                self.state = STOPPED
        with self._lock:
            segments = list(self._segments)
        if handle is None or not segments:
            logger.info("Recording stopped without audio")
            return None
        data = handle.assemble(segments)
        self.last_payload = AudioPayload(data=data, mime_type=self.mime_type or FALLBACK_MIME)
        logger.info("Recording stopped (%s bytes)", len(data))
        return self.last_payload

    def elapsed_ms(self, now_ms: Optional[float] = None) -> float:
        if self.epoch_ms is None:
            return 0.0
        if self.state == STOPPED and self.stopped_ms is not None:
            return self.stopped_ms - self.epoch_ms
        now = self._clock() if now_ms is None else now_ms
        return max(0.0, now - self.epoch_ms)

    def timer_text(self, now_ms: Optional[float] = None) -> str:
        return format_duration(self.elapsed_ms(now_ms))

    def reset(self) -> None:
        if self.state == RECORDING:
            raise RuntimeError("Stop recording before starting a new session.")
        self.state = IDLE
        self.epoch_ms = None
        self.stopped_ms = None
        self.mime_type = ""
        self.capture_error = None
        self.stop_error = None
        self.last_payload = None
        with self._lock:
            self._segments = []
