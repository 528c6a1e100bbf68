import pytest

from minutestaker.errors import PermissionDenied


class FakeClock:
    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeHandle:
    def __init__(self, mime_type, on_segment, tail=b""):
        self.mime_type = mime_type
        self.on_segment = on_segment
        self.tail = tail
        self.stopped = False

    def stop(self):
        self.stopped = True
        if self.tail:
            self.on_segment(self.tail)

    def assemble(self, segments):
        return b"".join(segments)


class FakeBackend:
    def __init__(self, supported=("audio/webm",), deny=False, tail=b""):
        self.supported = set(supported)
        self.deny = deny
        self.tail = tail
        self.handles = []

    def is_type_supported(self, mime_type):
        return mime_type in self.supported

    def open(self, mime_type, segment_ms, on_segment):
        if self.deny:
            raise PermissionDenied("denied")
        handle = FakeHandle(mime_type, on_segment, tail=self.tail)
        self.handles.append(handle)
        return handle

    @property
    def open_handles(self):
        return [h for h in self.handles if not h.stopped]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()
