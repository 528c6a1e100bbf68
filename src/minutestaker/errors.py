"""Error taxonomy and result types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class MinutesTakerError(Exception):
    """Base class for errors raised by minutestaker components."""


class PermissionDenied(MinutesTakerError, RuntimeError):
    """Audio capture is unavailable or was refused."""


class StorageUnavailable(MinutesTakerError, RuntimeError):
    """A metadata or content store could not be opened, written or read."""


class ValidationError(MinutesTakerError, ValueError):
    """User input must be corrected before the operation can proceed."""


class NotFound(MinutesTakerError, LookupError):
    """A session or audio payload no longer exists."""


@dataclass
class AudioDeleteResult:
    session_id: str
    deleted: bool
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class Notice:
    title: str
    messages: list
    tone: str = "info"
