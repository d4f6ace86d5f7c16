"""
Abstract media-device and encoder interfaces.

A platform adapter (browser bridge, native capture, test fake) implements
``BaseMediaDevices`` to hand out ``MediaStream`` objects and ``BaseEncoder``
to turn a stream into timesliced chunks. Everything above this module is
written against these interfaces only.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from src.core.exceptions import (
    DeviceBusyError,
    DeviceNotFoundError,
    OverconstrainedError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VideoConstraints:
    """Preferred capture settings; sizes are ideals, not hard requirements."""

    width: int = 1280
    height: int = 720
    facing_mode: str = "user"


@dataclass(frozen=True)
class MediaConstraints:
    """What to request from the device layer.

    ``video=True`` asks for any camera; a ``VideoConstraints`` narrows it.
    """

    video: bool | VideoConstraints = True
    audio: bool = True


class MediaTrack:
    """One audio or video track of a stream."""

    def __init__(self, kind: str, label: str = "") -> None:
        self.kind = kind
        self.label = label
        self.ready_state = "live"

    def stop(self) -> None:
        """Release the underlying device. Safe to call repeatedly."""
        self.ready_state = "ended"


class MediaStream:
    """A bundle of live tracks handed out by ``BaseMediaDevices``."""

    def __init__(self, tracks: Sequence[MediaTrack]) -> None:
        self._tracks = list(tracks)

    def get_tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def stop_all(self) -> None:
        for track in self._tracks:
            track.stop()


class BaseMediaDevices(ABC):
    """Interface every capture backend must implement."""

    @abstractmethod
    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        """Acquire a live stream.

        Raises:
            MediaAccessError: Or any exception carrying a browser-style
                ``name`` attribute; see ``classify_device_error``.
        """


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------


class DeviceErrorKind(StrEnum):
    """Fixed set of causes a device acquisition can fail with."""

    permission_denied = "permission_denied"
    not_found = "not_found"
    busy = "busy"
    overconstrained = "overconstrained"
    other = "other"


# Names raised by browser bridges (current and legacy spellings)
_ERROR_NAMES: dict[str, DeviceErrorKind] = {
    "NotAllowedError": DeviceErrorKind.permission_denied,
    "PermissionDeniedError": DeviceErrorKind.permission_denied,
    "NotFoundError": DeviceErrorKind.not_found,
    "DevicesNotFoundError": DeviceErrorKind.not_found,
    "NotReadableError": DeviceErrorKind.busy,
    "TrackStartError": DeviceErrorKind.busy,
    "OverconstrainedError": DeviceErrorKind.overconstrained,
}


def classify_device_error(exc: BaseException) -> DeviceErrorKind:
    """Map an acquisition failure to a ``DeviceErrorKind``."""
    if isinstance(exc, PermissionDeniedError):
        return DeviceErrorKind.permission_denied
    if isinstance(exc, DeviceNotFoundError):
        return DeviceErrorKind.not_found
    if isinstance(exc, DeviceBusyError):
        return DeviceErrorKind.busy
    if isinstance(exc, OverconstrainedError):
        return DeviceErrorKind.overconstrained
    return _ERROR_NAMES.get(getattr(exc, "name", ""), DeviceErrorKind.other)


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------


class EncoderEventType(StrEnum):
    data = "data"
    stop = "stop"
    error = "error"


@dataclass(frozen=True)
class EncoderEvent:
    type: EncoderEventType
    data: bytes = b""
    detail: str = ""


class BaseEncoderSession(ABC):
    """A single running encode of one stream.

    Events arrive strictly in order: zero or more ``data`` events, then one
    ``stop`` or ``error`` event, after which the iterator ends.
    """

    @property
    @abstractmethod
    def state(self) -> str:
        """``"recording"`` or ``"inactive"``."""

    @abstractmethod
    def stop(self) -> None:
        """Ask the encoder to flush and finish; completion arrives as an event."""

    @abstractmethod
    def events(self) -> AsyncIterator[EncoderEvent]:
        """Iterate over this session's events."""


class BaseEncoder(ABC):
    """Capability query plus session factory."""

    @abstractmethod
    def is_type_supported(self, mime_type: str) -> bool:
        """Whether this encoder can produce ``mime_type``."""

    @abstractmethod
    def start(
        self,
        stream: MediaStream,
        *,
        mime_type: str,
        video_bits_per_second: int,
        timeslice_ms: int,
    ) -> BaseEncoderSession:
        """Begin encoding ``stream``; raises ``EncoderError`` if it cannot."""


class QueueEncoderSession(BaseEncoderSession):
    """Encoder session backed by an ``asyncio.Queue``.

    Adapters push chunks with ``emit_data()`` and failures with
    ``emit_error()``; ``stop()`` enqueues the final ``stop`` event once.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[EncoderEvent] = asyncio.Queue()
        self._state = "recording"

    @property
    def state(self) -> str:
        return self._state

    def emit_data(self, data: bytes) -> None:
        if self._state != "recording":
            logger.debug("Dropping %d bytes emitted after stop", len(data))
            return
        self._queue.put_nowait(EncoderEvent(EncoderEventType.data, data=data))

    def emit_error(self, detail: str = "") -> None:
        if self._state != "recording":
            return
        self._state = "inactive"
        self._queue.put_nowait(EncoderEvent(EncoderEventType.error, detail=detail))

    def stop(self) -> None:
        if self._state != "recording":
            return
        self._state = "inactive"
        self._queue.put_nowait(EncoderEvent(EncoderEventType.stop))

    async def events(self) -> AsyncIterator[EncoderEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.type != EncoderEventType.data:
                return


# ---------------------------------------------------------------------------
# Artifact
# ---------------------------------------------------------------------------


@dataclass
class RecordedArtifact:
    """A finalized recording ready for preview or upload."""

    data: bytes
    mime_type: str
    preview_url: str | None = None
    duration: int = 0  # whole seconds counted by the recorder timer
    chunk_count: int = field(default=0, repr=False)

    @property
    def size(self) -> int:
        return len(self.data)
