"""Video recording state machine.

Owns the device stream for the lifetime of one recording, accumulates the
encoder's timesliced chunks, enforces an optional duration ceiling with a
1-second timer, and assembles the final ``RecordedArtifact``.

States: idle -> starting -> recording -> stopping -> stopped

Starts are serialized; a stop or close issued while a start is still
acquiring the device cancels that start.

Finalization is driven by the encoder's own ``stop`` event, never by the
caller of ``stop_recording()``; callers await the per-session completion
future instead.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from enum import StrEnum

from src.core.config import get_settings
from src.core.exceptions import EncoderError
from src.services.media.base import (
    BaseEncoder,
    BaseEncoderSession,
    BaseMediaDevices,
    DeviceErrorKind,
    EncoderEventType,
    MediaConstraints,
    MediaStream,
    RecordedArtifact,
    VideoConstraints,
    classify_device_error,
)
from src.services.media.mime import SUPPORTED_VIDEO_TYPES, negotiate_mime_type
from src.services.media.preview import PreviewRegistry

logger = logging.getLogger(__name__)

START_FAILURE_MESSAGES: dict[DeviceErrorKind, str] = {
    DeviceErrorKind.permission_denied: "Camera and microphone access was denied.",
    DeviceErrorKind.not_found: "No camera or microphone found.",
    DeviceErrorKind.busy: "Camera or microphone is already in use.",
}
DEFAULT_START_FAILURE = "Failed to start recording."
RECORDING_ERROR_MESSAGE = "An error occurred during recording."


class RecorderState(StrEnum):
    idle = "idle"
    starting = "starting"  # waiting for the device stream
    recording = "recording"
    stopping = "stopping"  # stop requested, waiting for the encoder's stop event
    stopped = "stopped"  # artifact ready


class ChunkBuffer:
    """Ordered, append-only store of encoded chunks for one recording."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def size(self) -> int:
        """Total buffered bytes."""
        return sum(len(c) for c in self._chunks)

    def add_bytes(self, data: bytes) -> None:
        """Append a chunk; empty chunks are ignored."""
        if data:
            self._chunks.append(bytes(data))

    def assemble(self) -> bytes:
        """Concatenate all chunks in arrival order."""
        return b"".join(self._chunks)

    def reset(self) -> None:
        self._chunks.clear()


class VideoRecorder:
    """Records one answer at a time from a ``BaseMediaDevices`` stream.

    Args:
        devices: Source of camera + microphone streams.
        encoder: Capability probe and chunked encoder.
        previews: Registry issuing revocable preview references.
        tick_interval: Seconds per timer tick (1.0 in production).
        mime_candidates: MIME types in priority order for negotiation.
        on_stop: Called with each finalized artifact.
    """

    def __init__(
        self,
        devices: BaseMediaDevices,
        encoder: BaseEncoder,
        previews: PreviewRegistry | None = None,
        *,
        tick_interval: float = 1.0,
        mime_candidates: Sequence[str] = SUPPORTED_VIDEO_TYPES,
        on_stop: Callable[[RecordedArtifact], None] | None = None,
        close_timeout: float = 2.0,
    ) -> None:
        settings = get_settings()
        self._devices = devices
        self._encoder = encoder
        self._previews = previews if previews is not None else PreviewRegistry()
        self._tick_interval = tick_interval
        self._mime_candidates = tuple(mime_candidates)
        self._on_stop = on_stop
        self._close_timeout = close_timeout
        self._constraints = MediaConstraints(
            video=VideoConstraints(
                width=settings.video_width,
                height=settings.video_height,
                facing_mode=settings.facing_mode,
            ),
            audio=True,
        )
        self._video_bits_per_second = settings.video_bits_per_second
        self._timeslice_ms = settings.chunk_interval_ms

        self.state = RecorderState.idle
        self.recorded: RecordedArtifact | None = None
        self.preview_url: str | None = None
        self.error: str | None = None
        self.recording_time = 0
        self.mime_type: str | None = None
        self.stop_count = 0

        self._buffer = ChunkBuffer()
        self._stream: MediaStream | None = None
        self._session: BaseEncoderSession | None = None
        self._max_duration: int | None = None
        self._completion: asyncio.Future[RecordedArtifact | None] | None = None
        self._pump_task: asyncio.Task | None = None
        self._timer_task: asyncio.Task | None = None
        self._start_lock = asyncio.Lock()
        self._cancel_start = False
        self._start_settled = asyncio.Event()
        self._start_settled.set()

    @property
    def is_recording(self) -> bool:
        return self.state == RecorderState.recording

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start_recording(self, max_duration: int | None = None) -> bool:
        """Begin a new recording, replacing any previous artifact.

        Args:
            max_duration: Hard ceiling in seconds; None records until stopped.

        Returns:
            True if capture started. On False the recorder is idle with no
            stream held, and ``error`` holds the reason unless the start was
            cancelled by ``stop_recording()`` or ``close()``.
        """
        async with self._start_lock:
            self._start_settled.clear()
            try:
                return await self._start(max_duration)
            finally:
                self._start_settled.set()

    async def _start(self, max_duration: int | None) -> bool:
        if self.state in (RecorderState.recording, RecorderState.stopping):
            await self.stop_recording()
        self._cancel_timer()

        self._cancel_start = False
        self.state = RecorderState.starting
        self.error = None
        self.recorded = None
        self.recording_time = 0
        self.mime_type = None
        self._buffer.reset()
        self._max_duration = max_duration
        self._completion = None

        if self.preview_url is not None:
            previous, self.preview_url = self.preview_url, None
            self._previews.revoke(previous)

        try:
            stream = await self._devices.get_user_media(self._constraints)
        except asyncio.CancelledError:
            self.state = RecorderState.idle
            raise
        except Exception as exc:
            kind = classify_device_error(exc)
            self.error = START_FAILURE_MESSAGES.get(kind) or str(exc) or DEFAULT_START_FAILURE
            self.state = RecorderState.idle
            logger.warning("Could not acquire media stream (%s): %s", kind, exc)
            return False

        if self._cancel_start:
            stream.stop_all()
            self.state = RecorderState.idle
            logger.info("Recording start cancelled before capture began")
            return False
        self._stream = stream

        mime_type = negotiate_mime_type(self._encoder.is_type_supported, self._mime_candidates)
        try:
            session = self._encoder.start(
                stream,
                mime_type=mime_type,
                video_bits_per_second=self._video_bits_per_second,
                timeslice_ms=self._timeslice_ms,
            )
        except Exception as exc:
            self._release_stream()
            detail = exc.detail if isinstance(exc, EncoderError) else str(exc)
            self.error = detail or DEFAULT_START_FAILURE
            self.state = RecorderState.idle
            logger.warning("Encoder failed to start for %s: %s", mime_type, exc)
            return False

        self.mime_type = mime_type
        self._session = session
        self._completion = asyncio.get_running_loop().create_future()
        self.state = RecorderState.recording
        self._pump_task = asyncio.create_task(self._pump(session, mime_type, self._completion))
        self._timer_task = asyncio.create_task(self._run_timer())
        logger.info(
            "Recording started (mime=%s, max_duration=%s)", mime_type, max_duration
        )
        return True

    async def stop_recording(self) -> RecordedArtifact | None:
        """Stop capture and wait for the artifact.

        Safe to call in any state: when nothing is recording it only releases
        a held stream and returns the current artifact (possibly None).
        A stop issued while a start is still acquiring the device cancels
        that start and returns None.
        """
        if await self._cancel_pending_start():
            return self.recorded
        self._request_stop()
        self._release_stream()
        self._cancel_timer()

        if self._completion is None:
            return self.recorded
        return await asyncio.shield(self._completion)

    async def wait_for_stop(self) -> RecordedArtifact | None:
        """Wait until the current recording finishes by any path."""
        if self._completion is None:
            return self.recorded
        return await asyncio.shield(self._completion)

    async def close(self) -> None:
        """Tear down: stop the encoder, release tracks, cancel the timer.

        The preview reference stays valid; the host releases it.
        """
        await self._cancel_pending_start()
        if self._session is not None and self._session.state != "inactive":
            self._session.stop()
        self._release_stream()
        self._cancel_timer()

        pump = self._pump_task
        if pump is not None and not pump.done():
            _, pending = await asyncio.wait({pump}, timeout=self._close_timeout)
            for task in pending:
                task.cancel()

    async def __aenter__(self) -> "VideoRecorder":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _cancel_pending_start(self) -> bool:
        if self.state != RecorderState.starting:
            return False
        self._cancel_start = True
        await self._start_settled.wait()
        return True

    def _request_stop(self) -> None:
        session = self._session
        if session is None or session.state == "inactive":
            return
        session.stop()
        self.state = RecorderState.stopping

    async def _pump(
        self,
        session: BaseEncoderSession,
        mime_type: str,
        completion: asyncio.Future,
    ) -> None:
        """Consume encoder events until the session ends."""
        try:
            async for event in session.events():
                if event.type == EncoderEventType.data:
                    self._buffer.add_bytes(event.data)
                elif event.type == EncoderEventType.stop:
                    self._finalize(mime_type)
                    break
                else:
                    self._halt(event.detail)
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Encoder event stream failed")
            self._halt(str(exc))
        finally:
            if not completion.done():
                completion.set_result(self.recorded)

    async def _run_timer(self) -> None:
        """Count whole seconds and enforce the duration ceiling."""
        while True:
            await asyncio.sleep(self._tick_interval)
            if self.state != RecorderState.recording:
                return
            self.recording_time += 1
            if self._max_duration and self.recording_time >= self._max_duration:
                logger.info("Max duration of %ss reached, stopping", self._max_duration)
                self._request_stop()
                return

    def _finalize(self, mime_type: str) -> None:
        data = self._buffer.assemble()
        ref = self._previews.create(data, mime_type)
        self.recorded = RecordedArtifact(
            data=data,
            mime_type=mime_type,
            preview_url=ref,
            duration=self.recording_time,
            chunk_count=self._buffer.chunk_count,
        )
        self.preview_url = ref
        self._session = None
        self._cancel_timer()
        self._release_stream()
        self.state = RecorderState.stopped
        self.stop_count += 1
        logger.info(
            "Recording finalized: %d bytes in %d chunks, %ss",
            len(data),
            self._buffer.chunk_count,
            self.recording_time,
        )
        if self._on_stop is not None:
            try:
                self._on_stop(self.recorded)
            except Exception:
                logger.exception("on_stop callback failed")

    def _halt(self, detail: str) -> None:
        logger.warning("Recording error: %s", detail or "unknown")
        self.error = RECORDING_ERROR_MESSAGE
        self._session = None
        self._cancel_timer()
        self._release_stream()
        self.state = RecorderState.idle

    def _release_stream(self) -> None:
        if self._stream is not None:
            self._stream.stop_all()
            self._stream = None

    def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
