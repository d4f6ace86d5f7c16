"""Unit tests for the VideoRecorder state machine.

Covers stream ownership across restarts, the duration ceiling, chunk
assembly, preview-reference lifetime, and start/encoder failure handling.
"""

import asyncio

import pytest

from src.core.exceptions import EncoderError, PermissionDeniedError
from src.services.media import create_recorder
from src.services.media.preview import PreviewRegistry
from src.services.media.recorder import (
    RECORDING_ERROR_MESSAGE,
    RecorderState,
    VideoRecorder,
)
from tests.conftest import BrowserMediaError, FakeEncoder, FakeMediaDevices

TICK = 0.01


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
async def recorder(devices, encoder):
    rec = VideoRecorder(devices, encoder, tick_interval=TICK)
    yield rec
    await rec.close()


class GuardedPreviews(PreviewRegistry):
    """Fails the test if the recorder's current preview is revoked."""

    def __init__(self) -> None:
        super().__init__()
        self.recorder: VideoRecorder | None = None
        self.revoked: list[str] = []

    def revoke(self, ref: str) -> None:
        assert self.recorder is None or ref != self.recorder.preview_url
        self.revoked.append(ref)
        super().revoke(ref)


# ---------------------------------------------------------------------------
# Stream ownership
# ---------------------------------------------------------------------------


class TestStreamOwnership:
    """At most one live device stream at any time."""

    async def test_restart_keeps_single_live_stream(self, recorder, devices):
        """Each start replaces the previous stream rather than adding one."""
        for _ in range(4):
            assert await recorder.start_recording()
            assert devices.live_streams == 1

        assert len(devices.streams) == 4

    async def test_stop_releases_stream(self, recorder, devices):
        """Stopping ends every track of the stream."""
        await recorder.start_recording()
        await recorder.stop_recording()

        assert devices.live_streams == 0
        assert all(t.ready_state == "ended" for t in devices.streams[0].get_tracks())

    async def test_stop_when_idle_is_noop(self, devices, encoder):
        """stop_recording() before any start neither raises nor acquires."""
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)

        assert await rec.stop_recording() is None
        assert devices.streams == []
        assert rec.state == RecorderState.idle

    async def test_stop_during_start_cancels_it(self, devices, encoder):
        """A stop issued while the device is being acquired wins."""
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)
        start = asyncio.create_task(rec.start_recording())
        await asyncio.sleep(0)
        assert rec.state == RecorderState.starting

        assert await rec.stop_recording() is None
        assert await start is False

        assert rec.state == RecorderState.idle
        assert rec.error is None
        assert devices.live_streams == 0
        assert encoder.sessions == []

    async def test_close_during_start_releases_stream(self, devices, encoder):
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)
        start = asyncio.create_task(rec.start_recording())
        await asyncio.sleep(0)

        await rec.close()

        assert await start is False
        assert devices.live_streams == 0
        assert encoder.sessions == []

    async def test_concurrent_starts_hold_one_stream(self, devices, encoder):
        """Overlapping starts run one after the other."""
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)

        results = await asyncio.gather(rec.start_recording(), rec.start_recording())

        assert results == [True, True]
        assert len(devices.streams) == 2
        assert devices.live_streams == 1
        assert encoder.sessions[0].state == "inactive"
        assert rec.is_recording

        await rec.close()

        assert devices.live_streams == 0

    async def test_repeated_stop_returns_same_artifact(self, recorder, encoder):
        """A second stop after finalization is harmless."""
        await recorder.start_recording()
        encoder.session.emit_data(b"abc")
        first = await recorder.stop_recording()
        second = await recorder.stop_recording()

        assert first is second
        assert recorder.stop_count == 1

    async def test_close_releases_everything(self, devices, encoder):
        """close() stops the encoder and the stream mid-recording."""
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)
        await rec.start_recording()

        await rec.close()

        assert devices.live_streams == 0
        assert encoder.session.state == "inactive"

    async def test_async_context_manager_closes(self, devices, encoder):
        """Leaving the context releases the stream."""
        async with VideoRecorder(devices, encoder, tick_interval=TICK) as rec:
            await rec.start_recording()
            assert devices.live_streams == 1

        assert devices.live_streams == 0


# ---------------------------------------------------------------------------
# Duration ceiling
# ---------------------------------------------------------------------------


class TestMaxDuration:
    """Auto-stop when the timer reaches max_duration."""

    async def test_auto_stop_after_five_ticks(self, recorder, encoder, devices):
        """start_recording(5) stops itself exactly once with an artifact."""
        assert await recorder.start_recording(max_duration=5)
        encoder.session.emit_data(b"chunk")

        artifact = await asyncio.wait_for(recorder.wait_for_stop(), timeout=2)

        assert artifact is not None
        assert recorder.recording_time >= 5
        assert recorder.stop_count == 1
        assert recorder.state == RecorderState.stopped
        assert devices.live_streams == 0
        assert artifact.duration == recorder.recording_time

    async def test_no_ceiling_keeps_recording(self, recorder):
        """Without max_duration the timer only counts."""
        await recorder.start_recording()
        await asyncio.sleep(TICK * 8)

        assert recorder.is_recording
        assert recorder.recording_time >= 3

    async def test_manual_stop_before_ceiling(self, recorder, encoder):
        """A manual stop wins and the timer never fires a second stop."""
        await recorder.start_recording(max_duration=50)
        encoder.session.emit_data(b"x")
        await recorder.stop_recording()
        await asyncio.sleep(TICK * 5)

        assert recorder.stop_count == 1
        assert recorder.recording_time < 50

    async def test_restart_cancels_previous_timer(self, recorder):
        """A new recording restarts the elapsed counter from zero."""
        await recorder.start_recording()
        await asyncio.sleep(TICK * 5)
        await recorder.start_recording()

        assert recorder.recording_time == 0


# ---------------------------------------------------------------------------
# Artifact assembly
# ---------------------------------------------------------------------------


class TestArtifact:
    """Chunk accumulation and MIME tagging."""

    async def test_chunks_concatenated_in_order(self, recorder, encoder):
        """Non-empty chunks are joined; empty ones are skipped."""
        await recorder.start_recording()
        for chunk in (b"ab", b"", b"cd", b"e"):
            encoder.session.emit_data(chunk)

        artifact = await recorder.stop_recording()

        assert artifact.data == b"abcde"
        assert artifact.chunk_count == 3
        assert artifact.size == 5

    async def test_data_after_stop_is_dropped(self, recorder, encoder):
        """Chunks emitted after stop never reach the artifact."""
        await recorder.start_recording()
        session = encoder.session
        session.emit_data(b"keep")
        artifact = await recorder.stop_recording()
        session.emit_data(b"late")

        assert artifact.data == b"keep"

    async def test_artifact_uses_negotiated_type(self, devices):
        """The encoder's best supported type tags the artifact."""
        enc = FakeEncoder(supported={"video/mp4"})
        rec = VideoRecorder(devices, enc, tick_interval=TICK)
        await rec.start_recording()

        artifact = await rec.stop_recording()

        assert artifact.mime_type == "video/mp4"
        assert enc.started_with == ["video/mp4"]

    async def test_fallback_type_when_nothing_supported(self, devices):
        """No supported candidate means plain video/webm."""
        rec = VideoRecorder(devices, FakeEncoder(supported=()), tick_interval=TICK)
        await rec.start_recording()

        artifact = await rec.stop_recording()

        assert artifact.mime_type == "video/webm"

    async def test_on_stop_called_once(self, devices, encoder):
        """The stop callback receives the finalized artifact."""
        seen = []
        rec = create_recorder(devices, encoder, tick_interval=TICK, on_stop=seen.append)
        await rec.start_recording(max_duration=2)
        artifact = await rec.wait_for_stop()

        assert seen == [artifact]

    async def test_failing_on_stop_keeps_artifact(self, devices, encoder):
        """An exception from the stop callback does not discard the take."""

        def explode(artifact):
            raise RuntimeError("listener bug")

        rec = VideoRecorder(devices, encoder, tick_interval=TICK, on_stop=explode)
        await rec.start_recording()
        encoder.session.emit_data(b"take")

        artifact = await rec.stop_recording()

        assert artifact.data == b"take"
        assert rec.state == RecorderState.stopped
        assert rec.error is None
        assert rec.stop_count == 1
        assert devices.live_streams == 0

    async def test_start_clears_previous_artifact(self, recorder, encoder):
        """A new start discards the last artifact."""
        await recorder.start_recording()
        await recorder.stop_recording()
        await recorder.start_recording()

        assert recorder.recorded is None
        assert recorder.preview_url is None


# ---------------------------------------------------------------------------
# Preview references
# ---------------------------------------------------------------------------


class TestPreviewLifetime:
    """Preview references outlive their recording until replaced."""

    async def test_preview_registered_on_stop(self, recorder):
        """The artifact's preview resolves to its bytes."""
        await recorder.start_recording()
        artifact = await recorder.stop_recording()

        assert artifact.preview_url.startswith("blob:")
        assert recorder.previews.resolve(artifact.preview_url) == (artifact.data, artifact.mime_type)

    async def test_previous_preview_revoked_not_current(self, devices, encoder):
        """Only superseded references are revoked."""
        previews = GuardedPreviews()
        rec = VideoRecorder(devices, encoder, previews=previews, tick_interval=TICK)
        previews.recorder = rec

        await rec.start_recording()
        first = (await rec.stop_recording()).preview_url
        await rec.start_recording()
        second = (await rec.stop_recording()).preview_url

        assert previews.revoked == [first]
        assert second in previews
        assert first not in previews
        await rec.close()

    async def test_close_keeps_preview(self, devices, encoder):
        """Teardown leaves the preview for the host to release."""
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)
        await rec.start_recording()
        ref = (await rec.stop_recording()).preview_url

        await rec.close()

        assert ref in rec.previews


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestStartFailures:
    """start_recording() reports failures through ``error``."""

    @pytest.mark.parametrize(
        "exc, message",
        [
            (PermissionDeniedError(), "Camera and microphone access was denied."),
            (BrowserMediaError("NotAllowedError"), "Camera and microphone access was denied."),
            (BrowserMediaError("NotFoundError"), "No camera or microphone found."),
            (BrowserMediaError("NotReadableError"), "Camera or microphone is already in use."),
            (BrowserMediaError("AbortError", "Capture aborted"), "Capture aborted"),
        ],
    )
    async def test_device_failure_messages(self, encoder, exc, message):
        """Each failure kind yields its message and leaves the recorder idle."""
        devices = FakeMediaDevices(error=exc)
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)

        assert await rec.start_recording() is False
        assert rec.error == message
        assert rec.state == RecorderState.idle
        assert encoder.sessions == []

    async def test_encoder_start_failure_releases_stream(self, devices):
        """A failing encoder never leaves the camera on."""
        rec = VideoRecorder(devices, FakeEncoder(error=EncoderError()), tick_interval=TICK)

        assert await rec.start_recording() is False
        assert rec.error == "Failed to start recording."
        assert devices.live_streams == 0

    async def test_error_event_returns_to_idle(self, recorder, encoder, devices):
        """An encoder error mid-recording discards the take."""
        await recorder.start_recording()
        encoder.session.emit_data(b"partial")
        encoder.session.emit_error("disk full")

        artifact = await asyncio.wait_for(recorder.wait_for_stop(), timeout=1)

        assert artifact is None
        assert recorder.error == RECORDING_ERROR_MESSAGE
        assert recorder.state == RecorderState.idle
        assert devices.live_streams == 0
        assert recorder.stop_count == 0

    async def test_retry_after_failure_clears_error(self, encoder):
        """A successful start after a failure resets ``error``."""
        devices = FakeMediaDevices(error=BrowserMediaError("NotFoundError"))
        rec = VideoRecorder(devices, encoder, tick_interval=TICK)
        await rec.start_recording()

        devices.error = None
        assert await rec.start_recording()
        assert rec.error is None
        await rec.close()
