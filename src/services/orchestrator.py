"""Interview session orchestrator.

Ties one recorder and one upload coordinator to an interview so each
question is answered as record -> stop -> upload -> confirm. A singleton
``InterviewSession`` ensures the camera is driven by one interview at a time.

Usage::

    from src.services.orchestrator import start_session, stop_session

    session = await start_session(interview, recorder, uploader)
    question = session.next_question()
    task = asyncio.create_task(session.answer(question.question_id))
    ...
    await session.finish_answer()      # or let max_duration stop it
    result = await task
    await stop_session()
"""

import logging

from src.core.config import get_settings
from src.core.exceptions import (
    EncoderError,
    InterviewSessionActiveError,
    MediaAccessError,
    ValidationError,
)
from src.core.models import ConfirmUploadResponse, InterviewDTO, InterviewQuestion
from src.core.validators import validate_video_file
from src.services.interviews.upload import ProgressCallback, UploadCoordinator
from src.services.media.base import RecordedArtifact
from src.services.media.recorder import VideoRecorder

logger = logging.getLogger(__name__)


class InterviewSession:
    """Runs the answer loop for one interview.

    Args:
        interview: Snapshot with the question list (normally IN_PROGRESS).
        recorder: Recorder owning the camera for this session.
        uploader: Presigned upload flow for finished answers.
        on_progress: Upload progress callback, 0-100.
    """

    def __init__(
        self,
        interview: InterviewDTO,
        recorder: VideoRecorder,
        uploader: UploadCoordinator,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.interview = interview
        # None marks questions the backend already had answers for
        self.answered: dict[int, ConfirmUploadResponse | None] = {
            q.question_id: None for q in interview.questions if q.answered
        }
        self.current_question_id: int | None = None
        self._recorder = recorder
        self._uploader = uploader
        self._on_progress = on_progress
        self._max_duration = get_settings().max_recording_duration

    @property
    def interview_id(self) -> int:
        return self.interview.interview_id

    @property
    def recorder(self) -> VideoRecorder:
        return self._recorder

    @property
    def is_complete(self) -> bool:
        return self.next_question() is None

    def next_question(self) -> InterviewQuestion | None:
        """First unanswered question in ``question_number`` order."""
        for question in sorted(self.interview.questions, key=lambda q: q.question_number):
            if question.question_id not in self.answered:
                return question
        return None

    async def answer(
        self, question_id: int, max_duration: int | None = None
    ) -> ConfirmUploadResponse:
        """Record an answer and upload it.

        Returns once the recording stops (``finish_answer()`` or the duration
        ceiling) and the upload is confirmed.

        Raises:
            ValidationError: Unknown question or unacceptable recording.
            MediaAccessError: The camera could not be started.
            EncoderError: The recording ended in an error.
        """
        if not any(q.question_id == question_id for q in self.interview.questions):
            raise ValidationError(f"Question {question_id} is not part of this interview")

        self.current_question_id = question_id
        try:
            artifact = await self._record(max_duration or self._max_duration)
            error = validate_video_file(artifact.size, artifact.mime_type)
            if error:
                raise ValidationError(error)

            result = await self._uploader.submit(
                self.interview_id, question_id, artifact, self._on_progress
            )
        finally:
            self.current_question_id = None

        self.answered[question_id] = result
        logger.info(
            "Interview %s: question %s answered (%d/%d)",
            self.interview_id,
            question_id,
            len(self.answered),
            len(self.interview.questions),
        )
        return result

    async def finish_answer(self) -> RecordedArtifact | None:
        """Stop the answer being recorded; ``answer()`` then uploads it."""
        return await self._recorder.stop_recording()

    async def stop(self) -> None:
        await self._recorder.close()
        await self._uploader.aclose()

    async def _record(self, max_duration: int) -> RecordedArtifact:
        if not await self._recorder.start_recording(max_duration):
            raise MediaAccessError(
                self._recorder.error or "Recording was cancelled before it started."
            )
        artifact = await self._recorder.wait_for_stop()
        if artifact is None:
            raise EncoderError(self._recorder.error or "Recording produced no video.")
        return artifact


# ---------------------------------------------------------------------------
# Module-level singleton management
# ---------------------------------------------------------------------------

_active_session: InterviewSession | None = None


async def start_session(
    interview: InterviewDTO,
    recorder: VideoRecorder,
    uploader: UploadCoordinator,
    on_progress: ProgressCallback | None = None,
) -> InterviewSession:
    """Create and register the interview session.

    Raises:
        InterviewSessionActiveError: If a session is already running.
    """
    global _active_session
    if _active_session is not None:
        raise InterviewSessionActiveError()

    session = InterviewSession(interview, recorder, uploader, on_progress=on_progress)
    _active_session = session
    logger.info("Started session for interview %s", interview.interview_id)
    return session


async def stop_session() -> None:
    """Stop the active session and release the camera."""
    global _active_session
    if _active_session is None:
        return
    session = _active_session
    _active_session = None
    await session.stop()
    logger.info("Stopped session for interview %s", session.interview_id)


def get_active_session() -> InterviewSession | None:
    """Return the currently active session, or None."""
    return _active_session


async def cleanup() -> None:
    """Force-stop the active session (called on shutdown)."""
    await stop_session()
