"""Interview lifecycle calls: start, poll, complete, history, feedback."""

import asyncio
import logging

from src.client.api_client import APIClient
from src.core.config import get_settings
from src.core.exceptions import (
    FeedbackPendingError,
    InterviewFailedError,
    InterviewNotReadyError,
    ValidationError,
)
from src.core.models import (
    FeedbackStatus,
    InterviewDTO,
    InterviewFeedback,
    InterviewStatus,
    JobRole,
    StartInterviewRequest,
)
from src.core.validators import validate_interview_start

logger = logging.getLogger(__name__)

# Avatar videos are still being rendered in these states
_PREPARING = (InterviewStatus.created, InterviewStatus.generating_videos)


class InterviewService:
    """Facade over ``/api/interviews`` and ``/api/job-roles``."""

    def __init__(self, api: APIClient) -> None:
        self._api = api

    async def list_job_roles(self) -> list[JobRole]:
        resp = await self._api.get("/api/job-roles")
        return [JobRole.model_validate(item) for item in resp.json()]

    async def start_interview(self, resume_id: int | None, job_role_id: int | None) -> InterviewDTO:
        """POST /api/interviews/start.

        The returned interview is usually GENERATING_VIDEOS; poll with
        ``wait_until_ready()`` before showing the first question.

        Raises:
            ValidationError: If either id is missing (no request is sent).
        """
        error = validate_interview_start(resume_id, job_role_id)
        if error:
            raise ValidationError(error)

        body = StartInterviewRequest(resume_id=resume_id, job_role_id=job_role_id)
        resp = await self._api.post("/api/interviews/start", json=body.to_wire())
        interview = InterviewDTO.model_validate(resp.json())
        logger.info(
            "Started interview %s (status=%s)", interview.interview_id, interview.status
        )
        return interview

    async def get_interview(self, interview_id: int) -> InterviewDTO:
        resp = await self._api.get(f"/api/interviews/{interview_id}")
        return InterviewDTO.model_validate(resp.json())

    async def complete_interview(self, interview_id: int) -> None:
        """Move IN_PROGRESS -> PROCESSING; feedback is generated asynchronously."""
        await self._api.post(f"/api/interviews/{interview_id}/complete")
        logger.info("Interview %s submitted for feedback", interview_id)

    async def get_interview_history(self) -> list[InterviewDTO]:
        resp = await self._api.get("/api/interviews/history")
        return [InterviewDTO.model_validate(item) for item in resp.json()]

    async def get_feedback(self, interview_id: int) -> InterviewFeedback:
        """GET the generated feedback.

        Raises:
            FeedbackPendingError: Backend answered 202 or reports PROCESSING.
        """
        resp = await self._api.get(f"/api/interviews/{interview_id}/feedback")
        if resp.status_code == 202:
            raise FeedbackPendingError()
        feedback = InterviewFeedback.model_validate(resp.json())
        if feedback.status == FeedbackStatus.processing:
            raise FeedbackPendingError()
        return feedback

    async def wait_until_ready(
        self,
        interview_id: int,
        interval: float | None = None,
        timeout: float | None = None,
    ) -> InterviewDTO:
        """Poll until avatar generation is done.

        Args:
            interview_id: Interview to watch.
            interval: Seconds between polls (``settings.interview_poll_interval``).
            timeout: Give up after this many seconds (``settings.interview_poll_timeout``).

        Returns:
            The first snapshot whose status is past GENERATING_VIDEOS.

        Raises:
            InterviewFailedError: The backend reports FAILED.
            InterviewNotReadyError: Still preparing when ``timeout`` elapses.
        """
        settings = get_settings()
        interval = interval if interval is not None else settings.interview_poll_interval
        timeout = timeout if timeout is not None else settings.interview_poll_timeout

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_status: InterviewStatus | None = None

        while True:
            interview = await self.get_interview(interview_id)
            status = interview.status

            if last_status is not None and not last_status.can_reach(status):
                logger.warning(
                    "Interview %s went backwards: %s -> %s", interview_id, last_status, status
                )
            if status != last_status:
                logger.debug(
                    "Interview %s: %s (%d/%d avatars ready)",
                    interview_id,
                    status,
                    interview.avatars_ready,
                    len(interview.questions),
                )
            last_status = status

            if status == InterviewStatus.failed:
                raise InterviewFailedError(interview_id)
            if status not in _PREPARING:
                return interview
            if loop.time() + interval > deadline:
                raise InterviewNotReadyError(interview_id, timeout)
            await asyncio.sleep(interval)
