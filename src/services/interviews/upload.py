"""Presigned-URL upload of recorded answers.

Flow for one answer::

    ticket = await coordinator.request_ticket(interview_id, question_id)   # GET  /upload-url
    await coordinator.upload(ticket, data, content_type)                    # PUT  <presigned URL>
    await coordinator.confirm(interview_id, ConfirmUploadRequest(...))     # POST /confirm-upload

``submit()`` runs all three and replaces a ticket that expired on the way.
The PUT goes straight to object storage on a separate client that never
carries the bearer token; presigned URLs authenticate through their query
string and storage rejects a second auth mechanism.
"""

import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.client.api_client import APIClient
from src.core.config import get_settings
from src.core.exceptions import (
    APIError,
    NetworkUnreachableError,
    TicketExpiredError,
    UploadRejectedError,
)
from src.core.models import (
    ConfirmUploadRequest,
    ConfirmUploadResponse,
    PresignedUrlResponse,
    SubmitResponseResult,
)
from src.core.utils import progress_percent
from src.services.media.base import RecordedArtifact
from src.services.media.mime import DEFAULT_VIDEO_TYPE

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

_UPLOAD_CHUNK_SIZE = 256 * 1024


@dataclass
class UploadTicket:
    """Short-lived, single-use permission to PUT one object."""

    upload_url: str
    s3_key: str
    expires_in_seconds: int
    issued_at: float = field(default_factory=time.monotonic)
    consumed: bool = False

    @classmethod
    def from_response(
        cls, response: PresignedUrlResponse, issued_at: float | None = None
    ) -> "UploadTicket":
        return cls(
            upload_url=response.upload_url,
            s3_key=response.s3_key,
            expires_in_seconds=response.expires_in_seconds,
            issued_at=issued_at if issued_at is not None else time.monotonic(),
        )

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.expires_in_seconds

    def is_expired(self, now: float, margin: float = 0.0) -> bool:
        return now >= self.expires_at - margin

    def consume(self, now: float, margin: float = 0.0) -> str:
        """Claim the URL for one transfer.

        Raises:
            TicketExpiredError: If already consumed or past expiry.
        """
        if self.consumed:
            raise TicketExpiredError("Upload URL has already been used.")
        if self.is_expired(now, margin):
            raise TicketExpiredError()
        self.consumed = True
        return self.upload_url


class UploadCoordinator:
    """Moves a recorded answer from memory to object storage and confirms it.

    Args:
        api: Authenticated backend client.
        storage_transport: Optional transport for the storage client (tests).
        clock: Monotonic time source used for ticket expiry.
        retry_backoff: Multiplier for the exponential wait between PUT retries.
    """

    def __init__(
        self,
        api: APIClient,
        storage_transport: httpx.AsyncBaseTransport | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        retry_backoff: float = 0.5,
    ) -> None:
        settings = get_settings()
        self._api = api
        self._clock = clock
        self._retry_backoff = retry_backoff
        self._expiry_margin = settings.upload_url_expiry_margin
        self._max_attempts = settings.upload_max_attempts
        self._ticket_attempts = settings.upload_ticket_attempts
        self._legacy_timeout = settings.legacy_upload_timeout
        # No timeout: large videos may take a while on slow connections
        self._storage = httpx.AsyncClient(timeout=None, transport=storage_transport)

    async def request_ticket(
        self,
        interview_id: int,
        question_id: int,
        content_type: str = DEFAULT_VIDEO_TYPE,
    ) -> UploadTicket:
        """GET a presigned PUT URL scoped to this question's answer."""
        resp = await self._api.get(
            f"/api/interviews/{interview_id}/upload-url",
            params={"questionId": question_id, "contentType": content_type},
        )
        ticket = UploadTicket.from_response(
            PresignedUrlResponse.model_validate(resp.json()), issued_at=self._clock()
        )
        logger.debug(
            "Issued upload ticket %s (expires in %ss)", ticket.s3_key, ticket.expires_in_seconds
        )
        return ticket

    async def upload(
        self,
        ticket: UploadTicket,
        data: bytes,
        content_type: str = DEFAULT_VIDEO_TYPE,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """PUT ``data`` to the ticket's URL.

        Transport failures are retried while the ticket is still valid.

        Raises:
            TicketExpiredError: Ticket used, expired, or rejected with 403.
            UploadRejectedError: Storage answered 400.
            NetworkUnreachableError: Storage unreachable after all retries.
        """
        url = ticket.consume(self._clock(), self._expiry_margin)
        headers = {"Content-Type": content_type, "Content-Length": str(len(data))}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=self._retry_backoff, max=8),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    if ticket.is_expired(self._clock(), self._expiry_margin):
                        raise TicketExpiredError()
                    resp = await self._storage.put(
                        url,
                        content=_iter_body(data, on_progress),
                        headers=headers,
                    )
        except httpx.TransportError as exc:
            logger.error("Upload of %s failed: %s", ticket.s3_key, exc)
            raise NetworkUnreachableError() from None

        if resp.status_code == 403:
            raise TicketExpiredError()
        if resp.status_code == 400:
            raise UploadRejectedError()
        if not resp.is_success:
            raise APIError("Failed to upload video to storage.", status=resp.status_code)
        logger.info("Uploaded %d bytes to %s", len(data), ticket.s3_key)

    async def confirm(
        self, interview_id: int, request: ConfirmUploadRequest
    ) -> ConfirmUploadResponse:
        """Tell the backend the object exists so it records and transcribes it."""
        resp = await self._api.post(
            f"/api/interviews/{interview_id}/confirm-upload",
            json=request.to_wire(),
        )
        return ConfirmUploadResponse.model_validate(resp.json())

    async def submit(
        self,
        interview_id: int,
        question_id: int,
        artifact: RecordedArtifact,
        on_progress: ProgressCallback | None = None,
    ) -> ConfirmUploadResponse:
        """Run ticket -> PUT -> confirm for one recorded answer.

        An expired ticket is discarded and a new one requested, up to
        ``settings.upload_ticket_attempts`` tickets in total.
        """
        content_type = artifact.mime_type or DEFAULT_VIDEO_TYPE

        for attempt in range(1, self._ticket_attempts + 1):
            ticket = await self.request_ticket(interview_id, question_id, content_type)
            try:
                await self.upload(ticket, artifact.data, content_type, on_progress)
                break
            except TicketExpiredError:
                if attempt >= self._ticket_attempts:
                    raise
                logger.warning(
                    "Upload ticket %s expired (attempt %d/%d); requesting a new one",
                    ticket.s3_key,
                    attempt,
                    self._ticket_attempts,
                )

        request = ConfirmUploadRequest(
            question_id=question_id,
            s3_key=ticket.s3_key,
            content_type=content_type,
            video_duration=artifact.duration or None,
        )
        return await self.confirm(interview_id, request)

    async def submit_legacy(
        self,
        interview_id: int,
        question_id: int,
        artifact: RecordedArtifact,
    ) -> SubmitResponseResult:
        """Deprecated multipart upload proxied through the backend.

        Prefer ``submit()``; kept for backends without presigned URLs.
        """
        content_type = artifact.mime_type or DEFAULT_VIDEO_TYPE
        resp = await self._api.post(
            f"/api/interviews/{interview_id}/response",
            params={"questionId": question_id},
            files={"video": (f"response_{question_id}.webm", artifact.data, content_type)},
            timeout=self._legacy_timeout,
        )
        return SubmitResponseResult.model_validate(resp.json())

    async def aclose(self) -> None:
        await self._storage.aclose()


async def _iter_body(
    data: bytes, on_progress: ProgressCallback | None
) -> AsyncIterator[bytes]:
    total = len(data)
    sent = 0
    for offset in range(0, total, _UPLOAD_CHUNK_SIZE):
        chunk = data[offset : offset + _UPLOAD_CHUNK_SIZE]
        yield chunk
        sent += len(chunk)
        if on_progress is not None:
            on_progress(progress_percent(sent, total))
    if total == 0 and on_progress is not None:
        on_progress(100)
