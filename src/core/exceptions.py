"""
Rehearse exception hierarchy.

All application-specific exceptions inherit from RehearseError, so callers
can render any failure from the capture, upload, or HTTP layers uniformly.
"""

from src.core.utils import utc_now_iso


class RehearseError(Exception):
    """Base exception for all Rehearse errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "REHEARSE_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = utc_now_iso()
        super().__init__(detail)


# ---------------------------------------------------------------------------
# Media devices
# ---------------------------------------------------------------------------


class MediaAccessError(RehearseError):
    """Raised by a device layer when camera/microphone acquisition fails."""

    def __init__(self, detail: str = "Failed to access media devices") -> None:
        super().__init__(detail=detail, code="MEDIA_ACCESS_ERROR", status_code=500)


class PermissionDeniedError(MediaAccessError):
    """The user or platform refused camera/microphone access."""


class DeviceNotFoundError(MediaAccessError):
    """No camera or microphone is attached."""


class DeviceBusyError(MediaAccessError):
    """The device is held by another application."""


class OverconstrainedError(MediaAccessError):
    """No device satisfies the requested constraints."""


class EncoderError(RehearseError):
    """Raised when the media encoder cannot start or fails mid-recording."""

    def __init__(self, detail: str = "Failed to start recording.") -> None:
        super().__init__(detail=detail, code="ENCODER_ERROR", status_code=500)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class APIError(RehearseError):
    """Normalized failure of a backend call.

    ``status`` is the HTTP status code, or 0 when no response was received.
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        timestamp: str | None = None,
        code: str = "API_ERROR",
    ) -> None:
        super().__init__(detail=message, code=code, status_code=status)
        if timestamp:
            self.timestamp = timestamp

    @property
    def message(self) -> str:
        return self.detail

    @property
    def status(self) -> int:
        return self.status_code

    def to_dict(self) -> dict:
        return {"message": self.message, "status": self.status, "timestamp": self.timestamp}


class NetworkUnreachableError(APIError):
    """No response was received from the server."""

    def __init__(self, message: str = "Network error. Please check your internet connection.") -> None:
        super().__init__(message=message, status=0, code="NETWORK_ERROR")


class SessionExpiredError(APIError):
    """401 from the backend; the token has already been evicted."""

    def __init__(self, message: str = "Session expired", timestamp: str | None = None) -> None:
        super().__init__(message=message, status=401, timestamp=timestamp, code="SESSION_EXPIRED")


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class TicketExpiredError(RehearseError):
    """Presigned upload URL is expired, already used, or rejected by storage."""

    def __init__(
        self, detail: str = "Upload URL expired or invalid. Please try recording again."
    ) -> None:
        super().__init__(detail=detail, code="TICKET_EXPIRED", status_code=403)


class UploadRejectedError(RehearseError):
    """Storage refused the object (usually a content-type mismatch)."""

    def __init__(
        self, detail: str = "Upload rejected by storage. Content type may be incorrect."
    ) -> None:
        super().__init__(detail=detail, code="UPLOAD_REJECTED", status_code=400)


# ---------------------------------------------------------------------------
# Interview
# ---------------------------------------------------------------------------


class ValidationError(RehearseError):
    """Client-side validation failed before any request was sent."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail=detail, code="VALIDATION_ERROR", status_code=422)


class FeedbackPendingError(RehearseError):
    """Feedback for the interview is still being generated."""

    def __init__(
        self, detail: str = "Feedback is still being generated. Please try again shortly."
    ) -> None:
        super().__init__(detail=detail, code="FEEDBACK_PENDING", status_code=202)


class InterviewFailedError(RehearseError):
    """The backend moved the interview to FAILED."""

    def __init__(self, interview_id: int) -> None:
        super().__init__(
            detail=f"Interview {interview_id} failed. Please start a new interview.",
            code="INTERVIEW_FAILED",
            status_code=500,
        )


class InterviewNotReadyError(RehearseError):
    """Avatar generation did not finish within the polling window."""

    def __init__(self, interview_id: int, timeout: float) -> None:
        super().__init__(
            detail=f"Interview {interview_id} was not ready after {timeout:.0f}s",
            code="INTERVIEW_NOT_READY",
            status_code=504,
        )


class InterviewSessionActiveError(RehearseError):
    """Raised when trying to start a session while one is already active."""

    def __init__(self) -> None:
        super().__init__(
            detail="An interview session is already active",
            code="SESSION_ALREADY_ACTIVE",
            status_code=409,
        )
