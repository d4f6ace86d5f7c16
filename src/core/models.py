"""
Pydantic v2 models for the interview backend's REST payloads.

The backend speaks camelCase JSON (``interviewId``, ``s3Key``); models expose
snake_case attributes and accept either spelling on input. Use ``to_wire()``
to build a request body.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for every payload exchanged with the backend."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase keys and unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class User(WireModel):
    id: int
    name: str
    email: str
    created_at: datetime | None = None


class AuthResponse(WireModel):
    """POST /api/auth/login and /register response."""

    token: str
    user_id: int
    name: str
    email: str


class LoginRequest(WireModel):
    email: str
    password: str


class RegisterRequest(WireModel):
    name: str
    email: str
    password: str


class UpdateProfileRequest(WireModel):
    first_name: str | None = None
    last_name: str | None = None


# ---------------------------------------------------------------------------
# Interview lifecycle
# ---------------------------------------------------------------------------


class InterviewStatus(StrEnum):
    """Interview lifecycle state, owned and advanced by the backend.

    ::

        CREATED -> GENERATING_VIDEOS -> IN_PROGRESS -> PROCESSING -> COMPLETED
           |               |                 |              |
           +---------------+-----------------+--------------+----> FAILED
    """

    created = "CREATED"
    generating_videos = "GENERATING_VIDEOS"
    in_progress = "IN_PROGRESS"
    processing = "PROCESSING"
    completed = "COMPLETED"
    failed = "FAILED"

    def is_terminal(self) -> bool:
        return self in (InterviewStatus.completed, InterviewStatus.failed)

    def can_transition(self, target: "InterviewStatus") -> bool:
        """Whether ``target`` is a single legal step from this status."""
        return target in _TRANSITIONS[self]

    def can_reach(self, target: "InterviewStatus") -> bool:
        """Whether ``target`` is this status or lies downstream of it.

        Polling observes snapshots, so intermediate states may be skipped.
        """
        if target == self:
            return True
        return any(step.can_reach(target) for step in _TRANSITIONS[self])


_TRANSITIONS: dict[InterviewStatus, frozenset[InterviewStatus]] = {
    InterviewStatus.created: frozenset(
        {InterviewStatus.generating_videos, InterviewStatus.failed}
    ),
    InterviewStatus.generating_videos: frozenset(
        {InterviewStatus.in_progress, InterviewStatus.failed}
    ),
    InterviewStatus.in_progress: frozenset({InterviewStatus.processing, InterviewStatus.failed}),
    InterviewStatus.processing: frozenset({InterviewStatus.completed, InterviewStatus.failed}),
    InterviewStatus.completed: frozenset(),
    InterviewStatus.failed: frozenset(),
}


class InterviewQuestion(WireModel):
    """A question inside ``InterviewDTO.questions``."""

    question_id: int
    question_number: int
    question_text: str
    category: str = ""
    difficulty: str = ""
    avatar_video_url: str | None = None  # None until the avatar is rendered
    answered: bool = False


class InterviewDTO(WireModel):
    """GET /api/interviews/{id} response."""

    interview_id: int
    status: InterviewStatus
    type: str = "VIDEO"
    job_role_title: str | None = None
    overall_score: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    questions: list[InterviewQuestion] = Field(default_factory=list)

    @property
    def avatars_ready(self) -> int:
        return sum(1 for q in self.questions if q.avatar_video_url)


class StartInterviewRequest(WireModel):
    resume_id: int
    job_role_id: int


# ---------------------------------------------------------------------------
# Presigned upload
# ---------------------------------------------------------------------------


class PresignedUrlResponse(WireModel):
    """GET /api/interviews/{id}/upload-url response."""

    upload_url: str
    s3_key: str
    expires_in_seconds: int = 900


class ConfirmUploadRequest(WireModel):
    """POST /api/interviews/{id}/confirm-upload body."""

    question_id: int
    s3_key: str
    content_type: str | None = None
    video_duration: int | None = None  # whole seconds


class ConfirmUploadResponse(WireModel):
    message: str
    interview_id: int
    question_id: int
    s3_key: str


class SubmitResponseResult(WireModel):
    """Legacy multipart POST /api/interviews/{id}/response result."""

    message: str
    interview_id: int
    question_id: int


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------


class FeedbackStatus(StrEnum):
    completed = "COMPLETED"
    processing = "PROCESSING"
    not_found = "NOT_FOUND"


class InterviewFeedback(WireModel):
    """GET /api/interviews/{id}/feedback response."""

    status: FeedbackStatus
    overall_score: float | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    detailed_analysis: str | None = None
    generated_at: datetime | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Resume / job roles
# ---------------------------------------------------------------------------


class Resume(WireModel):
    id: int
    file_name: str
    file_url: str | None = None
    extracted_text: str | None = None
    uploaded_at: datetime | None = None


class JobRole(WireModel):
    id: int
    title: str
    description: str = ""
    category: str = ""
    active: bool = True


# ---------------------------------------------------------------------------
# Error
# ---------------------------------------------------------------------------


class ApiErrorBody(WireModel):
    """Error envelope the backend returns alongside 4xx/5xx responses."""

    message: str | None = None
    error: str | None = None
    status: int | str | None = None
    timestamp: str | None = None
