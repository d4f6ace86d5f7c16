"""Shared pytest fixtures for the Rehearse test suite.

Provides fake capture devices and encoders, an in-process FastAPI stand-in
for the interview backend, and an ``APIClient`` wired to it through
``httpx.ASGITransport``.
"""

import asyncio
from dataclasses import dataclass, field
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.client.api_client import APIClient
from src.client.credentials import InMemoryTokenStore
from src.services.media.base import (
    BaseEncoder,
    BaseMediaDevices,
    MediaStream,
    MediaTrack,
    QueueEncoderSession,
)

VALID_TOKEN = "tok-valid"
ALL_VIDEO_TYPES = (
    "video/webm;codecs=vp9",
    "video/webm;codecs=vp8",
    "video/webm",
    "video/mp4",
)

# ---------------------------------------------------------------------------
# Media fakes
# ---------------------------------------------------------------------------


class BrowserMediaError(Exception):
    """Exception shaped like a DOMException from getUserMedia."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name


class FakeMediaDevices(BaseMediaDevices):
    """Hands out two-track streams, or raises ``error`` when set."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.streams: list[MediaStream] = []
        self.constraints = []

    async def get_user_media(self, constraints):
        self.constraints.append(constraints)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        stream = MediaStream([MediaTrack("video", "Fake Camera"), MediaTrack("audio", "Fake Mic")])
        self.streams.append(stream)
        return stream

    @property
    def live_streams(self) -> int:
        return sum(1 for s in self.streams if s.active)


class FakeEncoder(BaseEncoder):
    """Queue-backed encoder; tests push chunks through ``session``."""

    def __init__(self, supported=ALL_VIDEO_TYPES, error: Exception | None = None) -> None:
        self.supported = set(supported)
        self.error = error
        self.sessions: list[QueueEncoderSession] = []
        self.started_with: list[str] = []

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported

    def start(self, stream, *, mime_type, video_bits_per_second, timeslice_ms):
        if self.error is not None:
            raise self.error
        session = QueueEncoderSession()
        self.sessions.append(session)
        self.started_with.append(mime_type)
        return session

    @property
    def session(self) -> QueueEncoderSession:
        return self.sessions[-1]


@pytest.fixture
def devices():
    return FakeMediaDevices()


@pytest.fixture
def encoder():
    return FakeEncoder()


# ---------------------------------------------------------------------------
# Backend fake
# ---------------------------------------------------------------------------


def _interview_payload(interview_id: int, status: str, avatars: bool = True) -> dict:
    return {
        "interviewId": interview_id,
        "status": status,
        "type": "VIDEO",
        "jobRoleTitle": "Backend Engineer",
        "questions": [
            {
                "questionId": 100 + n,
                "questionNumber": n,
                "questionText": f"Question {n}?",
                "category": "TECHNICAL",
                "difficulty": "MEDIUM",
                "avatarVideoUrl": f"https://cdn.test/avatar/{n}.mp4" if avatars else None,
            }
            for n in (1, 2)
        ],
    }


@dataclass
class FakeBackend:
    """In-process interview backend with scriptable responses."""

    app: FastAPI = field(default_factory=FastAPI)
    calls: list[dict] = field(default_factory=list)
    status_script: list[str] = field(default_factory=lambda: ["IN_PROGRESS"])
    feedback_mode: str = "ready"  # "ready" | "accepted" | "processing"
    ticket_ttl: int = 900
    tickets_issued: int = 0
    confirmed: list[dict] = field(default_factory=list)
    legacy_uploads: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        app = self.app

        @app.middleware("http")
        async def record(request: Request, call_next):
            self.calls.append(
                {
                    "method": request.method,
                    "path": request.url.path,
                    "query": dict(request.query_params),
                    "authorization": request.headers.get("authorization"),
                }
            )
            return await call_next(request)

        # --- auth ---

        @app.post("/api/auth/login")
        async def login(request: Request):
            body = await request.json()
            if body.get("password") != "Secret123":
                return JSONResponse(
                    {"message": "Invalid email or password", "status": 400}, status_code=400
                )
            return {"token": VALID_TOKEN, "userId": 7, "name": "Ada", "email": body["email"]}

        @app.post("/api/auth/register")
        async def register(request: Request):
            body = await request.json()
            return JSONResponse(
                {"token": VALID_TOKEN, "userId": 8, "name": body["name"], "email": body["email"]},
                status_code=201,
            )

        @app.get("/api/auth/profile")
        async def profile(request: Request):
            if request.headers.get("authorization") != f"Bearer {VALID_TOKEN}":
                return JSONResponse(
                    {"message": "Token expired", "timestamp": "2026-01-01T00:00:00Z"},
                    status_code=401,
                )
            return {"id": 7, "name": "Ada", "email": "ada@example.com"}

        @app.put("/api/auth/profile")
        async def update_profile(request: Request):
            body = await request.json()
            return {"id": 7, "name": f"{body['firstName']} {body['lastName']}", "email": "ada@example.com"}

        # --- error probes ---

        @app.get("/api/expired")
        async def expired():
            await asyncio.sleep(0)
            return JSONResponse(
                {"message": "Token expired", "timestamp": "2026-01-01T00:00:00Z"},
                status_code=401,
            )

        @app.get("/api/forbidden")
        async def forbidden():
            return JSONResponse({"message": "Access denied"}, status_code=403)

        @app.get("/api/broken")
        async def broken():
            return JSONResponse("not an object", status_code=500)

        @app.get("/api/missing")
        async def missing():
            return JSONResponse({"status": "NOT_FOUND", "message": "No such thing"}, status_code=404)

        # --- resumes ---

        @app.post("/api/resumes/upload")
        async def upload_resume(request: Request):
            raw = await request.body()
            assert b'name="file"' in raw
            return {"id": 3, "fileName": "cv.pdf", "fileUrl": "https://s3.test/cv.pdf"}

        @app.get("/api/resumes/my-resume")
        async def my_resume():
            return {"id": 3, "fileName": "cv.pdf"}

        @app.get("/api/resumes/{resume_id}")
        async def get_resume(resume_id: int):
            return {"id": resume_id, "fileName": "cv.pdf"}

        # --- interviews ---

        @app.get("/api/job-roles")
        async def job_roles():
            return [
                {"id": 1, "title": "Backend Engineer", "category": "ENGINEERING"},
                {"id": 2, "title": "Data Analyst", "category": "DATA"},
            ]

        @app.post("/api/interviews/start")
        async def start(request: Request):
            body = await request.json()
            assert body == {"resumeId": 3, "jobRoleId": 1}
            return _interview_payload(42, "GENERATING_VIDEOS", avatars=False)

        @app.get("/api/interviews/history")
        async def history():
            return [_interview_payload(41, "COMPLETED"), _interview_payload(42, "IN_PROGRESS")]

        @app.get("/api/interviews/{interview_id}/upload-url")
        async def upload_url(interview_id: int, questionId: int, contentType: str):
            self.tickets_issued += 1
            key = f"interviews/{interview_id}/q{questionId}-{self.tickets_issued}.webm"
            return {
                "uploadUrl": f"https://storage.test/bucket/{key}?X-Amz-Signature=sig{self.tickets_issued}",
                "s3Key": key,
                "expiresInSeconds": self.ticket_ttl,
            }

        @app.post("/api/interviews/{interview_id}/confirm-upload")
        async def confirm_upload(interview_id: int, request: Request):
            body = await request.json()
            self.confirmed.append(body)
            return {
                "message": "Upload confirmed",
                "interviewId": interview_id,
                "questionId": body["questionId"],
                "s3Key": body["s3Key"],
            }

        @app.post("/api/interviews/{interview_id}/response")
        async def legacy_response(interview_id: int, questionId: int, request: Request):
            self.legacy_uploads.append(
                {
                    "question_id": questionId,
                    "content_type": request.headers.get("content-type", ""),
                    "body": await request.body(),
                }
            )
            return {"message": "Response submitted", "interviewId": interview_id, "questionId": questionId}

        @app.post("/api/interviews/{interview_id}/complete")
        async def complete(interview_id: int):
            return {"message": "Interview completed", "interviewId": interview_id, "status": "PROCESSING"}

        @app.get("/api/interviews/{interview_id}/feedback")
        async def feedback(interview_id: int):
            if self.feedback_mode == "accepted":
                return JSONResponse(
                    {"status": "PROCESSING", "message": "Feedback is being generated"},
                    status_code=202,
                )
            if self.feedback_mode == "processing":
                return {"status": "PROCESSING", "message": "Feedback is being generated"}
            return {
                "status": "COMPLETED",
                "overallScore": 82,
                "strengths": ["Clear structure"],
                "weaknesses": ["Too fast"],
                "recommendations": ["Pause between points"],
                "detailedAnalysis": "Solid answers overall.",
            }

        @app.get("/api/interviews/{interview_id}")
        async def get_interview(interview_id: int):
            status = self.status_script.pop(0) if len(self.status_script) > 1 else self.status_script[0]
            return _interview_payload(interview_id, status, avatars=status != "GENERATING_VIDEOS")

    def calls_to(self, path: str) -> list[dict]:
        return [c for c in self.calls if c["path"] == path]


@dataclass
class FakeStorage:
    """Object-storage stand-in for presigned PUTs via ``httpx.MockTransport``."""

    responses: list = field(default_factory=list)  # status codes or exceptions, consumed in order
    requests: list[httpx.Request] = field(default_factory=list)
    bodies: list[bytes] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.content)
        outcome = self.responses.pop(0) if self.responses else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def token_store():
    return InMemoryTokenStore(token=VALID_TOKEN)


@pytest.fixture
def navigate():
    return MagicMock()


@pytest.fixture
async def api(backend, token_store, navigate):
    """APIClient talking to ``backend`` in-process."""
    client = APIClient(
        base_url="http://backend.test",
        token_store=token_store,
        navigate=navigate,
        transport=httpx.ASGITransport(app=backend.app),
    )
    yield client
    await client.aclose()
