"""Form-field validators.

Each validator returns ``None`` when the value is acceptable, otherwise the
user-facing message to show next to the field.
"""

import re

from src.core.config import get_settings
from src.services.media.mime import SUPPORTED_VIDEO_TYPES

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def validate_email(email: str | None) -> str | None:
    if not email:
        return "Email is required"
    if not _EMAIL_RE.match(email):
        return "Please enter a valid email address"
    return None


def validate_password(password: str | None) -> str | None:
    if not password:
        return "Password is required"
    if len(password) < 8:
        return "Password must be at least 8 characters"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    return None


def validate_name(name: str | None) -> str | None:
    if not name:
        return "Name is required"
    if len(name) < 2:
        return "Name must be at least 2 characters"
    if len(name) > 50:
        return "Name must be less than 50 characters"
    return None


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------


def validate_video_file(
    size: int | None,
    content_type: str | None,
    max_size_bytes: int | None = None,
) -> str | None:
    """Check a recorded or picked video before upload.

    Args:
        size: File size in bytes; ``None`` means no file was given.
        content_type: MIME type, codec parameters allowed.
        max_size_bytes: Override for ``settings.max_video_size_bytes``.
    """
    if size is None:
        return "Video file is required"

    limit = max_size_bytes if max_size_bytes is not None else get_settings().max_video_size_bytes
    if size > limit:
        size_mb = round(limit / (1024 * 1024))
        return f"Video file size must be less than {size_mb}MB"

    # Compare container only: "video/webm;codecs=vp9" matches "video/webm"
    containers = {t.split(";")[0] for t in SUPPORTED_VIDEO_TYPES}
    if not content_type or not any(content_type.startswith(c) for c in containers):
        return "Unsupported video format. Please use WebM or MP4"

    return None


# ---------------------------------------------------------------------------
# Interview
# ---------------------------------------------------------------------------


def validate_interview_start(resume_id: int | None, job_role_id: int | None) -> str | None:
    if not resume_id:
        return "Please select a resume"
    if not job_role_id:
        return "Please select a job role"
    return None
