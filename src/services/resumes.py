"""Resume upload and lookup."""

from pathlib import Path

from src.client.api_client import APIClient
from src.core.config import get_settings
from src.core.models import Resume


class ResumeService:
    """Facade over ``/api/resumes``."""

    def __init__(self, api: APIClient) -> None:
        self._api = api

    async def upload_resume(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/pdf",
    ) -> Resume:
        """Multipart POST as field ``file``; parsing is slow, hence the longer timeout."""
        resp = await self._api.post(
            "/api/resumes/upload",
            files={"file": (filename, data, content_type)},
            timeout=get_settings().resume_upload_timeout,
        )
        return Resume.model_validate(resp.json())

    async def upload_resume_file(self, path: str | Path, content_type: str = "application/pdf") -> Resume:
        path = Path(path)
        return await self.upload_resume(path.read_bytes(), path.name, content_type)

    async def get_my_resume(self) -> Resume:
        resp = await self._api.get("/api/resumes/my-resume")
        return Resume.model_validate(resp.json())

    async def get_resume(self, resume_id: int) -> Resume:
        resp = await self._api.get(f"/api/resumes/{resume_id}")
        return Resume.model_validate(resp.json())
