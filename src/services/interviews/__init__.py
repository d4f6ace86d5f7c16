"""
Interviews module - Lifecycle calls and presigned answer uploads.

Factory functions for wiring both to one authenticated client.
"""

import httpx

from src.client.api_client import APIClient

from .service import InterviewService
from .upload import UploadCoordinator, UploadTicket

__all__ = [
    "InterviewService",
    "UploadCoordinator",
    "UploadTicket",
    "create_interview_service",
    "create_upload_coordinator",
]


def create_interview_service(api: APIClient) -> InterviewService:
    return InterviewService(api)


def create_upload_coordinator(
    api: APIClient, storage_transport: httpx.AsyncBaseTransport | None = None
) -> UploadCoordinator:
    """Factory function to create an UploadCoordinator.

    Args:
        api: Authenticated backend client (ticket and confirm calls).
        storage_transport: Optional transport for the unauthenticated storage client.
    """
    return UploadCoordinator(api, storage_transport=storage_transport)
