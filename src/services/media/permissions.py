"""Camera and microphone permission gateway.

``check_permissions()`` probes access and releases the probe stream at once;
``request_permissions()`` hands a live stream to the caller. Both leave a
tri-state ``MediaPermissionState`` behind for the UI to render.
"""

import logging
from dataclasses import dataclass

from src.services.media.base import (
    BaseMediaDevices,
    DeviceErrorKind,
    MediaConstraints,
    MediaStream,
    classify_device_error,
)

logger = logging.getLogger(__name__)

PERMISSION_MESSAGES: dict[DeviceErrorKind, str] = {
    DeviceErrorKind.permission_denied: (
        "Camera and microphone access was denied. "
        "Please allow access in your browser settings."
    ),
    DeviceErrorKind.not_found: (
        "No camera or microphone found. Please connect a device and try again."
    ),
    DeviceErrorKind.busy: "Camera or microphone is already in use by another application.",
    DeviceErrorKind.overconstrained: "Camera does not meet the required constraints.",
    DeviceErrorKind.other: "An unexpected error occurred while accessing media devices.",
}


@dataclass
class MediaPermissionState:
    """``has_permission`` is None until the first check completes."""

    has_permission: bool | None = None
    is_checking: bool = False
    error: str | None = None
    error_kind: DeviceErrorKind | None = None


class PermissionGateway:
    """Requests and verifies camera + microphone access.

    Build with ``await PermissionGateway.create(devices)`` to run the initial
    check; the plain constructor leaves the state unknown.
    """

    _PROBE = MediaConstraints(video=True, audio=True)

    def __init__(self, devices: BaseMediaDevices) -> None:
        self._devices = devices
        self.state = MediaPermissionState()

    @classmethod
    async def create(cls, devices: BaseMediaDevices) -> "PermissionGateway":
        gateway = cls(devices)
        await gateway.check_permissions()
        return gateway

    @property
    def has_permission(self) -> bool | None:
        return self.state.has_permission

    @property
    def is_checking(self) -> bool:
        return self.state.is_checking

    @property
    def error(self) -> str | None:
        return self.state.error

    async def check_permissions(self) -> bool:
        """Probe access without keeping a stream alive.

        Returns:
            True if both camera and microphone could be opened.
        """
        self._begin()
        try:
            stream = await self._devices.get_user_media(self._PROBE)
        except Exception as exc:
            self._fail(exc)
            return False
        finally:
            self.state.is_checking = False

        # Only needed to verify access
        stream.stop_all()
        self.state.has_permission = True
        return True

    async def request_permissions(self) -> MediaStream | None:
        """Acquire a live stream for immediate use.

        The caller owns the returned stream and must stop its tracks.

        Returns:
            The stream, or None when access failed (see ``state.error``).
        """
        self._begin()
        try:
            stream = await self._devices.get_user_media(self._PROBE)
        except Exception as exc:
            self._fail(exc)
            return None
        finally:
            self.state.is_checking = False

        self.state.has_permission = True
        return stream

    def _begin(self) -> None:
        self.state.is_checking = True
        self.state.error = None
        self.state.error_kind = None

    def _fail(self, exc: Exception) -> None:
        kind = classify_device_error(exc)
        logger.info("Media permission check failed (%s): %s", kind, exc)
        self.state.has_permission = False
        self.state.error_kind = kind
        self.state.error = PERMISSION_MESSAGES[kind]
