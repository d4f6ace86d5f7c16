"""
Media module - Permission checks, MIME negotiation, and video recording.

Factory function for wiring a recorder to a device backend.
"""

from .base import (
    BaseEncoder,
    BaseEncoderSession,
    BaseMediaDevices,
    DeviceErrorKind,
    MediaConstraints,
    MediaStream,
    MediaTrack,
    QueueEncoderSession,
    RecordedArtifact,
    VideoConstraints,
    classify_device_error,
)
from .mime import DEFAULT_VIDEO_TYPE, SUPPORTED_VIDEO_TYPES, negotiate_mime_type
from .permissions import MediaPermissionState, PermissionGateway
from .preview import PreviewRegistry
from .recorder import ChunkBuffer, RecorderState, VideoRecorder

__all__ = [
    "BaseEncoder",
    "BaseEncoderSession",
    "BaseMediaDevices",
    "ChunkBuffer",
    "DEFAULT_VIDEO_TYPE",
    "DeviceErrorKind",
    "MediaConstraints",
    "MediaPermissionState",
    "MediaStream",
    "MediaTrack",
    "PermissionGateway",
    "PreviewRegistry",
    "QueueEncoderSession",
    "RecordedArtifact",
    "RecorderState",
    "SUPPORTED_VIDEO_TYPES",
    "VideoConstraints",
    "VideoRecorder",
    "classify_device_error",
    "create_recorder",
    "negotiate_mime_type",
]


def create_recorder(devices: BaseMediaDevices, encoder: BaseEncoder, **kwargs) -> VideoRecorder:
    """Factory function to create a VideoRecorder.

    Args:
        devices: Capture backend handing out media streams.
        encoder: Encoder backend for the negotiated MIME type.
        **kwargs: Passed through to ``VideoRecorder``.

    Returns:
        A recorder in the idle state.
    """
    return VideoRecorder(devices, encoder, **kwargs)
