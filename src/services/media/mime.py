"""MIME-type negotiation for video recording.

``negotiate_mime_type`` is a pure function over a capability probe, so it
can be exercised with a fake encoder instead of real hardware.
"""

import logging
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

# Highest preference first
SUPPORTED_VIDEO_TYPES: tuple[str, ...] = (
    "video/webm;codecs=vp9",
    "video/webm;codecs=vp8",
    "video/webm",
    "video/mp4",
)

DEFAULT_VIDEO_TYPE = "video/webm"


def negotiate_mime_type(
    is_supported: Callable[[str], bool],
    candidates: Sequence[str] = SUPPORTED_VIDEO_TYPES,
) -> str:
    """Return the first candidate the encoder supports.

    Falls back to ``DEFAULT_VIDEO_TYPE`` when none match. A probe that raises
    counts as "not supported" for that candidate.

    Args:
        is_supported: Capability query, typically ``encoder.is_type_supported``.
        candidates: MIME types in priority order.
    """
    for mime_type in candidates:
        try:
            if is_supported(mime_type):
                return mime_type
        except Exception:
            logger.debug("Capability probe failed for %s", mime_type, exc_info=True)
    logger.info("No preferred video type supported; falling back to %s", DEFAULT_VIDEO_TYPE)
    return DEFAULT_VIDEO_TYPE
