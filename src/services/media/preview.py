"""Revocable preview references for recorded artifacts.

Mirrors object URLs: ``create()`` registers bytes under an opaque
``blob:`` reference, ``revoke()`` releases them. Revoking is idempotent.
"""

import uuid


class PreviewRegistry:
    """Holds artifact bytes for playback until their reference is revoked."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[bytes, str]] = {}

    def create(self, data: bytes, mime_type: str) -> str:
        ref = f"blob:{uuid.uuid4()}"
        self._entries[ref] = (data, mime_type)
        return ref

    def resolve(self, ref: str) -> tuple[bytes, str] | None:
        return self._entries.get(ref)

    def revoke(self, ref: str) -> None:
        self._entries.pop(ref, None)

    def __contains__(self, ref: object) -> bool:
        return ref in self._entries

    def __len__(self) -> int:
        return len(self._entries)
