"""
Bearer-token storage for the API client.

The token lives in an explicitly injected store rather than ambient global
state. Listeners subscribed to a store are told whenever the token changes,
which is how the 401 redirect latch re-arms after a fresh login.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

from src.core.config import get_settings

logger = logging.getLogger(__name__)

TokenListener = Callable[[str | None], None]


class BaseTokenStore(ABC):
    """Key/value credential storage with change notification.

    Subclasses only decide where the record lives; the keys come from
    ``settings.token_key`` and ``settings.user_key``.
    """

    def __init__(self) -> None:
        settings = get_settings()
        self._token_key = settings.token_key
        self._user_key = settings.user_key
        self._listeners: list[TokenListener] = []

    @abstractmethod
    def _load(self) -> dict:
        """Return the stored record (empty dict when nothing is stored)."""

    @abstractmethod
    def _save(self, record: dict) -> None:
        """Persist ``record`` replacing whatever was stored."""

    def get_token(self) -> str | None:
        return self._load().get(self._token_key) or None

    def get_user(self) -> dict | None:
        return self._load().get(self._user_key)

    def is_authenticated(self) -> bool:
        return self.get_token() is not None

    def set_token(self, token: str, user: dict | None = None) -> None:
        record = self._load()
        record[self._token_key] = token
        if user is not None:
            record[self._user_key] = user
        self._save(record)
        self._notify(token)

    def evict(self) -> bool:
        """Remove the token and user.

        Returns:
            True if a token was present. Evicting an empty store is a no-op.
        """
        record = self._load()
        had_token = bool(record.pop(self._token_key, None))
        record.pop(self._user_key, None)
        self._save(record)
        if had_token:
            self._notify(None)
        return had_token

    def subscribe(self, listener: TokenListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, token: str | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception:
                logger.exception("Token listener failed")


class InMemoryTokenStore(BaseTokenStore):
    """Process-local store; nothing survives a restart."""

    def __init__(self, token: str | None = None) -> None:
        super().__init__()
        self._record: dict = {}
        if token:
            self._record[self._token_key] = token

    def _load(self) -> dict:
        return dict(self._record)

    def _save(self, record: dict) -> None:
        self._record = dict(record)


class FileTokenStore(BaseTokenStore):
    """JSON file store, the desktop analogue of browser local storage."""

    def __init__(self, path: str | Path | None = None) -> None:
        super().__init__()
        self._path = Path(path or get_settings().token_store_path)

    def _load(self) -> dict:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError):
            logger.warning("Unreadable credential file %s; treating as empty", self._path)
            return {}

    def _save(self, record: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(record), encoding="utf-8")
