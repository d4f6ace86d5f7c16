"""
Asynchronous HTTP client for the interview backend API.

Uses ``httpx.AsyncClient`` so network calls, device acquisition, and encoder
events all share one event loop. Every request carries the bearer token held
by the injected token store, and every failure surfaces as an ``APIError``
with a uniform ``{message, status, timestamp}`` shape.
"""

import logging
from collections.abc import Callable, Generator

import httpx
from pydantic import ValidationError

from src.client.credentials import BaseTokenStore, InMemoryTokenStore
from src.core.config import get_settings
from src.core.exceptions import APIError, NetworkUnreachableError, SessionExpiredError
from src.core.models import ApiErrorBody
from src.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

Navigator = Callable[[str], None]


class BearerTokenAuth(httpx.Auth):
    """Attach ``Authorization: Bearer <token>`` when the store holds one.

    The token is read when the request is sent, so a concurrent eviction
    simply yields an unauthenticated request.
    """

    def __init__(self, store: BaseTokenStore) -> None:
        self._store = store

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._store.get_token()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        yield request


class LoginRedirect:
    """Fires the navigate-to-login side effect once per signed-in session.

    After the first 401 the latch stays closed until a new token is stored,
    so a burst of concurrent 401s navigates exactly once.
    """

    def __init__(self, store: BaseTokenStore, navigate: Navigator | None, route: str) -> None:
        self._navigate = navigate
        self._route = route
        self._pending = False
        self._unsubscribe = store.subscribe(self._on_token_change)

    @property
    def pending(self) -> bool:
        return self._pending

    def _on_token_change(self, token: str | None) -> None:
        if token:
            self._pending = False

    def close(self) -> None:
        """Stop listening to the token store."""
        self._unsubscribe()

    def trigger(self) -> bool:
        """Navigate unless a redirect is already pending. Returns True if fired."""
        if self._pending:
            return False
        self._pending = True
        logger.warning("Session expired; redirecting to %s", self._route)
        if self._navigate is not None:
            self._navigate(self._route)
        return True


class APIClient:
    """Thin wrapper around ``httpx.AsyncClient`` for the REST backend.

    Callers get a successful ``httpx.Response`` back or an ``APIError``.
    A 401 additionally evicts the token and triggers the login redirect;
    the call itself then raises ``SessionExpiredError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_store: BaseTokenStore | None = None,
        navigate: Navigator | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Backend root; defaults to ``settings.api_base_url``.
            token_store: Credential provider; defaults to an in-memory store.
            navigate: Called with the login route when the session expires.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (tests use ``ASGITransport``).
        """
        settings = get_settings()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._tokens = token_store if token_store is not None else InMemoryTokenStore()
        self._redirect = LoginRedirect(self._tokens, navigate, settings.login_route)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout if timeout is not None else settings.request_timeout,
            auth=BearerTokenAuth(self._tokens),
            transport=transport,
        )

    @property
    def tokens(self) -> BaseTokenStore:
        return self._tokens

    @property
    def redirect(self) -> LoginRedirect:
        return self._redirect

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with normalized error handling.

        Args:
            method: HTTP method name ("get", "post", "put", "delete").
            path: API endpoint path (e.g. "/api/interviews/1").
            **kwargs: Passed through to httpx (json, params, files, timeout, etc.).

        Returns:
            The httpx Response object with a successful status code.

        Raises:
            APIError: On connection failure, timeout, or an error status.
        """
        try:
            resp = await self._client.request(method.upper(), path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.TimeoutException:
            logger.error("Request timed out: %s %s", method.upper(), path)
            raise NetworkUnreachableError(
                "Request timed out. The server may be overloaded."
            ) from None
        except httpx.HTTPStatusError as exc:
            raise self._status_error(exc.response) from None
        except httpx.TransportError as exc:
            logger.error("Network Error: %s", exc)
            raise NetworkUnreachableError() from None

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("get", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("post", path, **kwargs)

    async def put(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("put", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("delete", path, **kwargs)

    async def aclose(self) -> None:
        self._redirect.close()
        await self._client.aclose()

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _status_error(self, response: httpx.Response) -> APIError:
        status = response.status_code
        body = _parse_error_body(response)
        message = body.message or response.reason_phrase or "An unexpected error occurred"
        timestamp = body.timestamp or utc_now_iso()

        if status == 401:
            self._tokens.evict()
            self._redirect.trigger()
            return SessionExpiredError(message, timestamp=timestamp)
        if status == 403:
            logger.error("Forbidden: You do not have permission to access this resource.")
        return APIError(message, status=status, timestamp=timestamp)


def _parse_error_body(response: httpx.Response) -> ApiErrorBody:
    try:
        payload = response.json()
    except ValueError:
        return ApiErrorBody()
    if not isinstance(payload, dict):
        return ApiErrorBody()
    try:
        return ApiErrorBody.model_validate(payload)
    except ValidationError:
        message = payload.get("message")
        return ApiErrorBody(message=message if isinstance(message, str) else None)
