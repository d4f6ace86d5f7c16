"""Account calls and the local sign-in state they drive."""

import logging

from src.client.api_client import APIClient, Navigator
from src.core.config import get_settings
from src.core.exceptions import ValidationError
from src.core.models import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UpdateProfileRequest,
    User,
)
from src.core.validators import validate_email, validate_name, validate_password

logger = logging.getLogger(__name__)


class AuthService:
    """Facade over ``/api/auth``.

    ``login()`` writes the token into the client's store, so every later
    request from the same client is authenticated.
    """

    def __init__(self, api: APIClient, navigate: Navigator | None = None) -> None:
        self._api = api
        self._navigate = navigate

    async def register(self, name: str, email: str, password: str) -> AuthResponse:
        """POST /api/auth/register. Does not sign the user in.

        Raises:
            ValidationError: First failing field check; nothing is sent.
        """
        for error in (validate_name(name), validate_email(email), validate_password(password)):
            if error:
                raise ValidationError(error)
        body = RegisterRequest(name=name, email=email, password=password)
        resp = await self._api.post("/api/auth/register", json=body.to_wire())
        return AuthResponse.model_validate(resp.json())

    async def login(self, email: str, password: str) -> AuthResponse:
        body = LoginRequest(email=email, password=password)
        resp = await self._api.post("/api/auth/login", json=body.to_wire())
        auth = AuthResponse.model_validate(resp.json())
        self._api.tokens.set_token(
            auth.token, user={"id": auth.user_id, "name": auth.name, "email": auth.email}
        )
        logger.info("Signed in as user %s", auth.user_id)
        return auth

    def logout(self) -> None:
        self._api.tokens.evict()
        if self._navigate is not None:
            self._navigate(get_settings().login_route)

    async def get_current_user(self) -> User:
        resp = await self._api.get("/api/auth/profile")
        return User.model_validate(resp.json())

    async def update_profile(
        self, first_name: str | None = None, last_name: str | None = None
    ) -> User:
        body = UpdateProfileRequest(first_name=first_name, last_name=last_name)
        resp = await self._api.put("/api/auth/profile", json=body.to_wire())
        return User.model_validate(resp.json())
