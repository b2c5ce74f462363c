import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
import jwt
from pydantic import BaseModel

from app.client.state import AuthActions, AuthState, AuthStore
from app.client.token_store import MemoryTokenStore, TokenStore
from config import API_URL

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
STALE_RESPONSE = "Session changed before the response arrived"
SIGNED_OUT_GENERATION = "signed_out_generation"


class AuthResult(BaseModel):
    success: bool
    error: Optional[str] = None


def error_message(exc: Exception, fallback: str) -> str:
    """Server supplied ``message`` when there is one, ``fallback`` otherwise."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            message = exc.response.json().get("message")
        except ValueError:
            message = None
        if message:
            return message
    return fallback


def token_expired(token: str, now: Optional[float] = None) -> bool:
    """Read ``exp`` without checking the signature; unreadable tokens count as expired."""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return True
    exp = payload.get("exp")
    if exp is None:
        return False
    return exp < (now if now is not None else time.time())


class SessionManager:
    """
    Client side session lifecycle.

    Every request made through ``client`` carries the stored token, and any
    401 answer signs the session out, discards the token and calls
    ``on_unauthorized`` with the login path, whichever call triggered it.

    Login, register and startup are serialized. Each sign-out (``logout`` or
    a 401) starts a new session generation; a response to a request sent in
    an older generation is dropped, so a slow reply can never bring back a
    session the user has already left.
    """

    def __init__(
            self,
            base_url: str = API_URL,
            token_store: Optional[TokenStore] = None,
            store: Optional[AuthStore] = None,
            on_unauthorized: Optional[Callable[[str], Any]] = None,
            transport: Optional[httpx.AsyncBaseTransport] = None,
            timeout: float = 10.0
    ):
        self.token_store = token_store or MemoryTokenStore()
        self.store = store or AuthStore(AuthState(token=self.token_store.get()))
        self.on_unauthorized = on_unauthorized
        self._auth_lock = asyncio.Lock()
        self._generation = 0
        self.client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
            event_hooks={
                "request": [self._attach_token],
                "response": [self._handle_unauthorized],
            },
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self.client.aclose()

    # State access

    def get_state(self) -> AuthState:
        return self.store.get_state()

    def subscribe(self, listener):
        return self.store.subscribe(listener)

    def _superseded(self, generation: int, exc: Optional[Exception] = None) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            # A 401 on this very request moved the generation on; that is not a newer session
            generation = exc.response.extensions.get(SIGNED_OUT_GENERATION, generation)
        return generation != self._generation

    # Transport hooks

    async def _attach_token(self, request: httpx.Request):
        token = self.token_store.get()
        if token:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _handle_unauthorized(self, response: httpx.Response):
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return
        logger.warning(f"{response.request.method} {response.request.url.path} answered 401, signing out")
        self._generation += 1
        response.extensions[SIGNED_OUT_GENERATION] = self._generation
        self.token_store.clear()
        self.store.dispatch(AuthActions.SESSION_EXPIRED)
        if self.on_unauthorized is not None:
            result = self.on_unauthorized(LOGIN_PATH)
            if asyncio.iscoroutine(result):
                await result

    # Lifecycle

    async def initialize(self) -> AuthState:
        """Restore a persisted session, if the stored token is still usable."""
        async with self._auth_lock:
            token = self.token_store.get()
            if not token:
                return self.store.dispatch(AuthActions.SET_LOADING, False)

            if token_expired(token):
                logger.info("Stored token expired, discarding it")
                self.token_store.clear()
                return self.store.dispatch(AuthActions.LOGOUT)

            generation = self._generation
            self.store.dispatch(AuthActions.SET_LOADING, True)
            try:
                response = await self.client.get("/auth/me")
                response.raise_for_status()
                user = response.json()["user"]
            except (httpx.HTTPError, ValueError, KeyError) as e:
                if self._superseded(generation, e):
                    return self.get_state()
                logger.warning(f"Could not restore session: {str(e)}")
                self.token_store.clear()
                return self.store.dispatch(AuthActions.LOGOUT)

            if self._superseded(generation):
                logger.info("Signed out while restoring the session, dropping /auth/me reply")
                return self.get_state()
            return self.store.dispatch(AuthActions.USER_LOADED, user)

    async def _authenticate(self, path: str, body: Dict[str, Any], success_action: str, fallback: str) -> AuthResult:
        async with self._auth_lock:
            generation = self._generation
            self.store.dispatch(AuthActions.SET_LOADING, True)
            try:
                response = await self.client.post(path, json=body)
                response.raise_for_status()
                data = response.json()
                token, user = data["token"], data["user"]
            except (httpx.HTTPError, ValueError, KeyError) as e:
                if self._superseded(generation, e):
                    return AuthResult(success=False, error=STALE_RESPONSE)
                logger.warning(f"POST {path} failed: {str(e)}")
                message = error_message(e, fallback)
                self.store.dispatch(AuthActions.AUTH_ERROR, message)
                return AuthResult(success=False, error=message)

            if self._superseded(generation):
                logger.info(f"Signed out while POST {path} was in flight, dropping its reply")
                return AuthResult(success=False, error=STALE_RESPONSE)

            self.token_store.set(token)
            self.store.dispatch(success_action, {"token": token, "user": user})
            return AuthResult(success=True)

    async def login(self, email: str, password: str) -> AuthResult:
        return await self._authenticate(
            "/auth/login",
            {"email": email, "password": password},
            AuthActions.LOGIN_SUCCESS,
            "Login failed",
        )

    async def register(self, fields: Dict[str, Any]) -> AuthResult:
        return await self._authenticate(
            "/auth/register",
            fields,
            AuthActions.REGISTER_SUCCESS,
            "Registration failed",
        )

    def logout(self) -> AuthState:
        self._generation += 1
        self.token_store.clear()
        return self.store.dispatch(AuthActions.LOGOUT)

    async def update_profile(
            self,
            fields: Dict[str, Any],
            photo: Optional[bytes] = None,
            content_type: str = "image/jpeg"
    ) -> AuthResult:
        """
        Save profile fields, and a new profile photo when ``photo`` is given.

        With a photo the form goes to ``/users/profile`` as multipart,
        otherwise the fields go to ``/auth/profile`` as JSON.
        """
        generation = self._generation
        try:
            if photo is not None:
                form = {key: str(value) for key, value in fields.items() if value is not None}
                response = await self.client.put(
                    "/users/profile", data=form, files={"photo": ("photo", photo, content_type)}
                )
                response.raise_for_status()
                user = response.json()["data"]
            else:
                response = await self.client.put("/auth/profile", json=fields)
                response.raise_for_status()
                user = response.json()["user"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning(f"Profile update failed: {str(e)}")
            return AuthResult(success=False, error=error_message(e, "Profile update failed"))

        if self._superseded(generation):
            logger.info("Signed out while the profile update was in flight, dropping its reply")
            return AuthResult(success=False, error=STALE_RESPONSE)

        self.store.dispatch(AuthActions.PROFILE_UPDATED, user)
        return AuthResult(success=True)

    def clear_error(self) -> AuthState:
        return self.store.dispatch(AuthActions.CLEAR_ERROR)
