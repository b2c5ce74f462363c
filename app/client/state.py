"""
Client side authentication state.

``AuthStore`` is the single owner of the session state; UI code reads it
through ``get_state`` and reacts to changes through ``subscribe``. The
reducer is pure: persisting or discarding the token is the session
manager's job.
"""
import enum
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class AuthStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class AuthActions:
    SET_LOADING = "SET_LOADING"
    USER_LOADED = "USER_LOADED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    REGISTER_SUCCESS = "REGISTER_SUCCESS"
    AUTH_ERROR = "AUTH_ERROR"
    LOGOUT = "LOGOUT"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    CLEAR_ERROR = "CLEAR_ERROR"


class Action(BaseModel):
    type: str
    payload: Any = None


class AuthState(BaseModel):
    status: AuthStatus = AuthStatus.UNINITIALIZED
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    loading: bool = True
    error: Optional[str] = None

    class Config:
        frozen = True

    @property
    def is_authenticated(self) -> bool:
        return self.status == AuthStatus.AUTHENTICATED


def _signed_out(state: AuthState, error: Optional[str] = None) -> AuthState:
    return state.model_copy(update={
        "status": AuthStatus.ANONYMOUS,
        "token": None,
        "user": None,
        "loading": False,
        "error": error,
    })


def auth_reducer(state: AuthState, action: Action) -> AuthState:
    if action.type == AuthActions.SET_LOADING:
        if action.payload:
            return state.model_copy(update={"status": AuthStatus.LOADING, "loading": True})
        # Loading finished without an identity
        if state.status in (AuthStatus.UNINITIALIZED, AuthStatus.LOADING):
            return _signed_out(state, state.error)
        return state.model_copy(update={"loading": False})

    if action.type == AuthActions.USER_LOADED:
        return state.model_copy(update={
            "status": AuthStatus.AUTHENTICATED,
            "user": action.payload,
            "loading": False,
            "error": None,
        })

    if action.type == AuthActions.PROFILE_UPDATED:
        # Only replaces the profile of a live session, never starts one
        if state.status != AuthStatus.AUTHENTICATED:
            return state
        return state.model_copy(update={"user": action.payload, "error": None})

    if action.type in (AuthActions.LOGIN_SUCCESS, AuthActions.REGISTER_SUCCESS):
        return state.model_copy(update={
            "status": AuthStatus.AUTHENTICATED,
            "token": action.payload["token"],
            "user": action.payload["user"],
            "loading": False,
            "error": None,
        })

    if action.type == AuthActions.AUTH_ERROR:
        return _signed_out(state, action.payload)

    if action.type in (AuthActions.LOGOUT, AuthActions.SESSION_EXPIRED):
        return _signed_out(state)

    if action.type == AuthActions.CLEAR_ERROR:
        return state.model_copy(update={"error": None})

    return state


Listener = Callable[[AuthState], None]


class AuthStore:
    """Holds the current ``AuthState`` and notifies subscribers on change."""

    def __init__(self, initial_state: Optional[AuthState] = None, reducer=auth_reducer):
        self._state = initial_state or AuthState()
        self._reducer = reducer
        self._listeners: List[Listener] = []

    def get_state(self) -> AuthState:
        return self._state

    def dispatch(self, action_type: str, payload: Any = None) -> AuthState:
        action = Action(type=action_type, payload=payload)
        new_state = self._reducer(self._state, action)
        if new_state is not self._state:
            self._state = new_state
            for listener in list(self._listeners):
                try:
                    listener(new_state)
                except Exception as e:
                    logger.error(f"Auth state listener failed on {action_type}: {str(e)}")
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
