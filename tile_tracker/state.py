"""
Session state for the app as one immutable value plus a reducer.

Screens never mutate state directly: they build an action and
``views.dispatch`` runs ``reduce(state, action)`` and stores the result in
``st.session_state``.
"""
from dataclasses import dataclass, field, replace
from enum import Enum


class View(str, Enum):
    LOGIN = "login"
    DASHBOARD = "dashboard"
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"
    VIEW = "view"


INVALID_PASSWORD = "Invalid password"


@dataclass(frozen=True)
class AppState:
    authenticated: bool = False
    view: View = View.DASHBOARD
    tiles: tuple = ()
    loaded: bool = False
    loading: bool = False
    login_error: str | None = None


# =========================================================
# ACTIONS
# =========================================================

@dataclass(frozen=True)
class LoginSucceeded:
    pass


@dataclass(frozen=True)
class LoginFailed:
    pass


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class Navigate:
    view: View


@dataclass(frozen=True)
class RequestStarted:
    pass


@dataclass(frozen=True)
class TilesLoaded:
    tiles: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class RequestFinished:
    pass


def reduce(state: AppState, action) -> AppState:
    if isinstance(action, LoginSucceeded):
        return replace(state, authenticated=True, view=View.DASHBOARD, login_error=None, loaded=False)

    if isinstance(action, LoginFailed):
        return replace(state, authenticated=False, login_error=INVALID_PASSWORD)

    if isinstance(action, Logout):
        return AppState()

    if not state.authenticated:
        # everything below needs a session
        return state

    if isinstance(action, Navigate):
        view = View(action.view)
        if view is View.LOGIN:
            return AppState()
        return replace(state, view=view)

    if isinstance(action, RequestStarted):
        return replace(state, loading=True)

    if isinstance(action, TilesLoaded):
        return replace(state, tiles=tuple(action.tiles), loaded=True, loading=False)

    if isinstance(action, RequestFinished):
        # cache is kept as-is; a failed initial load is not retried automatically
        return replace(state, loading=False, loaded=True)

    raise TypeError(f"Unknown action: {action!r}")


def current_screen(state: AppState) -> View:
    if not state.authenticated:
        return View.LOGIN
    return state.view
