"""
auth/dependencies.py -- Request identity and the login guard.

Every request passes through attach_identity() exactly once (the identity
middleware in api/main.py calls it). It reads the session token from the
signed session cookie, asks SessionManager who it belongs to, and stores the
result on request.state.current_user: a User, or the ANONYMOUS marker.

Guards are plain functions of the request that return None to continue or a
terminal Response. Protected routes list them and hand them to run_guards():

    if response := run_guards(request, [require_authenticated]):
        return response

require_authenticated() answers with a 302 to /login rather than an error --
for a browser, "not logged in" is a normal state with a normal next step.

Per-request state: Unresolved -> (Anonymous | Authenticated). The identity is
never re-resolved mid-request, so a session destroyed while a handler runs
does not revoke that handler's authorization.

Layer rule: no imports from web/ or diary/.
  May import from starlette (Request/Response) because guards produce responses.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Optional, Union

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from auth.models import ANONYMOUS, AnonymousUser, User

SESSION_TOKEN_KEY = "session_token"
LOGIN_PATH = "/login"

Guard = Callable[[Request], Optional[Response]]


def attach_identity(request: Request) -> None:
    """Resolve the request's session once and record the identity on request.state.

    Never raises for a missing, unknown or expired token -- those all mean
    anonymous. A token that resolves to a deleted user is also anonymous.
    """
    if getattr(request.state, "current_user", None) is not None:
        return

    sessions = request.app.state.sessions
    user_store = request.app.state.user_store

    user: Union[User, AnonymousUser] = ANONYMOUS
    token = request.session.get(SESSION_TOKEN_KEY) if "session" in request.scope else None
    user_id = sessions.resolve_session(token)
    if user_id is not None:
        user = user_store.get_by_id(user_id) or ANONYMOUS
    request.state.current_user = user


def current_user(request: Request) -> Union[User, AnonymousUser]:
    """Return the identity attached to this request (ANONYMOUS if none was attached)."""
    return getattr(request.state, "current_user", None) or ANONYMOUS


def require_authenticated(request: Request) -> Optional[RedirectResponse]:
    """Continue (None) for a logged-in user, otherwise redirect to the login page."""
    if current_user(request).is_authenticated:
        return None
    return RedirectResponse(LOGIN_PATH, status_code=302)


def run_guards(request: Request, guards: Iterable[Guard]) -> Optional[Response]:
    """Run guards in order and return the first terminal response, or None to continue."""
    for guard in guards:
        response = guard(request)
        if response is not None:
            return response
    return None
