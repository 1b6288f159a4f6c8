"""
web/routes.py -- Jinja2 template routes for the Beer Diary web UI.

These routes serve server-rendered HTML. They share app.state with the API
(same engine, UserStore, SessionManager, DiaryStore).

Identity is already resolved by the time a handler runs (identity middleware
in api/main.py); protected handlers start with run_guards(). The beer creation
guard depends on Settings.anonymous_beer_submission.

Route registration order matters. GET /beers/new must be registered before
GET /beers/{beer_id} or FastAPI tries to parse "new" as an id.

Routes:
  GET  /                       -- redirect to /beers
  GET  /beers                  -- list all beers
  GET  /beers/new              -- beer creation form (auth required)
  POST /beers                  -- create a beer (auth required unless anonymous submission is on)
  GET  /beers/{beer_id}        -- beer detail with comments
  POST /beers/{beer_id}/comments -- attach a comment (auth required)
  GET  /register               -- registration form
  POST /register               -- create account, log in, redirect /beers
  GET  /login                  -- login form
  POST /login                  -- verify credentials, start session
  GET  /logout                 -- end session, redirect /beers
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from api.limiter import limiter
from auth.dependencies import SESSION_TOKEN_KEY, current_user, require_authenticated, run_guards
from auth.passwords import register_user, verify_user
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.errors import BeerNotFound, DuplicateUsername, InvalidCredentials, ValidationError
from diary.store import DiaryStore

logger = logging.getLogger("beerdiary.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_settings = get_settings()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params. The raw query param is NEVER
# passed to templates -- only the message from this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid username or password.",
    "empty_comment": "A comment needs some text.",
    "comment_too_long": "That comment is too long.",
}


def _render(request: Request, name: str, context: Optional[dict] = None, status_code: int = 200) -> HTMLResponse:
    """Render a template with the request's identity always available as current_user."""
    ctx = {"current_user": current_user(request)}
    ctx.update(context or {})
    return templates.TemplateResponse(request, name, ctx, status_code=status_code)


def _error_msg(request: Request) -> Optional[str]:
    return _ERROR_MESSAGES.get(request.query_params.get("error", ""))


def _beer_submission_guard(request: Request) -> Optional[Response]:
    if _settings.anonymous_beer_submission:
        return None
    return require_authenticated(request)


def _start_session(request: Request, user_id: int) -> None:
    """Replace any session the browser already holds with a fresh one for user_id."""
    sessions: SessionManager = request.app.state.sessions
    sessions.destroy_session(request.session.get(SESSION_TOKEN_KEY))
    session = sessions.create_session(user_id)
    request.session.clear()
    request.session[SESSION_TOKEN_KEY] = session.token


# ---------------------------------------------------------------------------
# GET / -- landing
# ---------------------------------------------------------------------------


@router.get("/")
def index() -> RedirectResponse:
    return RedirectResponse("/beers", status_code=302)


# ---------------------------------------------------------------------------
# Beers
# ---------------------------------------------------------------------------


@router.get("/beers", response_class=HTMLResponse)
def beer_list(request: Request) -> HTMLResponse:
    diary: DiaryStore = request.app.state.diary
    return _render(request, "beers/index.html", {"beers": diary.list_beers()})


# MUST precede /beers/{beer_id}
@router.get("/beers/new", response_class=HTMLResponse)
def beer_create_form(request: Request) -> Response:
    """Render the beer creation form."""
    if response := run_guards(request, [require_authenticated]):
        return response
    return _render(request, "beers/new.html", {"error": None, "form_data": {}})


@router.post("/beers", response_class=HTMLResponse)
def beer_create(
    request: Request,
    name: Optional[str] = Form(default=None),
    image: Optional[str] = Form(default=None),
    description: Optional[str] = Form(default=None),
) -> Response:
    """Handle beer creation form POST. Redirects to the listing on success."""
    if response := run_guards(request, [_beer_submission_guard]):
        return response

    form_data = {"name": name or "", "image": image or "", "description": description or ""}
    diary: DiaryStore = request.app.state.diary
    try:
        diary.create_beer(name, image, description)
    except ValidationError as exc:
        return _render(request, "beers/new.html", {"error": str(exc), "form_data": form_data}, status_code=400)
    return RedirectResponse("/beers", status_code=303)


@router.get("/beers/{beer_id}", response_class=HTMLResponse)
def beer_detail(request: Request, beer_id: int) -> Response:
    diary: DiaryStore = request.app.state.diary
    beer = diary.get_beer(beer_id)
    if beer is None:
        return RedirectResponse("/beers", status_code=302)

    user_store: UserStore = request.app.state.user_store
    authors = user_store.usernames_for({c.author_id for c in beer.comments if c.author_id is not None})
    return _render(
        request,
        "beers/show.html",
        {"beer": beer, "authors": authors, "error_msg": _error_msg(request)},
    )


@router.post("/beers/{beer_id}/comments")
def comment_create(request: Request, beer_id: int, text: Optional[str] = Form(default=None)) -> Response:
    """Attach a comment written by the logged-in user."""
    if response := run_guards(request, [require_authenticated]):
        return response

    diary: DiaryStore = request.app.state.diary
    try:
        diary.attach_comment(beer_id, text, author_id=current_user(request).id)
    except BeerNotFound:
        return RedirectResponse("/beers", status_code=302)
    except ValidationError:
        code = "empty_comment" if not (text or "").strip() else "comment_too_long"
        return RedirectResponse(f"/beers/{beer_id}?error={code}", status_code=303)
    return RedirectResponse(f"/beers/{beer_id}", status_code=303)


# ---------------------------------------------------------------------------
# Auth routes -- register, login, logout
# ---------------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    return _render(request, "register.html", {"error_msg": None, "username": ""})


@router.post("/register", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)
def register_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
) -> Response:
    """Create the account, then log the new user straight in."""
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = register_user(user_store, username, password)
    except (ValidationError, DuplicateUsername) as exc:
        return _render(request, "register.html", {"error_msg": str(exc), "username": username}, status_code=400)

    _start_session(request, user_id)
    resp = RedirectResponse("/beers", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> Response:
    """Render the login page. Already-authenticated users go straight to the listing."""
    if current_user(request).is_authenticated:
        return RedirectResponse("/beers", status_code=302)
    return _render(request, "login.html", {"error_msg": _error_msg(request)})


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(_settings.login_rate_limit)  # brute-force mitigation
def login_post(
    request: Request,
    username: str = Form(default=""),
    password: str = Form(default=""),
) -> RedirectResponse:
    """Handle username/password login form submission."""
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = verify_user(user_store, username, password)
    except InvalidCredentials:
        logger.info("Failed login for %r", username[:64])
        return RedirectResponse("/login?error=bad_credentials", status_code=302)

    _start_session(request, user_id)
    resp = RedirectResponse("/beers", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/logout")
def logout(request: Request) -> RedirectResponse:
    """Destroy the server-side session, clear the cookie, and go back to the listing."""
    sessions: SessionManager = request.app.state.sessions
    sessions.destroy_session(request.session.get(SESSION_TOKEN_KEY))
    request.session.clear()
    return RedirectResponse("/beers", status_code=302)
