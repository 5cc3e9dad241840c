# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from gamelog.auth import passwords
from gamelog.auth.federated import (
    FederatedAuthStrategy,
    GoogleIdentityProvider,
    IdentityProvider,
    check_state,
    new_state,
)
from gamelog.auth.local import LocalAuthStrategy
from gamelog.auth.session import SessionManager
from gamelog.config import Settings, get_settings
from gamelog.errors import AuthFailure, CatalogError, ReviewNotFound, StoreUnavailable
from gamelog.infra.catalog_client import MobyGamesClient
from gamelog.infra.db import Database
from gamelog.infra.review_repo import ReviewRepository
from gamelog.infra.session_repo import SessionRepository
from gamelog.infra.user_repo import UserRecord, UserRepository
from gamelog.logs import configure_logging
from gamelog.permissions import (
    cookie_settings,
    current_session,
    current_user_optional,
    load_session_from_request,
    require_user,
    safe_next,
)
from gamelog.services.review_service import Catalog, ReviewService, normalize_sort

logger = logging.getLogger("gamelog.app")

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

OAUTH_STATE_COOKIE = "gamelog_oauth_state"
SIGNIN_FAILED = "signin"
BAD_CREDENTIALS = "credentials"

SORT_LABELS = {
    "released": "Release date",
    "rating": "Rating",
    "completed": "Completion date",
    "title": "Title",
}


@dataclass
class Services:
    settings: Settings
    db: Database
    users: UserRepository
    sessions: SessionManager
    local: LocalAuthStrategy
    federated: FederatedAuthStrategy
    reviews: ReviewService


def build_services(
    settings: Settings,
    *,
    catalog: Optional[Catalog] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> Services:
    passwords.configure(settings.password_time_cost, settings.password_memory_cost)

    db = Database(settings.database_url, retries=settings.store_retries,
                  backoff_seconds=settings.store_backoff_seconds)
    users = UserRepository(db)
    sessions = SessionManager(
        SessionRepository(db),
        users,
        secret_key=settings.secret_key,
        ttl_seconds=settings.session_ttl_seconds,
        rolling=settings.session_rolling,
        sweep_interval=settings.session_sweep_interval,
    )

    if identity_provider is None and settings.google_enabled:
        identity_provider = GoogleIdentityProvider(
            settings.google_client_id,
            settings.google_client_secret,
            settings.google_redirect_uri,
            timeout=settings.oauth_timeout_seconds,
        )
    if catalog is None:
        catalog = MobyGamesClient(settings.catalog_api_url, settings.catalog_api_key,
                                  timeout=settings.catalog_timeout_seconds)

    return Services(
        settings=settings,
        db=db,
        users=users,
        sessions=sessions,
        local=LocalAuthStrategy(users),
        federated=FederatedAuthStrategy(users, identity_provider),
        reviews=ReviewService(ReviewRepository(db), catalog),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def _render(request: Request, template_name: str, ctx: Optional[dict] = None, status_code: int = 200):
    """TemplateResponse wrapper injecting the signed-in user."""
    services = getattr(request.app.state, "services", None)
    base_ctx = {
        "current_user": current_user_optional(request),
        "google_enabled": bool(services and services.federated.enabled),
    }
    merged = {**base_ctx, **(ctx or {})}
    return templates.TemplateResponse(request, template_name, merged, status_code=status_code)


def _error_page(request: Request, message: str, status_code: int):
    return _render(request, "error.html", {"message": message}, status_code=status_code)


def _signed_in_redirect(request: Request, services: Services, user: UserRecord, url: str) -> RedirectResponse:
    """Start a fresh session for `user` and set its cookie."""
    old = current_session(request)
    extra = {}
    if old is not None:
        # Keep preferences, drop the pre-login session id.
        extra = {k: v for k, v in old.payload.items() if k != "uid"}
        services.sessions.terminate(old.sid)
    sid = services.sessions.establish(user, **extra)
    resp = RedirectResponse(url=url, status_code=303)
    resp.set_cookie(
        services.settings.cookie_name,
        services.sessions.sign(sid),
        max_age=services.settings.session_ttl_seconds,
        **cookie_settings(services.settings.cookie_secure),
    )
    return resp


def _refresh_cookie(response, services: Services, sid: str) -> None:
    """Re-issue the session cookie so its max-age slides along with the stored expiry."""
    name = services.settings.cookie_name
    # Login and logout responses already set or clear the cookie.
    for header in response.headers.getlist("set-cookie"):
        if header.startswith(f"{name}="):
            return
    response.set_cookie(
        name,
        services.sessions.sign(sid),
        max_age=services.settings.session_ttl_seconds,
        **cookie_settings(services.settings.cookie_secure),
    )


router = APIRouter()


# ------------------ Reviews ------------------


@router.get("/", response_class=HTMLResponse)
def home(request: Request, services: Services = Depends(get_services)):
    user = current_user_optional(request)
    if user is None:
        return _render(request, "index.html", {"entries": [], "sort": "released", "sort_labels": SORT_LABELS})

    sess = current_session(request)
    sort = normalize_sort(sess.payload.get("sort") if sess else None)
    entries = services.reviews.home_entries(user.id, sort)
    return _render(request, "index.html", {"entries": entries, "sort": sort, "sort_labels": SORT_LABELS})


@router.get("/add", response_class=HTMLResponse)
def add_get(request: Request, user=Depends(require_user)):
    return _render(request, "add.html", {"error": "", "form": {}})


@router.post("/add-game")
def add_game(
    request: Request,
    game_id: str = Form(...),
    completed: str = Form(""),
    rating: str = Form(...),
    review: str = Form(""),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    form = {"game_id": game_id, "completed": completed, "rating": rating, "review": review}
    try:
        services.reviews.add_review(user.id, game_id, completed, rating, review)
    except ValueError as e:
        return _render(request, "add.html", {"error": str(e), "form": form}, status_code=400)
    except CatalogError as e:
        logger.warning("Add game %s failed: %s", game_id, e)
        return _render(
            request,
            "add.html",
            {"error": "Could not find that game in the catalog. Check the id and try again.", "form": form},
            status_code=502,
        )
    return RedirectResponse(url="/", status_code=303)


@router.post("/edit", response_class=HTMLResponse)
def edit(
    request: Request,
    edit: int = Form(...),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    review = services.reviews.get_review(user.id, edit)
    return _render(request, "edit.html", {"review": review, "error": ""})


@router.post("/edit-game")
def edit_game(
    request: Request,
    review_id: int = Form(...),
    completed: str = Form(""),
    rating: str = Form(...),
    review: str = Form(""),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    try:
        services.reviews.update_review(user.id, review_id, completed, rating, review)
    except ValueError as e:
        current = services.reviews.get_review(user.id, review_id)
        return _render(request, "edit.html", {"review": current, "error": str(e)}, status_code=400)
    return RedirectResponse(url="/", status_code=303)


@router.post("/delete")
def delete(
    delete: int = Form(...),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    services.reviews.delete_review(user.id, delete)
    return RedirectResponse(url="/", status_code=303)


@router.post("/sort")
def sort(
    request: Request,
    sort: str = Form("released"),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    sess = current_session(request)
    if sess is not None:
        services.sessions.update(sess.sid, sort=normalize_sort(sort))
    return RedirectResponse(url="/", status_code=303)


# ------------------ Local accounts ------------------


@router.get("/login", response_class=HTMLResponse)
def login_get(request: Request, next: str = "/", error: str = ""):
    if current_user_optional(request):
        return RedirectResponse(url=safe_next(next), status_code=303)
    msg = {
        SIGNIN_FAILED: "Sign-in failed. Please try again.",
        BAD_CREDENTIALS: "Invalid email or password.",
    }.get(error, "")
    return _render(request, "login.html", {"next": safe_next(next), "error": msg})


@router.post("/login")
def login_post(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    next: str = Form("/secrets"),
    services: Services = Depends(get_services),
):
    """Local login. Failures go back to the login view with one generic message."""
    result = services.local.verify(username, password)
    if not result.ok:
        target = quote(safe_next(next, "/secrets"), safe="/")
        return RedirectResponse(url=f"/login?error={BAD_CREDENTIALS}&next={target}", status_code=303)
    return _signed_in_redirect(request, services, result.user, safe_next(next, "/secrets"))


@router.get("/register", response_class=HTMLResponse)
def register_get(request: Request):
    return _render(request, "register.html", {"error": "", "email": ""})


@router.post("/register")
def register_post(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    services: Services = Depends(get_services),
):
    result = services.local.register(username, password)
    if result.failure is AuthFailure.DUPLICATE_ACCOUNT:
        return _render(request, "register.html",
                       {"error": "An account with that email already exists.", "email": username},
                       status_code=409)
    if not result.ok:
        return _render(request, "register.html",
                       {"error": "Email and password are required.", "email": username},
                       status_code=400)
    return _signed_in_redirect(request, services, result.user, "/secrets")


@router.get("/secrets", response_class=HTMLResponse)
def secrets_page(request: Request, user=Depends(require_user)):
    return _render(request, "secrets.html", {"federated": passwords.is_federated(user.password_hash)})


# ------------------ Google sign-in ------------------


@router.get("/auth/google")
def google_start(services: Services = Depends(get_services)):
    if not services.federated.enabled:
        return RedirectResponse(url=f"/login?error={SIGNIN_FAILED}", status_code=303)
    state, cookie_value = new_state(services.settings.secret_key)
    resp = RedirectResponse(url=services.federated.authorization_url(state), status_code=303)
    resp.set_cookie(OAUTH_STATE_COOKIE, cookie_value, max_age=600, **cookie_settings(services.settings.cookie_secure))
    return resp


@router.get("/auth/google/profile")
def google_callback(
    request: Request,
    code: str = "",
    state: str = "",
    error: str = "",
    services: Services = Depends(get_services),
):
    failed = RedirectResponse(url=f"/login?error={SIGNIN_FAILED}", status_code=303)
    failed.delete_cookie(OAUTH_STATE_COOKIE)

    if error:
        logger.warning("Google sign-in denied: %s", error)
        return failed
    if not check_state(services.settings.secret_key, request.cookies.get(OAUTH_STATE_COOKIE, ""), state):
        logger.warning("Google sign-in rejected: state mismatch")
        return failed

    result = services.federated.login(code)
    if not result.ok:
        return failed

    resp = _signed_in_redirect(request, services, result.user, "/secrets")
    resp.delete_cookie(OAUTH_STATE_COOKIE)
    return resp


@router.api_route("/logout", methods=["GET", "POST"])
def logout(request: Request, services: Services = Depends(get_services)):
    sess = current_session(request)
    if sess is not None:
        services.sessions.terminate(sess.sid)
    resp = RedirectResponse(url="/", status_code=303)
    resp.delete_cookie(services.settings.cookie_name)
    return resp


@router.get("/healthz")
def healthz(services: Services = Depends(get_services)):
    try:
        services.db.ping()
    except StoreUnavailable:
        return JSONResponse({"status": "unavailable"}, status_code=503)
    return {"status": "ok"}


# ------------------ App factory ------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    catalog: Optional[Catalog] = None,
    identity_provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    services = build_services(settings, catalog=catalog, identity_provider=identity_provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(services.db.create_all)
        await run_in_threadpool(services.sessions.sweep)
        yield
        services.db.dispose()

    app = FastAPI(title="gamelog", lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def _auth_middleware(request: Request, call_next):
        request.state.user = None
        request.state.session = None
        try:
            sess = await run_in_threadpool(load_session_from_request, request)
        except StoreUnavailable:
            return _error_page(request, "The service is temporarily unavailable. Please try again shortly.", 503)
        if sess is not None:
            request.state.session = sess
            request.state.user = sess.user
        response = await call_next(request)
        if sess is not None and services.sessions.rolling:
            _refresh_cookie(response, services, sess.sid)
        return response

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable):
        return _error_page(request, "The service is temporarily unavailable. Please try again shortly.", 503)

    @app.exception_handler(ReviewNotFound)
    async def _review_not_found(request: Request, exc: ReviewNotFound):
        return _error_page(request, "That review does not exist.", 404)

    app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
    app.include_router(router)
    return app
