# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import HTTPException, Request

from gamelog.auth.session import ResolvedSession
from gamelog.infra.user_repo import UserRecord


def load_session_from_request(request: Request) -> Optional[ResolvedSession]:
    services = request.app.state.services
    token = request.cookies.get(services.settings.cookie_name, "")
    if not token:
        return None
    return services.sessions.resolve_session(token)


def current_session(request: Request) -> Optional[ResolvedSession]:
    return getattr(request.state, "session", None)


def current_user_optional(request: Request) -> Optional[UserRecord]:
    return getattr(request.state, "user", None)


def require_user(request: Request) -> UserRecord:
    u = current_user_optional(request)
    if u:
        return u
    next_url = str(request.url.path)
    if request.url.query:
        next_url += "?" + request.url.query
    loc = f"/login?next={quote(next_url, safe='/')}"
    raise HTTPException(status_code=303, headers={"Location": loc})


def safe_next(next_url: Optional[str], default: str = "/") -> str:
    """Only allow local absolute paths as post-login targets."""
    n = (next_url or "").strip()
    if not n.startswith("/") or n.startswith("//") or "\\" in n:
        return default
    return n


def cookie_settings(secure: bool = False) -> dict:
    return {"httponly": True, "samesite": "lax", "secure": bool(secure)}
