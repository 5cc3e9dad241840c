# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from gamelog.infra.db import utcnow
from gamelog.infra.session_repo import SessionRepository
from gamelog.infra.user_repo import UserRecord, UserRepository

logger = logging.getLogger("gamelog.auth.session")

SESSION_SALT = "gamelog.session.v1"


@dataclass(frozen=True)
class ResolvedSession:
    sid: str
    user: UserRecord
    payload: Dict[str, Any]


class SessionManager:
    """Server-side sessions referenced by a signed cookie.

    The cookie only carries the signed session id; the payload lives in the
    sessions table, so restarts keep users signed in.
    """

    def __init__(
        self,
        store: SessionRepository,
        users: UserRepository,
        *,
        secret_key: str,
        ttl_seconds: int = 3600,
        rolling: bool = False,
        sweep_interval: int = 900,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret_key:
            raise RuntimeError("Session manager needs a secret key")
        self._store = store
        self._users = users
        self._signer = URLSafeTimedSerializer(secret_key=secret_key, salt=SESSION_SALT)
        self.ttl_seconds = int(ttl_seconds)
        self.rolling = rolling
        self.sweep_interval = int(sweep_interval)
        self._clock = clock
        self._last_sweep: Optional[datetime] = None

    # ---- cookie encoding

    def sign(self, sid: str) -> str:
        return self._signer.dumps(sid)

    def unsign(self, token: str) -> Optional[str]:
        if not token:
            return None
        try:
            sid = self._signer.loads(token, max_age=self.ttl_seconds if not self.rolling else None)
        except BadSignature:
            return None
        return sid if isinstance(sid, str) and sid else None

    # ---- lifecycle

    def establish(self, user: UserRecord, **extra: Any) -> str:
        sid = secrets.token_urlsafe(32)
        payload = {**extra, "uid": user.id}
        self._store.put(sid, payload, self._clock() + timedelta(seconds=self.ttl_seconds))
        self._maybe_sweep()
        logger.info("Session established for user id=%s", user.id)
        return sid

    def resolve_session(self, token: str) -> Optional[ResolvedSession]:
        sid = self.unsign(token)
        if sid is None:
            return None
        stored = self._store.get(sid)
        if stored is None:
            return None
        now = self._clock()
        if stored.expires_at <= now:
            return None
        uid = stored.payload.get("uid")
        try:
            uid = int(uid)
        except (TypeError, ValueError):
            return None
        user = self._users.find_by_id(uid)
        if user is None:
            return None
        if self.rolling:
            self._store.touch(sid, now + timedelta(seconds=self.ttl_seconds))
        return ResolvedSession(sid=sid, user=user, payload=stored.payload)

    def resolve(self, token: str) -> Optional[UserRecord]:
        rs = self.resolve_session(token)
        return rs.user if rs else None

    def update(self, sid: str, **values: Any) -> None:
        stored = self._store.get(sid)
        if stored is None:
            return
        payload = {**stored.payload, **values}
        payload["uid"] = stored.payload.get("uid")
        self._store.put(sid, payload, stored.expires_at)

    def terminate(self, sid: str) -> None:
        if sid:
            self._store.delete(sid)

    def sweep(self) -> int:
        now = self._clock()
        self._last_sweep = now
        n = self._store.delete_expired(now)
        if n:
            logger.info("Swept %d expired sessions", n)
        return n

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if self._last_sweep is None or (now - self._last_sweep).total_seconds() >= self.sweep_interval:
            self.sweep()
