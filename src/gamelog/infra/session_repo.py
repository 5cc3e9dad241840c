# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Session store: the `sessions` table (sid -> JSON payload, expiry)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import delete, update

from gamelog.infra.db import Database, SessionRow


@dataclass(frozen=True)
class StoredSession:
    sid: str
    payload: Dict[str, Any]
    expires_at: datetime


class SessionRepository:
    def __init__(self, db: Database):
        self._db = db

    def put(self, sid: str, payload: Dict[str, Any], expires_at: datetime) -> None:
        body = json.dumps(payload, separators=(",", ":"), sort_keys=True)

        def _put(s):
            row = s.get(SessionRow, sid)
            if row is None:
                s.add(SessionRow(sid=sid, sess=body, expire=expires_at))
            else:
                row.sess = body
                row.expire = expires_at

        self._db.run(_put)

    def get(self, sid: str) -> Optional[StoredSession]:
        def _get(s):
            row = s.get(SessionRow, sid)
            if row is None:
                return None
            try:
                payload = json.loads(row.sess or "{}")
            except ValueError:
                payload = {}
            if not isinstance(payload, dict):
                payload = {}
            return StoredSession(sid=row.sid, payload=payload, expires_at=row.expire)

        return self._db.run(_get)

    def touch(self, sid: str, expires_at: datetime) -> None:
        self._db.run(lambda s: s.execute(update(SessionRow).where(SessionRow.sid == sid).values(expire=expires_at)))

    def delete(self, sid: str) -> None:
        self._db.run(lambda s: s.execute(delete(SessionRow).where(SessionRow.sid == sid)))

    def delete_expired(self, now: datetime) -> int:
        return self._db.run(lambda s: s.execute(delete(SessionRow).where(SessionRow.expire <= now)).rowcount or 0)
