# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Credential store: the `users` table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from gamelog.errors import DuplicateAccountError
from gamelog.infra.db import Database, User


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class UserRecord:
    id: int
    email: str
    password_hash: str
    created_at: Optional[datetime] = None


def _to_record(row: User) -> UserRecord:
    return UserRecord(id=row.id, email=row.email, password_hash=row.password, created_at=row.created_at)


class UserRepository:
    def __init__(self, db: Database):
        self._db = db

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        e = normalize_email(email)
        if not e:
            return None

        def _q(s):
            row = s.execute(select(User).where(User.email == e)).scalar_one_or_none()
            return _to_record(row) if row else None

        return self._db.run(_q)

    def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        def _q(s):
            row = s.get(User, int(user_id))
            return _to_record(row) if row else None

        return self._db.run(_q)

    def create(self, email: str, credential_secret: str) -> UserRecord:
        """Insert a user. The unique index on email serializes concurrent inserts."""
        e = normalize_email(email)
        if not e:
            raise ValueError("Email is required")

        def _ins(s):
            row = User(email=e, password=credential_secret)
            s.add(row)
            s.flush()
            return _to_record(row)

        try:
            return self._db.run(_ins)
        except IntegrityError as exc:
            raise DuplicateAccountError(e) from exc

    def count(self) -> int:
        return self._db.run(lambda s: s.execute(select(func.count()).select_from(User)).scalar_one())
