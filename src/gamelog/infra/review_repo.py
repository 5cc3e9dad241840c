# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Per-user game reviews: the `games` table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select

from gamelog.infra.db import Database, Review

# Sort key (as posted by the UI) -> column. Never interpolate user input into SQL.
SORT_COLUMNS = {
    "released": Review.released,
    "rating": Review.rating,
    "completed": Review.completed,
    "title": Review.title,
}
DEFAULT_SORT = "released"


@dataclass(frozen=True)
class ReviewRecord:
    id: int
    user_id: int
    game_id: int
    title: str
    completed: Optional[date]
    rating: int
    notes: str
    released: Optional[str]


def _to_record(row: Review) -> ReviewRecord:
    return ReviewRecord(
        id=row.id,
        user_id=row.user_id,
        game_id=row.game_id,
        title=row.title,
        completed=row.completed,
        rating=row.rating,
        notes=row.notes or "",
        released=row.released,
    )


class ReviewRepository:
    def __init__(self, db: Database):
        self._db = db

    def list_for_user(self, user_id: int, sort: str = DEFAULT_SORT) -> List[ReviewRecord]:
        col = SORT_COLUMNS.get(sort, SORT_COLUMNS[DEFAULT_SORT])

        def _q(s):
            stmt = (
                select(Review)
                .where(Review.user_id == user_id)
                .order_by(col.desc().nulls_last(), Review.id.desc())
            )
            return [_to_record(r) for r in s.execute(stmt).scalars()]

        return self._db.run(_q)

    def find(self, user_id: int, review_id: int) -> Optional[ReviewRecord]:
        def _q(s):
            row = s.get(Review, int(review_id))
            if row is None or row.user_id != user_id:
                return None
            return _to_record(row)

        return self._db.run(_q)

    def create(self, user_id: int, fields: Dict[str, object]) -> ReviewRecord:
        """Insert a review. Raises IntegrityError if the game is already logged."""

        def _ins(s):
            row = Review(user_id=user_id, **fields)
            s.add(row)
            s.flush()
            return _to_record(row)

        return self._db.run(_ins)

    def update(self, user_id: int, review_id: int, fields: Dict[str, object]) -> Optional[ReviewRecord]:
        def _upd(s):
            row = s.get(Review, int(review_id))
            if row is None or row.user_id != user_id:
                return None
            for k, v in fields.items():
                setattr(row, k, v)
            s.flush()
            return _to_record(row)

        return self._db.run(_upd)

    def delete(self, user_id: int, review_id: int) -> bool:
        def _del(s):
            row = s.get(Review, int(review_id))
            if row is None or row.user_id != user_id:
                return False
            s.delete(row)
            return True

        return self._db.run(_del)
