# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Protocol

from sqlalchemy.exc import IntegrityError

from gamelog.errors import CatalogError, ReviewNotFound
from gamelog.infra.catalog_client import CatalogGame
from gamelog.infra.review_repo import DEFAULT_SORT, SORT_COLUMNS, ReviewRecord, ReviewRepository

logger = logging.getLogger("gamelog.reviews")


class Catalog(Protocol):
    def fetch_games(self, ids) -> Dict[int, CatalogGame]: ...

    def fetch_game(self, game_id: int) -> CatalogGame: ...


@dataclass(frozen=True)
class HomeEntry:
    review: ReviewRecord
    game: Optional[CatalogGame]


def normalize_sort(sort: Optional[str]) -> str:
    s = (sort or "").strip().lower()
    return s if s in SORT_COLUMNS else DEFAULT_SORT


def parse_rating(raw) -> int:
    try:
        rating = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValueError("Rating must be a whole number between 1 and 10")
    if not 1 <= rating <= 10:
        raise ValueError("Rating must be a whole number between 1 and 10")
    return rating


def parse_completed(raw) -> Optional[date]:
    s = str(raw or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValueError("Completion date must be YYYY-MM-DD")


def parse_game_id(raw) -> int:
    try:
        gid = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValueError("Game id must be a number")
    if gid <= 0:
        raise ValueError("Game id must be a number")
    return gid


class ReviewService:
    """Review CRUD scoped to one user, enriched from the game catalog."""

    def __init__(self, repo: ReviewRepository, catalog: Catalog):
        self._repo = repo
        self._catalog = catalog

    def list_reviews(self, user_id: int, sort: str = DEFAULT_SORT) -> List[ReviewRecord]:
        return self._repo.list_for_user(user_id, normalize_sort(sort))

    def home_entries(self, user_id: int, sort: str = DEFAULT_SORT) -> List[HomeEntry]:
        reviews = self.list_reviews(user_id, sort)
        games: Dict[int, CatalogGame] = {}
        if reviews:
            try:
                games = self._catalog.fetch_games(r.game_id for r in reviews)
            except CatalogError as exc:
                # Render stored data without artwork rather than failing the page.
                logger.warning("Catalog unavailable for home page: %s", exc)
        return [HomeEntry(review=r, game=games.get(r.game_id)) for r in reviews]

    def get_review(self, user_id: int, review_id) -> ReviewRecord:
        r = self._repo.find(user_id, int(review_id))
        if r is None:
            raise ReviewNotFound(f"Review {review_id} not found")
        return r

    def add_review(self, user_id: int, game_id, completed, rating, notes: str = "") -> ReviewRecord:
        gid = parse_game_id(game_id)
        fields = {
            "game_id": gid,
            "completed": parse_completed(completed),
            "rating": parse_rating(rating),
            "notes": (notes or "").strip(),
        }
        game = self._catalog.fetch_game(gid)
        fields["title"] = game.title
        fields["released"] = game.released
        try:
            created = self._repo.create(user_id, fields)
        except IntegrityError:
            raise ValueError(f"'{game.title}' is already in your list")
        logger.info("User id=%s added review id=%s (game %s)", user_id, created.id, gid)
        return created

    def update_review(self, user_id: int, review_id, completed, rating, notes: str = "") -> ReviewRecord:
        fields = {
            "completed": parse_completed(completed),
            "rating": parse_rating(rating),
            "notes": (notes or "").strip(),
        }
        updated = self._repo.update(user_id, int(review_id), fields)
        if updated is None:
            raise ReviewNotFound(f"Review {review_id} not found")
        return updated

    def delete_review(self, user_id: int, review_id) -> None:
        if not self._repo.delete(user_id, int(review_id)):
            raise ReviewNotFound(f"Review {review_id} not found")
