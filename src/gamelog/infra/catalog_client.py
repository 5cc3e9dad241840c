# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""MobyGames catalog client.

Only the fields the tracker renders are kept: title, first release date,
cover image and description.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import requests

from gamelog.errors import CatalogError

logger = logging.getLogger("gamelog.catalog")

# MobyGames accepts at most this many `id` parameters per request.
MAX_IDS_PER_REQUEST = 100


@dataclass(frozen=True)
class CatalogGame:
    game_id: int
    title: str
    released: Optional[str] = None
    cover_url: Optional[str] = None
    description: str = ""
    moby_url: Optional[str] = None


def _parse_game(raw: Dict[str, Any]) -> Optional[CatalogGame]:
    try:
        gid = int(raw.get("game_id"))
    except (TypeError, ValueError):
        return None
    platforms = raw.get("platforms") or []
    released = None
    if platforms and isinstance(platforms[0], dict):
        released = platforms[0].get("first_release_date") or None
    cover = raw.get("sample_cover") or {}
    return CatalogGame(
        game_id=gid,
        title=str(raw.get("title") or "").strip(),
        released=released,
        cover_url=(cover.get("thumbnail_image") or cover.get("image")) if isinstance(cover, dict) else None,
        description=str(raw.get("description") or ""),
        moby_url=raw.get("moby_url"),
    )


class MobyGamesClient:
    def __init__(self, api_url: str, api_key: str, *, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout
        self._http = session or requests.Session()

    def _get(self, ids: List[int]) -> List[Dict[str, Any]]:
        params: List[tuple] = [("api_key", self.api_key)]
        params.extend(("id", str(i)) for i in ids)
        try:
            resp = self._http.get(self.api_url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Catalog request failed: %s", exc.__class__.__name__)
            raise CatalogError("Game catalog is unreachable") from exc
        if resp.status_code != 200:
            logger.warning("Catalog returned HTTP %s", resp.status_code)
            raise CatalogError(f"Game catalog returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise CatalogError("Game catalog returned invalid JSON") from exc
        games = (data or {}).get("games") if isinstance(data, dict) else None
        return games if isinstance(games, list) else []

    def fetch_games(self, ids: Iterable[int]) -> Dict[int, CatalogGame]:
        wanted: List[int] = []
        for i in ids:
            i = int(i)
            if i not in wanted:
                wanted.append(i)
        out: Dict[int, CatalogGame] = {}
        for start in range(0, len(wanted), MAX_IDS_PER_REQUEST):
            for raw in self._get(wanted[start:start + MAX_IDS_PER_REQUEST]):
                game = _parse_game(raw) if isinstance(raw, dict) else None
                if game:
                    out[game.game_id] = game
        return out

    def fetch_game(self, game_id: int) -> CatalogGame:
        game = self.fetch_games([game_id]).get(int(game_id))
        if game is None or not game.title:
            raise CatalogError(f"Game {game_id} not found in catalog")
        return game
