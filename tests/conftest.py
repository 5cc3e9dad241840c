import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, Optional

import pytest

from gamelog.auth import passwords
from gamelog.auth.federated import FederatedProfile
from gamelog.auth.session import SessionManager
from gamelog.config import Settings
from gamelog.errors import CatalogError, FederationError
from gamelog.infra.catalog_client import CatalogGame
from gamelog.infra.db import Database
from gamelog.infra.session_repo import SessionRepository
from gamelog.infra.user_repo import UserRepository

TEST_SECRET = "test-secret-key"


class FakeCatalog:
    """In-memory stand-in for the MobyGames client."""

    def __init__(self, games: Optional[Dict[int, CatalogGame]] = None):
        self.games = dict(games or {})
        self.down = False
        self.calls = 0

    def fetch_games(self, ids: Iterable[int]) -> Dict[int, CatalogGame]:
        self.calls += 1
        if self.down:
            raise CatalogError("catalog down")
        return {int(i): self.games[int(i)] for i in ids if int(i) in self.games}

    def fetch_game(self, game_id: int) -> CatalogGame:
        game = self.fetch_games([game_id]).get(int(game_id))
        if game is None:
            raise CatalogError(f"Game {game_id} not found in catalog")
        return game


class FakeIdentityProvider:
    """Maps authorization codes to profiles; unknown codes fail like a bad grant."""

    def __init__(self, profiles: Optional[Dict[str, FederatedProfile]] = None):
        self.profiles = dict(profiles or {})
        self.exchanges = 0

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/auth?state={state}"

    def exchange(self, code: str) -> FederatedProfile:
        self.exchanges += 1
        if code not in self.profiles:
            raise FederationError("invalid_grant")
        return self.profiles[code]


class Clock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def cheap_hashing():
    # Minimum practical argon2 cost.
    passwords.configure(time_cost=1, memory_cost=1024)
    yield
    passwords.configure(time_cost=3, memory_cost=65536)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "gamelog-test.db"


@pytest.fixture()
def settings(db_path: Path) -> Settings:
    return Settings(
        secret_key=TEST_SECRET,
        database_url=f"sqlite:///{db_path}",
        password_time_cost=1,
        password_memory_cost=1024,
        store_retries=1,
        store_backoff_seconds=0.0,
        session_ttl_seconds=3600,
    )


@pytest.fixture()
def db(settings: Settings):
    d = Database(settings.database_url, retries=1, backoff_seconds=0.0)
    d.create_all()
    yield d
    d.dispose()


@pytest.fixture()
def users(db) -> UserRepository:
    return UserRepository(db)


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def session_manager(db, users, clock) -> SessionManager:
    return SessionManager(
        SessionRepository(db),
        users,
        secret_key=TEST_SECRET,
        ttl_seconds=3600,
        clock=clock,
    )


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog(
        {
            1: CatalogGame(game_id=1, title="Doom", released="1993-12-10", cover_url="https://img.example/doom.jpg"),
            2: CatalogGame(game_id=2, title="Myst", released="1993-09-24"),
            3: CatalogGame(game_id=3, title="Celeste", released="2018-01-25"),
        }
    )


@pytest.fixture()
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider(
        {
            "code-new": FederatedProfile(email="new@example.com", provider_id="g-1"),
            "code-new-again": FederatedProfile(email="New@Example.com", provider_id="g-1"),
        }
    )
