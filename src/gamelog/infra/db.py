# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Relational store: engine, ORM tables and unit-of-work helpers."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gamelog.errors import StoreUnavailable

logger = logging.getLogger("gamelog.db")

T = TypeVar("T")

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (sqlite does not keep tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)  # argon2 hash or federated sentinel
    created_at = Column(DateTime, default=utcnow, nullable=False)


class SessionRow(Base):
    __tablename__ = "sessions"

    sid = Column(String(64), primary_key=True)
    sess = Column(Text, nullable=False)  # JSON payload
    expire = Column(DateTime, nullable=False, index=True)


class Review(Base):
    __tablename__ = "games"
    __table_args__ = (UniqueConstraint("user_id", "game_id", name="uq_games_user_game"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    game_id = Column(Integer, nullable=False)
    title = Column(String(500), nullable=False)
    completed = Column(Date, nullable=True)
    rating = Column(Integer, nullable=False)
    notes = Column(Text, nullable=False, default="")
    released = Column(String(32), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Database:
    """Owns the engine and hands out short-lived sessions.

    `run()` executes one unit of work and retries transient connectivity
    failures with exponential backoff before raising StoreUnavailable.
    """

    def __init__(self, url: str, *, retries: int = 3, backoff_seconds: float = 0.2):
        self.url = url
        self.retries = max(1, int(retries))
        self.backoff_seconds = float(backoff_seconds)

        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)

    def create_all(self) -> None:
        u = make_url(self.url)
        if u.get_backend_name() == "sqlite" and u.database and u.database != ":memory:":
            Path(u.database).parent.mkdir(parents=True, exist_ok=True)
        self.run(lambda db: Base.metadata.create_all(bind=db.get_bind()))
        logger.info("Database tables ready (%s)", u.render_as_string(hide_password=True))

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self._sessions()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run(self, work: Callable[[Session], T]) -> T:
        last_exc: Exception | None = None
        for attempt in range(self.retries):
            try:
                with self.session_scope() as db:
                    return work(db)
            except (OperationalError, InterfaceError) as exc:
                last_exc = exc
                if attempt + 1 < self.retries:
                    delay = self.backoff_seconds * (2 ** attempt)
                    logger.warning("Store error (attempt %d/%d), retrying in %.2fs: %s",
                                   attempt + 1, self.retries, delay, exc.__class__.__name__)
                    time.sleep(delay)
        logger.error("Store unavailable after %d attempts: %s", self.retries, last_exc)
        raise StoreUnavailable("Persistent store is unavailable") from last_exc

    def ping(self) -> bool:
        self.run(lambda db: db.execute(text("SELECT 1")).scalar())
        return True

    def dispose(self) -> None:
        self.engine.dispose()
