#!/usr/bin/env python3
from __future__ import annotations

from getpass import getpass

from gamelog.auth import passwords
from gamelog.auth.local import LocalAuthStrategy
from gamelog.config import get_settings
from gamelog.errors import AuthFailure
from gamelog.infra.db import Database
from gamelog.infra.user_repo import UserRepository


def main() -> None:
    settings = get_settings()
    passwords.configure(settings.password_time_cost, settings.password_memory_cost)
    db = Database(settings.database_url, retries=settings.store_retries,
                  backoff_seconds=settings.store_backoff_seconds)
    db.create_all()

    email = input("Email: ").strip()
    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")

    result = LocalAuthStrategy(UserRepository(db)).register(email, pw1)
    if result.failure is AuthFailure.DUPLICATE_ACCOUNT:
        raise SystemExit(f"An account for {email} already exists")
    if not result.ok:
        raise SystemExit("Email and password are required")
    print(f"OK -> user id {result.user.id} ({result.user.email})")


if __name__ == "__main__":
    main()
