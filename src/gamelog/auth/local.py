# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging

from gamelog.auth.passwords import burn_verification, hash_password, verify_password
from gamelog.auth.results import AuthResult
from gamelog.errors import AuthFailure, DuplicateAccountError
from gamelog.infra.user_repo import UserRepository, normalize_email

logger = logging.getLogger("gamelog.auth.local")


class LocalAuthStrategy:
    """Email + password accounts."""

    def __init__(self, users: UserRepository):
        self._users = users

    def verify(self, username: str, password: str) -> AuthResult:
        """Check credentials.

        Unknown email and wrong password produce the same failure, and both
        pay for one argon2 verification.
        """
        u = self._users.find_by_email(username)
        if u is None:
            burn_verification(password)
            logger.info("Login rejected")
            return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS)
        if not verify_password(u.password_hash, password):
            logger.info("Login rejected for user id=%s", u.id)
            return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS)
        logger.info("Login ok for user id=%s", u.id)
        return AuthResult.success(u)

    def register(self, email: str, password: str) -> AuthResult:
        e = normalize_email(email)
        if not e or not password:
            return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS)
        # Hash before touching the store so the row is complete when committed.
        secret = hash_password(password)
        try:
            u = self._users.create(e, secret)
        except DuplicateAccountError:
            logger.info("Registration rejected: account exists")
            return AuthResult.fail(AuthFailure.DUPLICATE_ACCOUNT)
        logger.info("Registered user id=%s", u.id)
        return AuthResult.success(u)
