# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

# Stored in place of a hash for accounts created through Google sign-in.
FEDERATED_SENTINEL = "google"

_DEFAULT_TIME_COST = 3
_DEFAULT_MEMORY_COST = 65536


@lru_cache(maxsize=8)
def _hasher(time_cost: int, memory_cost: int) -> PasswordHasher:
    return PasswordHasher(time_cost=time_cost, memory_cost=memory_cost)


_active = (_DEFAULT_TIME_COST, _DEFAULT_MEMORY_COST)


def configure(time_cost: int, memory_cost: int) -> None:
    """Set argon2 cost; calibrate so one verification takes ~250 ms in production."""
    global _active
    _active = (int(time_cost), int(memory_cost))


def _ph() -> PasswordHasher:
    return _hasher(*_active)


def is_federated(hash_value: str) -> bool:
    return hash_value == FEDERATED_SENTINEL


def hash_password(plain: str) -> str:
    if not plain:
        raise ValueError("Empty password")
    return _ph().hash(plain)


def verify_password(hash_value: str, plain: str) -> bool:
    if not hash_value or not plain or is_federated(hash_value):
        return False
    try:
        return _ph().verify(hash_value, plain)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


_DUMMY_HASH = None


def burn_verification(plain: str) -> None:
    """Spend one verification's worth of work against a throwaway hash.

    Used when the account does not exist so response time matches a real check.
    """
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = _ph().hash("gamelog-dummy-password")
    verify_password(_DUMMY_HASH, plain or "x")
