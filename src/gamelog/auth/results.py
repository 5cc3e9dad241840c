# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from gamelog.errors import AuthFailure
from gamelog.infra.user_repo import UserRecord


@dataclass(frozen=True)
class AuthResult:
    user: Optional[UserRecord] = None
    failure: Optional[AuthFailure] = None

    @property
    def ok(self) -> bool:
        return self.user is not None and self.failure is None

    @classmethod
    def success(cls, user: UserRecord) -> "AuthResult":
        return cls(user=user)

    @classmethod
    def fail(cls, failure: AuthFailure) -> "AuthResult":
        return cls(failure=failure)
