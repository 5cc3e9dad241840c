# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy.

Authentication outcomes are values (AuthFailure inside an AuthResult), so
routes decide what the user sees. Exceptions are kept for the store and
outbound-service boundaries.
"""

from __future__ import annotations

import enum


class AuthFailure(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    DUPLICATE_ACCOUNT = "duplicate_account"
    FEDERATION_ERROR = "federation_error"


class GamelogError(Exception):
    pass


class StoreUnavailable(GamelogError):
    """Persistence could not be reached after retrying."""


class DuplicateAccountError(GamelogError):
    def __init__(self, email: str):
        super().__init__(f"Account already exists: {email}")
        self.email = email


class FederationError(GamelogError):
    """Identity-provider exchange failed (network, invalid code, consent denied)."""


class CatalogError(GamelogError):
    """The game catalog API could not serve the request."""


class ReviewNotFound(GamelogError):
    pass
