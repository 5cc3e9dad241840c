# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Google sign-in (OAuth 2.0 authorization-code flow)."""

from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import requests
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.requests_client import OAuth2Session
from itsdangerous import BadSignature, URLSafeTimedSerializer

from gamelog.auth.passwords import FEDERATED_SENTINEL
from gamelog.auth.results import AuthResult
from gamelog.errors import AuthFailure, DuplicateAccountError, FederationError
from gamelog.infra.user_repo import UserRepository, normalize_email

logger = logging.getLogger("gamelog.auth.federated")

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
SCOPES = ["openid", "email", "profile"]


@dataclass(frozen=True)
class FederatedProfile:
    email: str
    provider_id: str


class IdentityProvider(Protocol):
    def authorization_url(self, state: str) -> str: ...

    def exchange(self, code: str) -> FederatedProfile: ...


class GoogleIdentityProvider:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, *, timeout: float = 10.0):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def _oauth(self) -> OAuth2Session:
        # One session per flow; it holds the fetched token.
        return OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=SCOPES,
            redirect_uri=self.redirect_uri,
        )

    def authorization_url(self, state: str) -> str:
        url, _ = self._oauth().create_authorization_url(
            GOOGLE_AUTH_URL,
            state=state,
            prompt="select_account",
        )
        return url

    def exchange(self, code: str) -> FederatedProfile:
        if not code:
            raise FederationError("Missing authorization code")
        oauth = self._oauth()
        try:
            token = oauth.fetch_token(
                GOOGLE_TOKEN_URL,
                code=code,
                redirect_uri=self.redirect_uri,
                timeout=self.timeout,
            )
            if not token.get("access_token"):
                raise FederationError("Token response has no access_token")

            resp = oauth.get(GOOGLE_USERINFO_URL, timeout=self.timeout)
            if resp.status_code != 200:
                raise FederationError(f"Userinfo request failed with HTTP {resp.status_code}")
            info = resp.json()
        except AuthlibBaseError as exc:
            raise FederationError(f"Token exchange rejected: {exc}") from exc
        except requests.RequestException as exc:
            raise FederationError(f"Identity provider unreachable: {exc.__class__.__name__}") from exc
        except ValueError as exc:
            raise FederationError("Identity provider returned invalid JSON") from exc
        if not isinstance(info, dict):
            raise FederationError("Userinfo returned an unexpected payload")

        email = normalize_email(str(info.get("email") or ""))
        if not email:
            raise FederationError("Identity provider returned no email")
        if info.get("email_verified") is False:
            raise FederationError("Email is not verified with the identity provider")
        return FederatedProfile(email=email, provider_id=str(info.get("sub") or ""))


class FederatedAuthStrategy:
    def __init__(self, users: UserRepository, provider: Optional[IdentityProvider] = None):
        self._users = users
        self.provider = provider

    @property
    def enabled(self) -> bool:
        return self.provider is not None

    def authorization_url(self, state: str) -> str:
        if self.provider is None:
            raise FederationError("Google sign-in is not configured")
        return self.provider.authorization_url(state)

    def resolve_federated_identity(self, profile: FederatedProfile) -> AuthResult:
        """Return the user for `profile.email`, creating a federated-only account once."""
        existing = self._users.find_by_email(profile.email)
        if existing is not None:
            return AuthResult.success(existing)
        try:
            created = self._users.create(profile.email, FEDERATED_SENTINEL)
            logger.info("Created federated user id=%s", created.id)
            return AuthResult.success(created)
        except DuplicateAccountError:
            # Lost an insert race with a concurrent login; the winner's row is the answer.
            winner = self._users.find_by_email(profile.email)
            if winner is None:
                return AuthResult.fail(AuthFailure.FEDERATION_ERROR)
            return AuthResult.success(winner)

    def login(self, code: str) -> AuthResult:
        if self.provider is None:
            return AuthResult.fail(AuthFailure.FEDERATION_ERROR)
        try:
            profile = self.provider.exchange(code)
        except FederationError as exc:
            logger.warning("Federated sign-in failed: %s", exc)
            return AuthResult.fail(AuthFailure.FEDERATION_ERROR)
        return self.resolve_federated_identity(profile)


# ---- OAuth `state` round trip (signed, short-lived cookie)

STATE_SALT = "gamelog.oauth.state"
STATE_MAX_AGE_SECONDS = 600


def new_state(secret_key: str) -> Tuple[str, str]:
    """Return (state, cookie_value) for a fresh authorization request."""
    state = secrets.token_urlsafe(24)
    signer = URLSafeTimedSerializer(secret_key=secret_key, salt=STATE_SALT)
    return state, signer.dumps(state)


def check_state(secret_key: str, cookie_value: str, state: str) -> bool:
    if not cookie_value or not state:
        return False
    signer = URLSafeTimedSerializer(secret_key=secret_key, salt=STATE_SALT)
    try:
        expected = signer.loads(cookie_value, max_age=STATE_MAX_AGE_SECONDS)
    except BadSignature:
        return False
    return isinstance(expected, str) and hmac.compare_digest(expected, state)
