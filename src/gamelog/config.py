# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Runtime settings.

Values are resolved in this order (last wins):
- built-in defaults
- optional YAML file pointed to by GAMELOG_CONFIG
- environment variables (GAMELOG_* plus SECRET_KEY / DATABASE_URL)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Anchor the default sqlite path to the project root, not the cwd.
BASE_DIR = Path(__file__).resolve().parents[2]

_TRUE = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    secret_key: str
    database_url: str = f"sqlite:///{BASE_DIR / 'data' / 'gamelog.db'}"

    cookie_name: str = "gamelog_session"
    cookie_secure: bool = False
    session_ttl_seconds: int = 3600
    session_rolling: bool = False
    session_sweep_interval: int = 900

    catalog_api_url: str = "https://api.mobygames.com/v1/games"
    catalog_api_key: str = ""
    catalog_timeout_seconds: float = 10.0

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/auth/google/profile"
    oauth_timeout_seconds: float = 10.0

    # argon2id cost; defaults follow argon2-cffi's RFC 9106 low-memory profile
    password_time_cost: int = 3
    password_memory_cost: int = 65536

    store_retries: int = 3
    store_backoff_seconds: float = 0.2

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def _coerce(raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUE
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return str(raw)


def _load_yaml(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    p = Path(path)
    if not p.exists():
        raise RuntimeError(f"Config file not found: {p}")
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise RuntimeError(f"Config file {p} must contain a mapping")
    return raw


def load_settings(environ: Optional[Dict[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    values: Dict[str, Any] = dict(_load_yaml(env.get("GAMELOG_CONFIG")))

    for f in fields(Settings):
        key = f"GAMELOG_{f.name.upper()}"
        if key in env:
            values[f.name] = env[key]

    # Unprefixed names commonly set by hosting platforms; the GAMELOG_ form wins.
    for name in ("secret_key", "database_url"):
        plain = name.upper()
        if env.get(plain) and f"GAMELOG_{plain}" not in env:
            values[name] = env[plain]

    secret = str(values.get("secret_key") or "").strip()
    if not secret:
        raise RuntimeError("Missing SECRET_KEY (or GAMELOG_SECRET_KEY) in environment")

    kwargs: Dict[str, Any] = {"secret_key": secret}
    for f in fields(Settings):
        if f.name == "secret_key" or f.name not in values:
            continue
        kwargs[f.name] = _coerce(values[f.name], f.default)
    return Settings(**kwargs)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
