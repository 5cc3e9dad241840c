# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication and sessions.

This package provides:
- Password hashing/verification (argon2)
- Local email/password strategy over the users table
- Google sign-in strategy (authorization-code flow)
- Server-side sessions referenced by signed cookies (itsdangerous)
"""
