# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""gamelog: a personal game-review tracker."""

__version__ = "0.1.0"
