# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the nursery isolation core.

Example:
    >>> from nursery_isolation.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from nursery_isolation.core.config.settings import (
    CORSSettings,
    DatabaseSettings,
    JWTSettings,
    Settings,
    TenancySettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "CORSSettings",
    "DatabaseSettings",
    "JWTSettings",
    "TenancySettings",
]
