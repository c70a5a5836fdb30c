# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API layer for the nursery isolation core.

This module provides the FastAPI application factory and the request seam
that resolves tenant context before any database work happens.
"""

from nursery_isolation.api.app import create_app

__all__ = ["create_app"]
