# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for the nursery isolation core.

This package contains shared configuration:
- config: Application configuration and settings
"""
