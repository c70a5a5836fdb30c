# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Operational command line tools.

- verify_rls: Static row-level security verification (verify-rls).
- provision_role: Application role provisioning (provision-app-role).
"""
