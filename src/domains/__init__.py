# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the console.

Domains:
    term: Term context, administration and term-scoped reads.
    session: Profile resolution, session state, login and area guards.
"""
