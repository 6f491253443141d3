# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains the backend gateway adapters:
- In-memory backend (tests and local runs)
- SQL backend (SQLAlchemy async, PostgreSQL)
"""
