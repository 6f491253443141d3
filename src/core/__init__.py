# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for the console services.

This package contains configuration and service wiring:
- config: Application configuration and settings
- container: Gateway and service construction
"""
