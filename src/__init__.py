"""School Console services.

Term context and session resolution for a school admin console: which
academic term the console works in, and who is signed in with which role.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "0.1.0"
