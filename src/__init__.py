"""Pleeno Backend.

Multi-tenant payment plan, commission and notification service for
education agencies.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
