# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for Academy Insights.

This package contains configuration and the shared exception hierarchy:
- config: Application configuration and settings
- exceptions: Error taxonomy shared by the risk and funnel domains
"""
