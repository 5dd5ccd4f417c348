# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API request and response schemas.

- risk: risk scores, alerts, config and batch summaries
- funnel: funnel events and funnel reports
"""
