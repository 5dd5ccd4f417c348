# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for Academy Insights.

Domains:
    risk: Student risk scoring, risk alerts and the nightly risk batch.
    funnel: Funnel event log and funnel analytics.
"""
